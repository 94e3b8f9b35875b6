"""Storefront pricing: which price list a customer buys from, unit prices and coupons"""
import logging
from collections import Counter
from decimal import Decimal
from django.db.models import Q
from django.utils import timezone
from backend.clients.models import Client
from backend.core.cache_utils import cached_query, DISCOUNTS_CACHE_TTL, ACTIVE_DISCOUNTS_PREFIX
from backend.core.exceptions import CouponError
from backend.orders.models import Order
from .calculator import calculate_price, discount_rule, money
from .models import PriceList, Price, Discount, Coupon

logger = logging.getLogger(__name__)


def visible_codes(distributor_code):
    """Distributor codes whose discounts and coupons a customer of `distributor_code` may use"""
    return [distributor_code, ''] if distributor_code else ['']


@cached_query(cache_ttl=DISCOUNTS_CACHE_TTL, key_prefix=ACTIVE_DISCOUNTS_PREFIX)
def get_active_discounts(distributor_code=''):
    """Active, in-window discounts of a distributor plus the global ones"""
    queryset = Discount.current().filter(distributor_code__in=visible_codes(distributor_code))
    return [discount for discount in queryset if not discount.is_exhausted]


def get_client_for_user(user):
    if not user or not user.is_authenticated:
        return None
    return Client.objects.select_related('price_list').filter(user=user).first()


def resolve_price_list(user, client=None, today=None):
    """
    Price list used for a customer: the client's own list when current, else
    the distributor's default list, else None (product prices apply).
    """
    today = today or timezone.localdate()
    client = client or get_client_for_user(user)
    if client and client.price_list and client.price_list.is_current(today):
        return client.price_list

    distributor_code = (client.distributor_code if client else '') or getattr(user, 'distributor_code', '') or ''
    candidates = PriceList.objects.filter(is_default=True, status='active', distributor_code=distributor_code)
    for price_list in candidates:
        if price_list.is_current(today):
            return price_list
    return None


def find_list_price(product, price_list, quantity=1, today=None):
    """Active Price of a product in a price list for the given quantity, if any"""
    if price_list is None:
        return None
    today = today or timezone.localdate()
    prices = Price.objects.filter(price_list=price_list, status='active') \
        .filter(Q(product=product) | Q(product_sku=product.sku)) \
        .filter(Q(valid_from__isnull=True) | Q(valid_from__lte=today)) \
        .filter(Q(valid_until__isnull=True) | Q(valid_until__gte=today)) \
        .filter(min_quantity__lte=max(quantity, 1), max_quantity__gte=quantity) \
        .order_by('priority', 'id')
    return prices.first()


def unit_price(product, price_list=None, quantity=1):
    """Unit price before discounts"""
    price = find_list_price(product, price_list, quantity)
    if price is not None:
        return price.effective_price
    return product.get_unit_price()


def price_product(product, quantity=1, price_list=None, discounts=None):
    """PriceCalculation for `quantity` units of a product"""
    price = find_list_price(product, price_list, quantity)
    if price is not None:
        base_price = price.base_price
        product_config = {'price_sale': price.effective_price if price.effective_price < price.base_price else None}
    else:
        base_price = product.price
        product_config = {'price_sale': product.price_sale, 'discount_percentage': product.discount_percentage}

    now = timezone.now()
    rules = []
    for discount in discounts or []:
        if not discount.is_current(now) or not discount.applies_to_product(product):
            continue
        rule = discount_rule(discount)
        if rule is not None:
            rules.append(rule)
    return calculate_price(base_price, quantity, rules, product_config)


def validate_coupon(code, subtotal, distributor_code='', now=None):
    """
    Returns (coupon, discount amount) for a coupon code applied to a subtotal.
    Raises CouponError when the coupon cannot be used.
    """
    code = (code or '').strip().upper()
    if not code:
        raise CouponError('Coupon code is required.')
    now = now or timezone.now()
    subtotal = money(subtotal)

    coupon = Coupon.objects.filter(code=code, distributor_code__in=visible_codes(distributor_code)).first()
    if coupon is None or not coupon.is_active:
        raise CouponError('Invalid coupon code.')
    if coupon.valid_from and coupon.valid_from > now:
        raise CouponError('This coupon is not valid yet.')
    if coupon.valid_to and coupon.valid_to < now:
        raise CouponError('This coupon has expired.')
    if coupon.usage_limit is not None and coupon.times_used >= coupon.usage_limit:
        raise CouponError('This coupon has reached its usage limit.')
    if subtotal < coupon.min_purchase_amount:
        raise CouponError(f'A minimum purchase of {coupon.min_purchase_amount} is required for this coupon.')

    if coupon.discount_type == 'percentage':
        amount = subtotal * coupon.value / Decimal('100')
    else:
        amount = coupon.value
    amount = min(money(amount), subtotal)
    logger.debug(f"Coupon {code} worth {amount} on {subtotal}")
    return coupon, amount


def discount_usage(user):
    """Discount id -> number of the user's non-cancelled orders that applied it"""
    usage = Counter()
    orders = Order.objects.filter(user=user).exclude(status='CANCELLED')
    for applied_discounts in orders.values_list('applied_discounts', flat=True):
        for applied in applied_discounts or []:
            if isinstance(applied, dict) and applied.get('id') is not None:
                usage[applied['id']] += 1
    return usage


def customer_context(user, client=None):
    """Customer facts evaluate_cart() needs: customer_type, tier, is_first_purchase, discount_usage"""
    client = client or get_client_for_user(user)
    information = (client.information or {}) if client else {}
    return {
        'customer_type': client.customer_class if client and client.customer_class else user.user_type,
        'tier': information.get('tier') or (client.customer_class_two if client else ''),
        'is_first_purchase': not Order.objects.filter(user=user).exclude(status='CANCELLED').exists(),
        'discount_usage': discount_usage(user),
    }

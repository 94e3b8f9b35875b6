"""Cart operations, checkout and order life cycle"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from django.conf import settings
from django.db import transaction
from django.db.models import F, Count, Sum
from backend.catalog.models import Product, STOREFRONT_STATUSES
from backend.core.cache_utils import invalidate_products_cache, invalidate_discounts_cache
from backend.core.exceptions import DomainError, InvalidTransition, InsufficientStock
from backend.core.models import ShippingAddress
from backend.core.utils import scope_queryset, get_distributor_code
from backend.pricing.calculator import evaluate_cart, line_from_product
from backend.pricing.models import Discount, Coupon
from backend.pricing.services import (
    get_active_discounts, get_client_for_user, resolve_price_list, unit_price, validate_coupon, customer_context
)
from .models import Cart, CartItem, Order, OrderItem

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def _money(value):
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


# Cart

def get_cart(user):
    cart, _ = Cart.objects.get_or_create(user=user)
    return cart


def storefront_product(user, product_id):
    """Published product the user may buy, or DomainError"""
    queryset = Product.objects.filter(published=True, status__in=STOREFRONT_STATUSES)
    product = scope_queryset(queryset, user).filter(pk=product_id).first()
    if product is None:
        raise DomainError('Product not found or not available.', code='product_unavailable')
    return product


def _check_stock(product, quantity):
    if product.track_inventory and quantity > product.stock_quantity:
        raise InsufficientStock(
            f'Only {max(product.stock_quantity, 0)} units of {product.name} are available.'
        )


def add_to_cart(user, product_id, quantity=1):
    """Add a product; adding a product already in the cart increments its quantity"""
    if quantity < 1:
        raise DomainError('Quantity must be at least 1.', code='invalid_quantity')
    product = storefront_product(user, product_id)
    cart = get_cart(user)
    item = cart.items.filter(product=product).first()
    new_quantity = quantity + (item.quantity if item else 0)
    _check_stock(product, new_quantity)

    price = unit_price(product, resolve_price_list(user), new_quantity)
    if item:
        item.quantity = new_quantity
        item.unit_price = price
        item.save(update_fields=['quantity', 'unit_price', 'updated_at'])
    else:
        item = CartItem.objects.create(cart=cart, product=product, quantity=quantity, unit_price=price)
    cart.save(update_fields=['updated_at'])
    return item


def update_cart_item(user, item_id, quantity):
    """Set the quantity of a cart line; 0 removes it. Returns the item or None when removed."""
    cart = get_cart(user)
    item = cart.items.select_related('product').filter(pk=item_id).first()
    if item is None:
        raise DomainError('Cart item not found.', code='cart_item_not_found')
    if quantity < 0:
        raise DomainError('Quantity cannot be negative.', code='invalid_quantity')
    if quantity == 0:
        item.delete()
        return None
    _check_stock(item.product, quantity)
    item.quantity = quantity
    item.unit_price = unit_price(item.product, resolve_price_list(user), quantity)
    item.save(update_fields=['quantity', 'unit_price', 'updated_at'])
    return item


def remove_cart_item(user, item_id):
    cart = get_cart(user)
    deleted, _ = cart.items.filter(pk=item_id).delete()
    if not deleted:
        raise DomainError('Cart item not found.', code='cart_item_not_found')


def clear_cart(user):
    get_cart(user).items.all().delete()


# Checkout

def _shipping_address(user, data):
    address = data.get('shipping_address')
    if isinstance(address, dict) and address:
        return address
    address_id = data.get('shipping_address_id')
    queryset = ShippingAddress.objects.filter(user=user)
    saved = queryset.filter(pk=address_id).first() if address_id else queryset.filter(is_default=True).first()
    return saved.as_dict() if saved else {}


def _allocate(amount, weights):
    """Split an amount over lines in proportion to their weights"""
    total = sum(weights, ZERO)
    if not amount or not total:
        return [ZERO for _ in weights]
    shares = [_money(amount * weight / total) for weight in weights]
    # Rounding drift goes to the largest line
    drift = _money(amount) - sum(shares, ZERO)
    if drift:
        largest = max(range(len(weights)), key=lambda i: weights[i])
        shares[largest] += drift
    return shares


def checkout(user, data):
    """
    Turn the user's cart into an order.

    data: {payment_type, shipping_method, shipping_address | shipping_address_id,
    coupon_code, notes}. Stock, discount usage and coupon usage are updated in
    the same transaction; the cart is emptied.
    """
    cart = get_cart(user)
    client = get_client_for_user(user)
    distributor_code = (client.distributor_code if client else '') or get_distributor_code(user)

    with transaction.atomic():
        items = list(cart.items.select_related('product', 'product__category', 'product__brand'))
        if not items:
            raise DomainError('Cart is empty.', code='empty_cart')

        locked = {product.pk: product for product in
                  Product.objects.select_for_update().filter(pk__in=[item.product_id for item in items])}
        price_list = resolve_price_list(user, client)
        lines = []
        for item in items:
            product = locked[item.product_id]
            _check_stock(product, item.quantity)
            lines.append(line_from_product(product, item.quantity, unit_price(product, price_list, item.quantity)))

        evaluation = evaluate_cart(lines, get_active_discounts(distributor_code), customer_context(user, client))
        subtotal = evaluation.subtotal
        discount = evaluation.total_discount

        coupon, coupon_amount = None, ZERO
        if data.get('coupon_code'):
            coupon, coupon_amount = validate_coupon(data['coupon_code'], subtotal - discount, distributor_code)

        line_nets = [_money(line['unit_price'] * line['quantity']) - line_discount
                     for line, line_discount in zip(lines, evaluation.line_discounts)]
        order_level = _allocate(evaluation.order_discount + coupon_amount, line_nets)
        line_taxes = []
        for item, net, share in zip(items, line_nets, order_level):
            taxable = max(net - share, ZERO)
            line_taxes.append(_money(taxable * locked[item.product_id].tax / Decimal('100')))
        tax = sum(line_taxes, ZERO)

        shipping_fee = ZERO if evaluation.free_shipping else _money(settings.DEFAULT_SHIPPING_FEE)
        discount = discount + coupon_amount
        total = max(subtotal - discount + tax + shipping_fee, ZERO)

        applied = [{**applied, 'amount': str(applied['amount'])} for applied in evaluation.applied_discounts]
        order = Order.objects.create(
            user=user,
            client=client,
            payment_type=data.get('payment_type') or 'CASH_ON_DELIVERY',
            shipping_method=data.get('shipping_method') or 'standard',
            shipping_fee=shipping_fee,
            shipping_address=_shipping_address(user, data),
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            total=total,
            coupon=coupon,
            coupon_discount=coupon_amount,
            applied_discounts=applied,
            notes=data.get('notes') or '',
            currency=price_list.currency if price_list else settings.DEFAULT_CURRENCY,
            distributor_code=distributor_code,
        )

        for item, line, line_discount, line_tax in zip(items, lines, evaluation.line_discounts, line_taxes):
            product = locked[item.product_id]
            OrderItem.objects.create(
                order=order,
                product=product,
                product_name=product.name,
                sku=product.sku,
                color=(product.specifications or {}).get('color', ''),
                size=(product.specifications or {}).get('size', ''),
                quantity=item.quantity,
                unit_price=line['unit_price'],
                discount=line_discount,
                tax=line_tax,
                line_total=_money(line['unit_price'] * item.quantity) - line_discount,
                supplier_code=product.supplier_code,
                supplier_name=product.vendor,
            )
            if product.track_inventory:
                updated = Product.objects.filter(pk=product.pk, stock_quantity__gte=item.quantity) \
                    .update(stock_quantity=F('stock_quantity') - item.quantity)
                if not updated:
                    raise InsufficientStock(f'Not enough stock for {product.name}.')

        discount_ids = [applied['id'] for applied in evaluation.applied_discounts]
        if discount_ids:
            Discount.objects.filter(pk__in=discount_ids).update(times_used=F('times_used') + 1)
            # update() sends no post_save signal
            transaction.on_commit(invalidate_discounts_cache)
        if coupon:
            Coupon.objects.filter(pk=coupon.pk).update(times_used=F('times_used') + 1)

        cart.items.all().delete()
        transaction.on_commit(invalidate_products_cache)

    logger.info(f"Order {order.order_number} placed by {user.username}: total {order.total}")
    return order


# Order life cycle

def restore_stock(order):
    for item in order.items.select_related('product'):
        if item.product_id and item.product.track_inventory:
            Product.objects.filter(pk=item.product_id).update(stock_quantity=F('stock_quantity') + item.quantity)


def transition_order(order, new_status, tracking_number=None, estimated_delivery=None):
    """Move an order to a new status; cancelling puts the stock back"""
    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order.pk)
        if new_status not in dict(Order.STATUS_CHOICES):
            raise InvalidTransition(f'Unknown status {new_status}.')
        if not order.can_transition_to(new_status):
            raise InvalidTransition(f'Cannot change an order from {order.status} to {new_status}.')

        old_status = order.status
        order.status = new_status
        if tracking_number:
            order.tracking_number = tracking_number
        if estimated_delivery:
            order.estimated_delivery = estimated_delivery
        if new_status == 'DELIVERED' and order.payment_type == 'CASH_ON_DELIVERY':
            order.payment_status = 'COMPLETED'
        if new_status == 'CANCELLED':
            restore_stock(order)
            if order.payment_status == 'COMPLETED':
                order.payment_status = 'REFUNDED'
            transaction.on_commit(invalidate_products_cache)
        order.save()

    logger.info(f"Order {order.order_number}: {old_status} -> {new_status}")
    return order, old_status


def order_stats(queryset):
    """Counts by status, revenue of non-cancelled orders and average order value"""
    by_status = {row['status']: row['total'] for row in
                 queryset.values('status').annotate(total=Count('id')).order_by('status')}
    revenue_orders = queryset.exclude(status='CANCELLED')
    revenue = revenue_orders.aggregate(total=Sum('total'))['total'] or ZERO
    count = revenue_orders.count()
    return {
        'total_orders': sum(by_status.values()),
        'pending_orders': by_status.get('PENDING', 0),
        'by_status': {status: by_status.get(status, 0) for status, _ in Order.STATUS_CHOICES},
        'total_revenue': str(_money(revenue)),
        'average_order_value': str(_money(revenue / count) if count else ZERO),
    }


def items_by_supplier(order):
    """Order items grouped by supplier, for dispatching to each supplier"""
    groups = {}
    for item in order.items.all():
        key = item.supplier_code or ''
        group = groups.setdefault(key, {
            'supplier_code': item.supplier_code,
            'supplier_name': item.supplier_name,
            'items': [],
            'subtotal': ZERO,
        })
        group['items'].append({
            'id': item.id,
            'product_name': item.product_name,
            'sku': item.sku,
            'quantity': item.quantity,
            'unit_price': str(item.unit_price),
            'line_total': str(item.line_total),
        })
        group['subtotal'] += item.line_total
    return [{**group, 'subtotal': str(group['subtotal'])} for group in groups.values()]

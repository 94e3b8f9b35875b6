"""
Price calculation

calculate_price() prices a quantity of one product against simple discount
rules (volume tiers, minimum purchase, promotional percentages) and falls back
to the product's own sale configuration. evaluate_cart() applies template based
Discount rows to a whole cart.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
HUNDRED = Decimal('100')

# Templates priced per product by calculate_price(); the rest only make sense on a cart
PRODUCT_LEVEL_TEMPLATES = ('', 'tiered_volume', 'flash_sale', 'seasonal', 'clearance', 'loyalty_vip', 'welcome')
FLAT_TEMPLATES = ('', 'flash_sale', 'seasonal', 'clearance', 'loyalty_vip', 'welcome')


def to_decimal(value, default=ZERO):
    if value in (None, ''):
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def money(value):
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class PriceCalculation:
    base_price: Decimal
    quantity: int
    subtotal: Decimal
    discount: Decimal
    discount_percentage: Decimal
    final_price: Decimal
    total_savings: Decimal
    applied_discounts: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self):
        return {
            'base_price': str(self.base_price),
            'quantity': self.quantity,
            'subtotal': str(self.subtotal),
            'discount': str(self.discount),
            'discount_percentage': str(self.discount_percentage),
            'final_price': str(self.final_price),
            'total_savings': str(self.total_savings),
            'applied_discounts': [
                {**applied, 'value': str(applied['value']), 'savings': str(applied['savings'])}
                for applied in self.applied_discounts
            ],
        }


def _applied(rule, savings):
    return {
        'id': rule.get('id'),
        'name': rule.get('name', ''),
        'type': rule.get('type'),
        'value': to_decimal(rule.get('value')),
        'savings': money(savings),
    }


def calculate_price(base_price, quantity, discounts=None, product_config=None) -> PriceCalculation:
    """
    Price `quantity` units of a product.

    discounts is a list of rules: {id, name, type, value, value_type,
    min_quantity, min_purchase_amount, conditions: {quantity_tiers: [...]}}
    where type is tiered_volume, min_purchase or promotional. Volume tiers are
    applied first (best single tier wins), then minimum purchase rules, then
    promotional rules. product_config ({price_sale, discount_percentage}) is
    only used when no rule applied.
    """
    base_price = money(base_price)
    quantity = int(quantity)
    discounts = discounts or []
    subtotal = money(base_price * quantity)
    final_price = subtotal
    total_savings = ZERO
    applied = []

    best_rule, best_savings = None, ZERO
    for rule in discounts:
        if rule.get('type') != 'tiered_volume':
            continue
        for tier in (rule.get('conditions') or {}).get('quantity_tiers') or []:
            min_quantity = to_decimal(tier.get('min_quantity'))
            max_quantity = tier.get('max_quantity')
            if quantity < min_quantity or (max_quantity not in (None, '') and quantity > to_decimal(max_quantity)):
                continue
            if to_decimal(tier.get('discount_percentage')) > 0:
                savings = subtotal * to_decimal(tier['discount_percentage']) / HUNDRED
            elif to_decimal(tier.get('discount_fixed')) > 0:
                savings = to_decimal(tier['discount_fixed']) * quantity
            else:
                continue
            if savings > best_savings:
                best_rule, best_savings = rule, savings
    if best_rule is not None:
        best_savings = min(money(best_savings), final_price)
        total_savings += best_savings
        final_price -= best_savings
        applied.append(_applied(best_rule, best_savings))

    for rule in discounts:
        if rule.get('type') != 'min_purchase':
            continue
        minimum = to_decimal(rule.get('min_purchase_amount'))
        if minimum <= 0 or subtotal < minimum:
            continue
        savings = min(money(final_price * to_decimal(rule.get('value')) / HUNDRED), final_price)
        if savings > 0:
            total_savings += savings
            final_price -= savings
            applied.append(_applied(rule, savings))

    for rule in discounts:
        if rule.get('type') != 'promotional':
            continue
        if rule.get('min_quantity') and quantity < to_decimal(rule['min_quantity']):
            continue
        value = to_decimal(rule.get('value'))
        if rule.get('value_type') == 'fixed':
            savings = value * quantity
        else:
            savings = final_price * value / HUNDRED
        savings = min(money(savings), final_price)
        if savings > 0:
            total_savings += savings
            final_price -= savings
            applied.append(_applied(rule, savings))

    if not applied and product_config:
        price_sale = to_decimal(product_config.get('price_sale'))
        percentage = to_decimal(product_config.get('discount_percentage'))
        if price_sale > 0:
            sale_total = money(price_sale * quantity)
            savings = subtotal - sale_total
            if savings > 0:
                total_savings = savings
                final_price = sale_total
                applied.append(_applied({'id': 'product-sale', 'name': 'Sale price', 'type': 'fixed',
                                         'value': price_sale}, savings))
        elif percentage > 0:
            savings = money(subtotal * percentage / HUNDRED)
            if savings > 0:
                total_savings = savings
                final_price = subtotal - savings
                applied.append(_applied({'id': 'product-discount', 'name': 'Product discount',
                                         'type': 'percentage', 'value': percentage}, savings))

    discount_percentage = (total_savings / subtotal * HUNDRED) if subtotal > 0 else ZERO
    return PriceCalculation(
        base_price=base_price,
        quantity=quantity,
        subtotal=subtotal,
        discount=money(total_savings),
        discount_percentage=discount_percentage.quantize(CENT, rounding=ROUND_HALF_UP),
        final_price=max(money(final_price), ZERO),
        total_savings=money(total_savings),
        applied_discounts=applied,
    )


def _format_amount(value):
    # 1,234.50 -> 1.234,50
    return f"{money(value):,.2f}".replace(',', '_').replace('.', ',').replace('_', '.')


def format_price_calculation(result: PriceCalculation):
    """Display strings for a PriceCalculation"""
    return {
        'subtotal': f"${_format_amount(result.subtotal)}",
        'discount': f"-${_format_amount(result.discount)}" if result.discount > 0 else None,
        'discount_percentage': f"{result.discount_percentage.normalize():f}%" if result.discount_percentage > 0 else None,
        'final_price': f"${_format_amount(result.final_price)}",
        'savings': f"${_format_amount(result.total_savings)}" if result.total_savings > 0 else None,
    }


def _value_spec(discount, config):
    """('percentage' | 'fixed', value) for flat discounts"""
    value_type = config.get('discount_type')
    if value_type not in ('percentage', 'fixed'):
        value_type = 'fixed' if discount.discount_type == 'fixed_amount' else 'percentage'
    value = to_decimal(config.get('discount_value'), None)
    if value is None:
        value = to_decimal(discount.discount_value)
    return value_type, value


def discount_rule(discount):
    """
    calculate_price() rule for a Discount row, or None when the discount only
    applies to whole carts (bundles, 3x2, spend thresholds...).
    """
    template = discount.template or ''
    if template not in PRODUCT_LEVEL_TEMPLATES:
        return None
    config = discount.template_config or {}
    conditions = discount.conditions or {}
    value_type, value = _value_spec(discount, config)
    rule = {
        'id': discount.code or discount.pk,
        'name': discount.name,
        'value': value,
        'value_type': value_type,
        'min_quantity': conditions.get('min_quantity'),
        'min_purchase_amount': discount.min_purchase_amount,
    }
    tiers = config.get('tiers') or conditions.get('tier_structure')
    if template == 'tiered_volume' or (discount.discount_type == 'tiered_percentage' and tiers):
        quantity_tiers = []
        for tier in tiers or []:
            entry = {'min_quantity': tier.get('min_qty'), 'max_quantity': tier.get('max_qty')}
            if tier.get('discount_type', 'percentage') == 'percentage':
                entry['discount_percentage'] = tier.get('discount')
            else:
                entry['discount_fixed'] = tier.get('discount')
            quantity_tiers.append(entry)
        rule.update({'type': 'tiered_volume', 'conditions': {'quantity_tiers': quantity_tiers}})
    elif discount.min_purchase_amount and value_type == 'percentage':
        rule['type'] = 'min_purchase'
    else:
        rule['type'] = 'promotional'
    return rule


def product_match_keys(product):
    """Lower-cased identifiers a discount's applicable_to rules can target"""
    keys = {
        'product': {str(product.id), (product.sku or '').lower()},
        'category': set(),
        'brand': set(),
        'tag': {str(tag).lower() for tag in (product.tags or [])},
    }
    for category in (product.category, product.sub_category):
        if category:
            keys['category'] |= {str(category.id), category.name.lower(), category.slug.lower()}
    if product.brand:
        keys['brand'] |= {str(product.brand.id), product.brand.name.lower(), product.brand.slug.lower()}
    return keys


def matches_rules(rules, keys):
    """True when rules is empty, targets all products, or names one of the keys"""
    if not rules:
        return True
    for rule in rules:
        if not isinstance(rule, dict):
            continue
        rule_type = rule.get('type')
        if rule_type == 'all_products':
            return True
        value = rule.get('value')
        values = value if isinstance(value, list) else [value]
        values = {str(v).lower() for v in values if v is not None}
        if values & keys.get(rule_type, set()):
            return True
    return False


def line_from_product(product, quantity, unit_price):
    """Cart line for evaluate_cart()"""
    return {
        'product_id': product.id,
        'sku': product.sku,
        'category_id': product.category_id,
        'brand_id': product.brand_id,
        'quantity': quantity,
        'unit_price': unit_price,
        'on_sale': bool(product.price_sale and product.price_sale < product.price),
        'keys': product_match_keys(product),
    }


def _line_keys(line):
    if line.get('keys'):
        return line['keys']
    keys = {
        'product': {str(line.get('product_id')), str(line.get('sku') or '').lower()},
        'category': {str(value) for value in (line.get('category_id'), line.get('sub_category_id')) if value},
        'brand': {str(line['brand_id'])} if line.get('brand_id') else set(),
        'tag': {str(tag).lower() for tag in line.get('tags') or []},
    }
    return keys


@dataclass
class CartEvaluation:
    subtotal: Decimal
    line_discounts: List[Decimal]
    order_discount: Decimal
    free_shipping: bool
    applied_discounts: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total_discount(self):
        return money(sum(self.line_discounts, ZERO) + self.order_discount)

    def to_dict(self):
        return {
            'subtotal': str(self.subtotal),
            'line_discounts': [str(amount) for amount in self.line_discounts],
            'order_discount': str(self.order_discount),
            'total_discount': str(self.total_discount),
            'free_shipping': self.free_shipping,
            'applied_discounts': [{**applied, 'amount': str(applied['amount'])} for applied in self.applied_discounts],
        }


@dataclass
class _Outcome:
    discount: Any
    line_amounts: List[Decimal]
    order_amount: Decimal = ZERO
    free_shipping: bool = False

    @property
    def amount(self):
        return sum(self.line_amounts, ZERO) + self.order_amount


def _flat(value_type, value, line):
    if value_type == 'fixed':
        return min(value * line['quantity'], line['total'])
    return line['total'] * value / HUNDRED


def _tier_for(tiers, quantity):
    for tier in tiers or []:
        if not isinstance(tier, dict):
            continue
        min_qty = to_decimal(tier.get('min_qty'))
        max_qty = to_decimal(tier.get('max_qty'), None)
        if quantity >= min_qty and (max_qty is None or quantity <= max_qty):
            return tier
    return None


def _customer_matches(discount, customer):
    customer_type = (discount.customer_type or 'all').lower()
    if customer_type == 'all':
        return True
    return bool(customer) and str(customer.get('customer_type') or '').lower() == customer_type


def _used_up_by(discount, customer):
    """True when the customer already reached the discount's per-customer limit"""
    limit = discount.usage_limit_per_customer
    if not limit or not customer:
        return False
    return (customer.get('discount_usage') or {}).get(discount.pk, 0) >= limit


def _outcome(discount, lines, eligible, customer):
    template = discount.template or ''
    config = discount.template_config or {}
    conditions = discount.conditions or {}
    amounts = [ZERO] * len(lines)
    outcome = _Outcome(discount, amounts)

    if template == 'free_shipping':
        minimum = to_decimal(config.get('min_purchase_amount'), None)
        if minimum is None:
            minimum = to_decimal(discount.min_purchase_amount)
        outcome.free_shipping = sum((lines[i]['total'] for i in eligible), ZERO) >= minimum
        return outcome if outcome.free_shipping else None

    if template == 'buy_x_get_y':
        buy = int(to_decimal(config.get('buy_quantity')))
        pay = to_decimal(config.get('pay_quantity'), None)
        pay = int(pay) if pay is not None else max(buy - int(to_decimal(config.get('free_quantity'))), 1)
        if buy < 1 or pay >= buy:
            return None
        for i in eligible:
            free_units = (lines[i]['quantity'] // buy) * (buy - pay)
            amounts[i] = free_units * lines[i]['unit_price']
        return outcome

    if template == 'bogo' or (not template and discount.discount_type == 'bogo'):
        buy = int(to_decimal(config.get('buy_quantity'), Decimal('1')))
        get = int(to_decimal(config.get('get_quantity'), Decimal('1')))
        if buy < 1 or get < 1:
            return None
        bogo_type = config.get('bogo_type', 'free')
        get_discount = HUNDRED if bogo_type == 'free' else to_decimal(config.get('get_discount'))
        for i in eligible:
            units = (lines[i]['quantity'] // (buy + get)) * get
            unit_price = lines[i]['unit_price']
            if bogo_type == 'fixed':
                amounts[i] = units * min(get_discount, unit_price)
            else:
                amounts[i] = units * unit_price * get_discount / HUNDRED
        return outcome

    tiers = config.get('tiers') or conditions.get('tier_structure')
    if template == 'tiered_volume' or (not template and discount.discount_type == 'tiered_percentage' and tiers):
        for i in eligible:
            tier = _tier_for(tiers, lines[i]['quantity'])
            if tier:
                amounts[i] = _flat(tier.get('discount_type', 'percentage'), to_decimal(tier.get('discount')), lines[i])
        return outcome

    if template == 'spend_threshold':
        spend = sum((lines[i]['total'] for i in eligible), ZERO)
        if config.get('progressive'):
            reached = [tier for tier in config.get('tiers') or []
                       if isinstance(tier, dict) and spend >= to_decimal(tier.get('min_spend'))]
            if not reached:
                return None
            tier = max(reached, key=lambda t: to_decimal(t.get('min_spend')))
            value_type, value = tier.get('discount_type', 'percentage'), to_decimal(tier.get('discount'))
        else:
            threshold = to_decimal(config.get('threshold'), None)
            if threshold is None or spend < threshold:
                return None
            value_type, value = config.get('discount_type', 'fixed'), to_decimal(config.get('reward'))
        outcome.order_amount = spend * value / HUNDRED if value_type == 'percentage' else min(value, spend)
        return outcome

    if template == 'bundle':
        by_product = {}
        for line in lines:
            by_product.setdefault(str(line.get('product_id')), []).append(line)
        bundles, bundle_price = None, ZERO
        for item in config.get('required_products') or []:
            required = int(to_decimal(item.get('quantity'), Decimal('1'))) or 1
            found = by_product.get(str(item.get('product_id')))
            if not found:
                return None
            available = sum(line['quantity'] for line in found)
            count = available // required
            bundles = count if bundles is None else min(bundles, count)
            bundle_price += found[0]['unit_price'] * required
        if not bundles:
            return None
        value_type, value = _value_spec(discount, config)
        if value_type == 'percentage':
            outcome.order_amount = bundle_price * bundles * value / HUNDRED
        else:
            outcome.order_amount = min(value * bundles, bundle_price * bundles)
        return outcome

    if template == 'mix_and_match':
        rules = [{'type': 'category', 'value': value} for value in config.get('from_categories') or []]
        rules += [{'type': 'product', 'value': value} for value in config.get('from_products') or []]
        pool = [i for i in eligible if matches_rules(rules, lines[i]['keys'])]
        if sum(lines[i]['quantity'] for i in pool) < int(to_decimal(config.get('required_quantity'), Decimal('2'))):
            return None
        value_type, value = _value_spec(discount, config)
        if value_type == 'percentage':
            for i in pool:
                amounts[i] = lines[i]['total'] * value / HUNDRED
        else:
            outcome.order_amount = min(value, sum((lines[i]['total'] for i in pool), ZERO))
        return outcome

    if template in FLAT_TEMPLATES:
        if template == 'welcome' and conditions.get('first_purchase_only', True):
            if not customer or not customer.get('is_first_purchase'):
                return None
        if template == 'loyalty_vip':
            tier = str(conditions.get('customer_tier') or config.get('tier') or '').lower()
            customer_tier = str((customer or {}).get('tier') or '').lower()
            if not tier or tier != customer_tier:
                return None
        exclude_sale = template == 'seasonal' and (conditions.get('exclude_sale_items') or config.get('exclude_sale_items'))
        min_quantity = int(to_decimal(conditions.get('min_quantity')))
        value_type, value = _value_spec(discount, config)
        for i in eligible:
            if exclude_sale and lines[i].get('on_sale'):
                continue
            if lines[i]['quantity'] < min_quantity:
                continue
            amounts[i] = _flat(value_type, value, lines[i])
        return outcome

    return None


def _cap(outcome):
    """Apply max_discount_amount; a capped discount becomes an order level amount"""
    cap = outcome.discount.max_discount_amount
    if cap is not None and outcome.amount > cap:
        outcome.line_amounts = [ZERO] * len(outcome.line_amounts)
        outcome.order_amount = to_decimal(cap)
    return outcome


def evaluate_cart(lines, discounts, customer: Optional[dict] = None, now=None) -> CartEvaluation:
    """
    Apply discounts to a cart.

    lines: [{product_id, sku, category_id, brand_id, quantity, unit_price, ...}]
    (see line_from_product()). customer: {customer_type, tier,
    is_first_purchase, discount_usage} or None; discount_usage maps discount
    ids to the number of orders of this customer that used them.
    Non-cumulative discounts compete and only the biggest one is kept;
    cumulative ones stack on top of it.
    """
    normalized = []
    for line in lines:
        quantity = int(line.get('quantity') or 0)
        unit_price = money(line.get('unit_price'))
        normalized.append({**line, 'quantity': quantity, 'unit_price': unit_price,
                           'total': money(unit_price * quantity), 'keys': _line_keys(line)})
    subtotal = money(sum((line['total'] for line in normalized), ZERO))

    outcomes = []
    for discount in discounts:
        if not discount.is_current(now):
            continue
        if not _customer_matches(discount, customer) or _used_up_by(discount, customer):
            continue
        if discount.min_purchase_amount and subtotal < discount.min_purchase_amount:
            continue
        eligible = [i for i, line in enumerate(normalized) if matches_rules(discount.applicable_to, line['keys'])]
        if not eligible:
            continue
        outcome = _outcome(discount, normalized, eligible, customer)
        if outcome is None or (outcome.amount <= 0 and not outcome.free_shipping):
            continue
        outcomes.append(_cap(outcome))

    chosen = [outcome for outcome in outcomes if outcome.discount.is_cumulative or outcome.free_shipping]
    competing = [outcome for outcome in outcomes if outcome not in chosen]
    if competing:
        chosen.insert(0, max(competing, key=lambda outcome: (outcome.amount, outcome.discount.priority)))

    line_discounts = [ZERO] * len(normalized)
    order_discount = ZERO
    free_shipping = False
    applied = []
    for outcome in chosen:
        for i, amount in enumerate(outcome.line_amounts):
            line_discounts[i] += amount
        order_discount += outcome.order_amount
        free_shipping = free_shipping or outcome.free_shipping
        applied.append({
            'id': outcome.discount.pk,
            'code': outcome.discount.code,
            'name': outcome.discount.name,
            'template': outcome.discount.template,
            'amount': money(outcome.amount),
            'free_shipping': outcome.free_shipping,
        })

    line_discounts = [min(money(amount), line['total']) for amount, line in zip(line_discounts, normalized)]
    order_discount = min(money(order_discount), subtotal - sum(line_discounts, ZERO))
    if applied:
        logger.debug(f"Cart discounts applied: {[entry['code'] for entry in applied]}")
    return CartEvaluation(
        subtotal=subtotal,
        line_discounts=line_discounts,
        order_discount=order_discount,
        free_shipping=free_shipping,
        applied_discounts=applied,
    )

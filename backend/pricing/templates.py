"""
Discount templates

Each template is a named promotion shape (3x2, volume tiers, bundles...) with
its own configuration. The catalogue feeds the template picker of the admin
dashboard; the validators check a configuration before a Discount is created
from it.
"""
from decimal import Decimal
from backend.core.exceptions import TemplateConfigError

DISCOUNT_TEMPLATES = [
    {
        'id': 'buy_x_get_y',
        'name': 'Buy X Get Y',
        'description': '3x2, 2x1 and "buy 2 get 1 free" promotions',
        'icon': 'Gift',
        'color': '#FF6B6B',
        'examples': ['3x2', '2x1', 'Buy 3 pay 2'],
        'use_cases': ['Clear stock', 'Increase units per order', 'Seasonal promotions'],
        'complexity': 'simple',
        'popular': True,
    },
    {
        'id': 'tiered_volume',
        'name': 'Volume Discount',
        'description': 'Progressive discounts: the more units, the bigger the discount',
        'icon': 'TrendingUp',
        'color': '#4ECDC4',
        'examples': ['5-9 units: 10%', '10-19: 20%', '20+: 30%'],
        'use_cases': ['Wholesalers', 'Bulk purchases', 'B2B'],
        'complexity': 'medium',
        'popular': True,
    },
    {
        'id': 'bundle',
        'name': 'Bundle',
        'description': 'Discount for buying specific products together',
        'icon': 'Package',
        'color': '#95E1D3',
        'examples': ['Laptop + Mouse: 15% off', 'Full gaming setup: $200 off'],
        'use_cases': ['Cross-selling', 'Complementary products', 'Raise average ticket'],
        'complexity': 'medium',
        'popular': False,
    },
    {
        'id': 'bogo',
        'name': 'BOGO (Buy One Get One)',
        'description': 'Buy one and get another free or discounted',
        'icon': 'ShoppingBag',
        'color': '#F38181',
        'examples': ['Buy 1 get 1 free', 'Second unit at 50%'],
        'use_cases': ['Double sales', 'Trending products', 'Attractive promotions'],
        'complexity': 'simple',
        'popular': True,
    },
    {
        'id': 'spend_threshold',
        'name': 'Spend and Save',
        'description': 'Discount when the order reaches a minimum amount',
        'icon': 'DollarSign',
        'color': '#AA96DA',
        'examples': ['Spend $100, get $20 off', 'Progressive discounts by amount'],
        'use_cases': ['Raise average ticket', 'Encourage larger orders'],
        'complexity': 'simple',
        'popular': False,
    },
    {
        'id': 'mix_and_match',
        'name': 'Mix & Match',
        'description': 'Pick several products from a category and get a discount',
        'icon': 'Layers',
        'color': '#FCBAD3',
        'examples': ['Pick 3 snacks: 20% off', 'Any 5 beauty products'],
        'use_cases': ['Product variety', 'Large categories', 'Freedom of choice'],
        'complexity': 'medium',
        'popular': False,
    },
    {
        'id': 'flash_sale',
        'name': 'Flash Sale',
        'description': 'Time-limited discount that creates urgency',
        'icon': 'Zap',
        'color': '#FF9A3C',
        'examples': ['24 hours: 40% off', 'Lightning deal'],
        'use_cases': ['Create urgency', 'Clear stock quickly', 'Special events'],
        'complexity': 'simple',
        'popular': True,
    },
    {
        'id': 'loyalty_vip',
        'name': 'VIP / Loyalty',
        'description': 'Exclusive discounts for premium clients',
        'icon': 'Crown',
        'color': '#FFD700',
        'examples': ['VIP: 25% off', 'Gold members: 30% off'],
        'use_cases': ['Retention', 'Premium clients', 'Loyalty programs'],
        'complexity': 'simple',
        'popular': False,
    },
    {
        'id': 'welcome',
        'name': 'Welcome',
        'description': 'Discount on the first purchase of new clients',
        'icon': 'UserPlus',
        'color': '#6BCB77',
        'examples': ['First purchase: 15% off', 'Welcome: $10 off'],
        'use_cases': ['Client acquisition', 'First impression', 'Conversion'],
        'complexity': 'simple',
        'popular': False,
    },
    {
        'id': 'seasonal',
        'name': 'Seasonal / Holiday',
        'description': 'Promotions for special events and holidays',
        'icon': 'Calendar',
        'color': '#C70039',
        'examples': ['Black Friday: 30%', 'Cyber Monday', 'Christmas'],
        'use_cases': ['Retail calendar dates', 'Yearly events', 'Mass campaigns'],
        'complexity': 'simple',
        'popular': True,
    },
    {
        'id': 'free_shipping',
        'name': 'Free Shipping',
        'description': 'No shipping cost above a minimum order amount',
        'icon': 'Truck',
        'color': '#3498DB',
        'examples': ['Free shipping on orders over $75'],
        'use_cases': ['Reduce abandoned carts', 'Encourage purchase', 'Compete with marketplaces'],
        'complexity': 'simple',
        'popular': False,
    },
    {
        'id': 'clearance',
        'name': 'Clearance',
        'description': 'Deep discounts to clear inventory',
        'icon': 'Percent',
        'color': '#E74C3C',
        'examples': ['Last chance: 70% off', 'Final clearance'],
        'use_cases': ['Clear stock', 'Discontinued products', 'End of season'],
        'complexity': 'simple',
        'popular': False,
    },
]

TEMPLATES_BY_ID = {template['id']: template for template in DISCOUNT_TEMPLATES}

VALUE_TYPES = ('percentage', 'fixed')
LOYALTY_TIERS = ('bronze', 'silver', 'gold', 'platinum', 'vip')
URGENCY_LEVELS = ('low', 'medium', 'high')


def _number(config, key, errors, required=True):
    value = config.get(key)
    if value in (None, ''):
        if required:
            errors[key] = 'This field is required.'
        return None
    try:
        return Decimal(str(value))
    except (ArithmeticError, ValueError):
        errors[key] = 'Must be a number.'
        return None


def _check_value(config, errors, key='discount_value', type_key='discount_type'):
    """discount_type percentage|fixed and a positive value (at most 100 for percentages)"""
    value_type = config.get(type_key, 'percentage')
    if value_type not in VALUE_TYPES:
        errors[type_key] = f'Must be one of {", ".join(VALUE_TYPES)}.'
    value = _number(config, key, errors)
    if value is not None:
        if value <= 0:
            errors[key] = 'Must be greater than 0.'
        elif value_type == 'percentage' and value > 100:
            errors[key] = 'A percentage cannot exceed 100.'
    return value


def validate_buy_x_get_y(config, errors):
    buy = _number(config, 'buy_quantity', errors)
    pay = _number(config, 'pay_quantity', errors, required=False)
    free = _number(config, 'free_quantity', errors, required=False)
    if buy is not None and buy < 1:
        errors['buy_quantity'] = 'Must be at least 1.'
    if pay is None and free is None:
        errors['pay_quantity'] = 'Set pay_quantity or free_quantity.'
    if pay is not None and buy is not None and not 1 <= pay < buy:
        errors['pay_quantity'] = 'Must be at least 1 and lower than buy_quantity.'
    if free is not None and free < 1:
        errors['free_quantity'] = 'Must be at least 1.'
    elif pay is None and free is not None and buy is not None and free >= buy:
        errors['free_quantity'] = 'Must be lower than buy_quantity.'


def validate_tiers(tiers, errors, key='tiers'):
    if not isinstance(tiers, list) or not tiers:
        errors[key] = 'At least one tier is required.'
        return
    parsed = []
    for index, tier in enumerate(tiers):
        if not isinstance(tier, dict):
            errors[f'{key}[{index}]'] = 'Must be an object.'
            continue
        tier_errors = {}
        min_qty = _number(tier, 'min_qty', tier_errors)
        max_qty = _number(tier, 'max_qty', tier_errors, required=False)
        _check_value(tier, tier_errors, key='discount')
        if min_qty is not None and min_qty < 1:
            tier_errors['min_qty'] = 'Must be at least 1.'
        if min_qty is not None and max_qty is not None and max_qty < min_qty:
            tier_errors['max_qty'] = 'Must be greater than or equal to min_qty.'
        if tier_errors:
            errors[f'{key}[{index}]'] = tier_errors
        elif min_qty is not None:
            parsed.append((min_qty, max_qty))
    if len(parsed) != len(tiers):
        return
    parsed.sort(key=lambda pair: pair[0])
    for position, (min_qty, max_qty) in enumerate(parsed):
        is_last = position == len(parsed) - 1
        if max_qty is None and not is_last:
            errors[key] = 'Only the last tier may be open-ended.'
            return
        if not is_last and parsed[position + 1][0] <= max_qty:
            errors[key] = 'Tiers must not overlap.'
            return


def validate_tiered_volume(config, errors):
    validate_tiers(config.get('tiers'), errors)


def validate_bundle(config, errors):
    products = config.get('required_products')
    if not isinstance(products, list) or len(products) < 2:
        errors['required_products'] = 'A bundle needs at least two products.'
    else:
        for index, item in enumerate(products):
            if not isinstance(item, dict) or not item.get('product_id'):
                errors[f'required_products[{index}]'] = 'product_id is required.'
                continue
            quantity = _number(item, 'quantity', {}, required=False)
            if quantity is None or quantity < 1:
                errors[f'required_products[{index}]'] = 'quantity must be at least 1.'
    _check_value(config, errors)


def validate_bogo(config, errors):
    bogo_type = config.get('bogo_type', 'free')
    if bogo_type not in ('free', 'percentage', 'fixed'):
        errors['bogo_type'] = 'Must be free, percentage or fixed.'
    for key in ('buy_quantity', 'get_quantity'):
        value = _number(config, key, errors)
        if value is not None and value < 1:
            errors[key] = 'Must be at least 1.'
    get_discount = _number(config, 'get_discount', errors, required=bogo_type != 'free')
    if get_discount is not None and bogo_type != 'fixed' and not 0 < get_discount <= 100:
        errors['get_discount'] = 'Must be greater than 0 and at most 100.'


def validate_spend_threshold(config, errors):
    if config.get('progressive'):
        tiers = config.get('tiers')
        if not isinstance(tiers, list) or not tiers:
            errors['tiers'] = 'At least one tier is required.'
            return
        previous = None
        for index, tier in enumerate(tiers):
            if not isinstance(tier, dict):
                errors[f'tiers[{index}]'] = 'Must be an object.'
                continue
            tier_errors = {}
            min_spend = _number(tier, 'min_spend', tier_errors)
            _check_value(tier, tier_errors, key='discount')
            if tier_errors:
                errors[f'tiers[{index}]'] = tier_errors
                continue
            if previous is not None and min_spend <= previous:
                errors['tiers'] = 'min_spend must increase from one tier to the next.'
            previous = min_spend
    else:
        threshold = _number(config, 'threshold', errors)
        if threshold is not None and threshold <= 0:
            errors['threshold'] = 'Must be greater than 0.'
        _check_value(config, errors, key='reward')


def validate_mix_and_match(config, errors):
    required = _number(config, 'required_quantity', errors)
    if required is not None and required < 2:
        errors['required_quantity'] = 'Must be at least 2.'
    if not config.get('from_categories') and not config.get('from_products'):
        errors['from_categories'] = 'Pick at least one category or product.'
    _check_value(config, errors)


def validate_flash_sale(config, errors):
    hours = _number(config, 'duration_hours', errors)
    if hours is not None and hours <= 0:
        errors['duration_hours'] = 'Must be greater than 0.'
    if config.get('urgency_level', 'medium') not in URGENCY_LEVELS:
        errors['urgency_level'] = f'Must be one of {", ".join(URGENCY_LEVELS)}.'
    _check_value(config, errors)


def validate_loyalty_vip(config, errors):
    if config.get('tier') not in LOYALTY_TIERS:
        errors['tier'] = f'Must be one of {", ".join(LOYALTY_TIERS)}.'
    _check_value(config, errors)


def validate_simple_value(config, errors):
    _check_value(config, errors)


def validate_free_shipping(config, errors):
    minimum = _number(config, 'min_purchase_amount', errors)
    if minimum is not None and minimum < 0:
        errors['min_purchase_amount'] = 'Cannot be negative.'


VALIDATORS = {
    'buy_x_get_y': validate_buy_x_get_y,
    'tiered_volume': validate_tiered_volume,
    'bundle': validate_bundle,
    'bogo': validate_bogo,
    'spend_threshold': validate_spend_threshold,
    'mix_and_match': validate_mix_and_match,
    'flash_sale': validate_flash_sale,
    'loyalty_vip': validate_loyalty_vip,
    'welcome': validate_simple_value,
    'seasonal': validate_simple_value,
    'free_shipping': validate_free_shipping,
    'clearance': validate_simple_value,
}


def validate_template_config(template, config):
    """Raise TemplateConfigError with field errors when the configuration is invalid"""
    if template not in VALIDATORS:
        raise TemplateConfigError(f'Unknown discount template "{template}".', {'template': 'Unknown template.'})
    if not isinstance(config, dict):
        raise TemplateConfigError('Template configuration must be an object.', {'config': 'Must be an object.'})
    errors = {}
    VALIDATORS[template](config, errors)
    if errors:
        raise TemplateConfigError(f'Invalid configuration for template "{template}".', errors)


def validate_discount_config(template, discount_type, config):
    """
    Check the configuration a discount is evaluated with. Templated discounts
    use their template validator; an untemplated bogo still reads
    buy_quantity and get_quantity (default 1) from its configuration.
    """
    if template:
        validate_template_config(template, config)
        return
    if discount_type != 'bogo':
        return
    if not isinstance(config, dict):
        raise TemplateConfigError('Template configuration must be an object.', {'config': 'Must be an object.'})
    errors = {}
    for key in ('buy_quantity', 'get_quantity'):
        value = _number(config, key, errors, required=False)
        if value is not None and value < 1:
            errors[key] = 'Must be at least 1.'
    if errors:
        raise TemplateConfigError('Invalid configuration for a bogo discount.', errors)


def _primary_value(template, config):
    """discount_type and discount_value of the Discount row built from a template"""
    if template == 'tiered_volume':
        best = max(config['tiers'], key=lambda tier: Decimal(str(tier['discount'])))
        value_type = 'tiered_percentage' if best.get('discount_type', 'percentage') == 'percentage' else 'fixed_amount'
        return value_type, Decimal(str(best['discount']))
    if template == 'spend_threshold':
        if config.get('progressive'):
            best = max(config['tiers'], key=lambda tier: Decimal(str(tier['discount'])))
            return 'progressive_percentage', Decimal(str(best['discount']))
        value_type = config.get('discount_type', 'fixed')
        return ('percentage' if value_type == 'percentage' else 'fixed_amount'), Decimal(str(config['reward']))
    if template == 'buy_x_get_y':
        buy = Decimal(str(config['buy_quantity']))
        pay = config.get('pay_quantity')
        if pay in (None, ''):
            pay = buy - Decimal(str(config['free_quantity']))
            if pay < 1:
                pay = Decimal('1')
        return 'percentage', ((buy - Decimal(str(pay))) / buy * 100).quantize(Decimal('0.01'))
    if template == 'bogo':
        return 'bogo', Decimal(str(config.get('get_discount') or 100))
    if template == 'free_shipping':
        return 'fixed_amount', Decimal('0.00')
    value_type = config.get('discount_type', 'percentage')
    return ('percentage' if value_type == 'percentage' else 'fixed_amount'), Decimal(str(config['discount_value']))


def build_discount_payload(template, base, config):
    """
    Discount fields for a template based promotion.

    base carries the common fields (name, description, valid_from, valid_to,
    applicable_to...); config is the template configuration, already validated.
    """
    discount_type, discount_value = _primary_value(template, config)
    payload = dict(base)
    payload.update({
        'template': template,
        'discount_type': discount_type,
        'discount_value': discount_value,
        'template_config': {'promotion_type': template, **config},
    })
    conditions = dict(payload.get('conditions') or {})
    if template == 'welcome':
        conditions['first_purchase_only'] = config.get('first_purchase_only', True)
        payload.setdefault('usage_limit_per_customer', 1)
    if template == 'seasonal' and config.get('exclude_sale_items'):
        conditions['exclude_sale_items'] = True
    if template == 'loyalty_vip':
        conditions['customer_tier'] = config['tier']
        if config.get('customer_type'):
            payload['customer_type'] = config['customer_type']
    if template == 'flash_sale' and config.get('usage_limit'):
        payload.setdefault('usage_limit', int(config['usage_limit']))
    if template == 'tiered_volume':
        conditions['tier_structure'] = config['tiers']
    if config.get('min_purchase_amount') not in (None, ''):
        payload.setdefault('min_purchase_amount', Decimal(str(config['min_purchase_amount'])))
    payload['conditions'] = conditions

    if not payload.get('applicable_to'):
        applicable_to = []
        for category in config.get('applicable_categories') or config.get('from_categories') or []:
            applicable_to.append({'type': 'category', 'value': category})
        for product in config.get('applicable_products') or config.get('from_products') or []:
            applicable_to.append({'type': 'product', 'value': product})
        for brand in config.get('applicable_brands') or []:
            applicable_to.append({'type': 'brand', 'value': brand})
        for tag in config.get('applicable_tags') or []:
            applicable_to.append({'type': 'tag', 'value': tag})
        payload['applicable_to'] = applicable_to
    return payload

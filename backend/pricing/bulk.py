"""Bulk import of price lists, prices and discounts"""
import logging
from datetime import datetime
from decimal import Decimal
from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from backend.core.cache_signals import suspend_cache_signals
from backend.imports.parsers import parse_number, parse_integer, parse_boolean, parse_tags, first_value
from backend.imports.results import BulkImportResult
from .models import PriceList, Price, Discount, STATUS_CHOICES
from .serializers import PriceListSerializer, PriceSerializer, DiscountSerializer

logger = logging.getLogger(__name__)

STATUSES = dict(STATUS_CHOICES)
PERCENTAGE_TYPES = ('percentage', 'tiered_percentage', 'progressive_percentage')
MIN_REASONABLE_PRICE = Decimal('100')
MAX_REASONABLE_PRICE = Decimal('10000000')


def _supported_currencies():
    return [currency.upper() for currency in settings.SUPPORTED_CURRENCIES]


def _decimal(value):
    number = parse_number(value)
    if number is None:
        return None
    return Decimal(str(number)).quantize(Decimal('0.01'))


def _date(value, field, errors):
    """ISO date (or datetime) -> date"""
    if value in (None, ''):
        return None
    if hasattr(value, 'year'):
        return value.date() if hasattr(value, 'hour') else value
    text = str(value).strip()
    parsed = parse_date(text[:10]) if len(text) >= 10 else None
    if parsed is None:
        errors.append(f'{field} must be an ISO date (YYYY-MM-DD)')
    return parsed


def _datetime(value, field, errors):
    if value in (None, ''):
        return None
    if hasattr(value, 'hour'):
        return value
    text = str(value).strip()
    try:
        parsed = parse_datetime(text)
    except ValueError:
        parsed = None
    if parsed is None:
        day = parse_date(text[:10]) if len(text) >= 10 else None
        if day is None:
            errors.append(f'{field} must be an ISO date')
            return None
        parsed = datetime(day.year, day.month, day.day)
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def _periods_overlap(start_a, end_a, start_b, end_b):
    """Open-ended periods (None) extend forever"""
    if start_a and end_b and start_a > end_b:
        return False
    if start_b and end_a and start_b > end_a:
        return False
    return True


# Price lists

def validate_price_list_row(item, index, seen_codes, existing_codes, currencies):
    errors = []
    code = str(first_value(item, 'price_list_id', 'priceListId', 'code')).strip()
    for field in ('name', 'currency', 'country', 'customer_type', 'channel', 'start_date'):
        if item.get(field) in (None, ''):
            errors.append(f'{field} is required')
    if not code:
        errors.append('price_list_id is required')
    elif code in seen_codes or code in existing_codes:
        errors.append(f'duplicate price_list_id {code}')

    currency = str(item.get('currency') or '').strip().upper()
    if currency and currency not in currencies:
        errors.append(f'invalid currency {currency}')

    start_date = _date(item.get('start_date'), 'start_date', errors)
    end_date = _date(item.get('end_date'), 'end_date', errors)
    if start_date and end_date and end_date < start_date:
        errors.append('end_date must be after start_date')

    status = item.get('status') or 'active'
    if status not in STATUSES:
        errors.append(f'invalid status {status}')

    minimum = parse_integer(item.get('minimum_quantity'))
    maximum = parse_integer(item.get('maximum_quantity'))
    if minimum is not None and maximum is not None and maximum < minimum:
        errors.append('maximum_quantity must be greater than minimum_quantity')

    priority = parse_integer(item.get('priority'))
    data = {
        'code': code,
        'name': str(item.get('name') or '').strip(),
        'description': str(item.get('description') or ''),
        'currency': currency,
        'country': str(item.get('country') or '').strip(),
        'region': str(item.get('region') or '').strip(),
        'customer_type': str(item.get('customer_type') or 'all').strip(),
        'channel': str(item.get('channel') or 'all').strip(),
        'applies_to': str(item.get('applies_to') or 'all').strip(),
        'status': status,
        'is_default': bool(parse_boolean(item.get('is_default'))),
        'priority': priority if priority is not None else index + 1,
        'discount_type': str(item.get('discount_type') or ''),
        'start_date': start_date,
        'end_date': end_date,
        'minimum_quantity': minimum,
        'maximum_quantity': maximum,
        'tags': parse_tags(item.get('tags')),
        'notes': str(item.get('notes') or ''),
    }
    return data, errors


def bulk_create_price_lists(items, distributor_code='', dry_run=False):
    result = BulkImportResult('price_lists', total=len(items))
    currencies = _supported_currencies()
    # codes are unique across tenants; priorities and periods only clash within one
    existing_codes = set(PriceList.objects.values_list('code', flat=True))
    existing = list(PriceList.objects.filter(distributor_code=distributor_code)
                    .values('code', 'channel', 'customer_type', 'priority', 'start_date', 'end_date'))
    seen_codes = set()
    duplicate_ids, invalid_currencies, date_conflicts = set(), set(), []
    conflicting_priorities, overlapping_periods = [], []
    valid = []

    for index, item in enumerate(items):
        data, errors = validate_price_list_row(item, index, seen_codes, existing_codes, currencies)
        if any(error.startswith('duplicate') for error in errors):
            duplicate_ids.add(data['code'])
        if any(error.startswith('invalid currency') for error in errors):
            invalid_currencies.add(data['currency'])
        if 'end_date must be after start_date' in errors:
            date_conflicts.append({'index': index, 'price_list_id': data['code']})
        if errors:
            result.add_error(index, item, '; '.join(errors))
            continue
        seen_codes.add(data['code'])

        for other in existing + [entry for _, _, entry in valid]:
            if other['channel'] != data['channel']:
                continue
            if other.get('priority') == data['priority']:
                conflicting_priorities.append({'index': index, 'price_list_id': data['code'], 'with': other['code']})
            if other['customer_type'] == data['customer_type'] and \
                    _periods_overlap(data['start_date'], data['end_date'], other['start_date'], other['end_date']):
                overlapping_periods.append({'index': index, 'price_list_id': data['code'], 'with': other['code']})
        valid.append((index, item, data))

    with transaction.atomic(), suspend_cache_signals():
        for index, item, data in valid:
            price_list = PriceList.objects.create(distributor_code=distributor_code, **data)
            result.add_created(PriceListSerializer(price_list).data)
        if dry_run:
            transaction.set_rollback(True)

    result.validations = {
        'duplicateIds': sorted(duplicate_ids),
        'invalidCurrencies': sorted(invalid_currencies),
        'conflictingPriorities': conflicting_priorities,
        'dateConflicts': date_conflicts,
        'overlappingPeriods': overlapping_periods,
    }
    logger.info(f"Bulk price list import: {result.success_count} created, {result.error_count} errors")
    return result


# Prices

def validate_price_row(item, index, currencies, price_lists):
    errors = []
    for field, label in (('name', 'name'), ('priceId', 'priceId'), ('productSku', 'productSku'),
                         ('productName', 'productName'), ('currency', 'currency'), ('validFrom', 'validFrom')):
        if item.get(field) in (None, ''):
            errors.append(f'{label} is required')

    base_price = _decimal(item.get('basePrice'))
    if base_price is None:
        errors.append('basePrice is required')
    elif base_price <= 0:
        errors.append('basePrice must be greater than 0')

    amounts = {key: _decimal(item.get(key)) for key in (
        'salePrice', 'discountPrice', 'wholesalePrice', 'retailPrice', 'loyaltyPrice', 'corporatePrice',
        'costPrice', 'competitorPrice', 'margin')}
    if base_price:
        for key in ('salePrice', 'discountPrice'):
            if amounts[key] is not None and amounts[key] > base_price:
                errors.append(f'{key} cannot be higher than basePrice')
        if amounts['costPrice'] is not None and amounts['costPrice'] >= base_price:
            errors.append('costPrice must be lower than basePrice')

    currency = str(item.get('currency') or '').strip().upper()
    if currency and currency not in currencies:
        errors.append(f'invalid currency {currency}')

    valid_from = _date(item.get('validFrom'), 'validFrom', errors)
    valid_until = _date(item.get('validUntil'), 'validUntil', errors)
    if valid_from and valid_until and valid_until <= valid_from:
        errors.append('validUntil must be after validFrom')

    min_quantity = parse_integer(item.get('minQuantity'))
    max_quantity = parse_integer(item.get('maxQuantity'))
    min_quantity = 1 if min_quantity is None else min_quantity
    max_quantity = 1000 if max_quantity is None else max_quantity
    if min_quantity < 0:
        errors.append('minQuantity cannot be negative')
    if max_quantity < 1:
        errors.append('maxQuantity must be at least 1')
    elif max_quantity <= min_quantity:
        errors.append('maxQuantity must be greater than minQuantity')

    price_type = item.get('priceType') or 'regular'
    if price_type not in dict(Price.PRICE_TYPE_CHOICES):
        errors.append(f'invalid priceType {price_type}')
    status = item.get('status') or 'active'
    if status not in STATUSES:
        errors.append(f'invalid status {status}')
    market_position = item.get('marketPosition') or ''
    if market_position and market_position not in dict(Price.MARKET_POSITION_CHOICES):
        errors.append(f'invalid marketPosition {market_position}')

    tax_rate = _decimal(item.get('taxRate'))
    tax_rate = Decimal('19.00') if tax_rate is None else tax_rate
    if not Decimal('0') <= tax_rate <= Decimal('100'):
        errors.append('taxRate must be between 0 and 100')

    price_list = None
    price_list_code = str(item.get('priceListId') or '').strip()
    if price_list_code:
        price_list = price_lists.get(price_list_code)
        if price_list is None:
            errors.append(f'price list {price_list_code} does not exist')

    tax_included = parse_boolean(item.get('taxIncluded'))
    priority = parse_integer(item.get('priority'))
    data = {
        'code': str(item.get('priceId') or '').strip(),
        'name': str(item.get('name') or '').strip(),
        'price_list': price_list,
        'product_sku': str(item.get('productSku') or '').strip(),
        'product_name': str(item.get('productName') or '').strip(),
        'base_price': base_price,
        'sale_price': amounts['salePrice'],
        'discount_price': amounts['discountPrice'],
        'wholesale_price': amounts['wholesalePrice'],
        'retail_price': amounts['retailPrice'],
        'loyalty_price': amounts['loyaltyPrice'],
        'corporate_price': amounts['corporatePrice'],
        'cost_price': amounts['costPrice'],
        'competitor_price': amounts['competitorPrice'],
        'margin': amounts['margin'],
        'currency': currency,
        'valid_from': valid_from,
        'valid_until': valid_until,
        'min_quantity': max(min_quantity, 0),
        'max_quantity': max(max_quantity, 1),
        'price_type': price_type,
        'customer_type': item.get('customerType') or 'all',
        'channel': item.get('channel') or 'omnichannel',
        'region': str(item.get('region') or ''),
        'city': str(item.get('city') or ''),
        'zone': str(item.get('zone') or ''),
        'status': status,
        'priority': priority if priority is not None else index + 1,
        'tax_included': True if tax_included is None else tax_included,
        'tax_rate': tax_rate,
        'market_position': market_position,
        'tags': parse_tags(item.get('tags')),
        'notes': str(item.get('notes') or ''),
    }
    return data, errors


def bulk_create_prices(items, distributor_code='', dry_run=False):
    result = BulkImportResult('prices', total=len(items))
    currencies = _supported_currencies()
    price_lists = {price_list.code: price_list
                   for price_list in PriceList.objects.filter(distributor_code=distributor_code)}
    existing_codes = set(Price.objects.values_list('code', flat=True))
    seen_codes = set()
    duplicate_ids, invalid_currencies = set(), set()
    price_conflicts, out_of_range = [], []
    valid = []

    for index, item in enumerate(items):
        data, errors = validate_price_row(item, index, currencies, price_lists)
        code = data['code']
        if code and (code in seen_codes or code in existing_codes):
            errors.append(f'duplicate priceId {code}')
            duplicate_ids.add(code)
        if any(error.startswith('invalid currency') for error in errors):
            invalid_currencies.add(data['currency'])
        if errors:
            result.add_error(index, item, '; '.join(errors))
            continue
        seen_codes.add(code)

        base_price = data['base_price']
        competitor = data['competitor_price']
        if competitor and base_price > competitor * Decimal('1.5'):
            price_conflicts.append({'index': index, 'priceId': code, 'reason': 'basePrice is 50% above competitorPrice'})
        cost = data['cost_price']
        if cost is not None and (base_price - cost) / base_price * 100 < 10:
            price_conflicts.append({'index': index, 'priceId': code, 'reason': 'margin below 10%'})
        if base_price < MIN_REASONABLE_PRICE or base_price > MAX_REASONABLE_PRICE:
            out_of_range.append({'index': index, 'priceId': code, 'basePrice': str(base_price)})
        valid.append((index, item, data))

    with transaction.atomic(), suspend_cache_signals():
        for index, item, data in valid:
            price = Price.objects.create(distributor_code=distributor_code, **data)
            result.add_created(PriceSerializer(price).data)
        if dry_run:
            transaction.set_rollback(True)

    result.validations = {
        'duplicatePriceIds': sorted(duplicate_ids),
        'invalidCurrencies': sorted(invalid_currencies),
        'priceConflicts': price_conflicts,
        'outOfRangePrices': out_of_range,
    }
    logger.info(f"Bulk price import: {result.success_count} created, {result.error_count} errors")
    return result


# Discounts

def validate_discount_row(item, index, currencies):
    errors = []
    code = str(first_value(item, 'discount_id', 'discountId', 'code')).strip()
    name = str(item.get('name') or '').strip()
    discount_type = str(first_value(item, 'type', 'discount_type')).strip()
    if not code:
        errors.append('discount_id is required')
    if not name:
        errors.append('name is required')
    if not discount_type:
        errors.append('type is required')
    elif discount_type not in dict(Discount.DISCOUNT_TYPE_CHOICES):
        errors.append(f'invalid type {discount_type}')

    value = _decimal(first_value(item, 'discount_value', 'discountValue'))
    if value is None or value <= 0:
        errors.append('discount_value must be greater than 0')
    elif discount_type in PERCENTAGE_TYPES and value > 100:
        errors.append('a percentage discount cannot exceed 100')

    currency = str(item.get('currency') or '').strip().upper()
    if not currency:
        errors.append('currency is required')
    elif currency not in currencies:
        errors.append(f'invalid currency {currency}')

    raw_from = first_value(item, 'valid_from', 'validFrom')
    if raw_from in (None, ''):
        errors.append('valid_from is required')
    valid_from = _datetime(raw_from, 'valid_from', errors)
    valid_to = _datetime(first_value(item, 'valid_to', 'validTo'), 'valid_to', errors)
    if valid_from and valid_to and valid_to <= valid_from:
        errors.append('valid_to must be after valid_from')

    status = item.get('status') or 'active'
    if status not in STATUSES:
        errors.append(f'invalid status {status}')

    category = str(item.get('category') or '').strip()
    priority = parse_integer(item.get('priority'))
    is_cumulative = parse_boolean(item.get('is_cumulative'))
    data = {
        'code': code,
        'name': name,
        'description': str(item.get('description') or ''),
        'discount_type': discount_type,
        'discount_value': value or Decimal('0.00'),
        'currency': currency,
        'valid_from': valid_from,
        'valid_to': valid_to,
        'status': status,
        'priority': priority if priority is not None else 0,
        'is_cumulative': bool(is_cumulative),
        'max_discount_amount': _decimal(item.get('max_discount_amount')),
        'min_purchase_amount': _decimal(item.get('min_purchase_amount')),
        'usage_limit': parse_integer(item.get('usage_limit')),
        'customer_type': str(item.get('customer_type') or 'all'),
        'channel': str(item.get('channel') or 'all'),
        'region': str(item.get('region') or ''),
        'applicable_to': [{'type': 'category', 'value': category}] if category else [],
        'tags': parse_tags(item.get('tags')),
    }
    return data, errors


def bulk_create_discounts(items, distributor_code='', dry_run=False):
    result = BulkImportResult('discounts', total=len(items))
    currencies = _supported_currencies()
    existing_codes = set(Discount.objects.values_list('code', flat=True))
    existing = list(Discount.objects.filter(distributor_code=distributor_code)
                    .values('code', 'channel', 'applicable_to', 'valid_from', 'valid_to'))
    seen_codes = set()
    duplicate_ids, invalid_currencies, invalid_types = set(), set(), set()
    date_conflicts, overlapping = [], []
    valid = []

    def _category(row):
        for rule in row.get('applicable_to') or []:
            if isinstance(rule, dict) and rule.get('type') == 'category':
                return str(rule.get('value')).lower()
        return ''

    for index, item in enumerate(items):
        data, errors = validate_discount_row(item, index, currencies)
        code = data['code']
        if code and (code in seen_codes or code in existing_codes):
            errors.append(f'duplicate discount_id {code}')
            duplicate_ids.add(code)
        if any(error.startswith('invalid currency') for error in errors):
            invalid_currencies.add(data['currency'])
        if any(error.startswith('invalid type') for error in errors):
            invalid_types.add(data['discount_type'])
        if 'valid_to must be after valid_from' in errors:
            date_conflicts.append({'index': index, 'discount_id': code})
        if errors:
            result.add_error(index, item, '; '.join(errors))
            continue
        seen_codes.add(code)

        for other in existing + [entry for _, _, entry in valid]:
            if other['channel'] == data['channel'] and _category(other) == _category(data) and \
                    _periods_overlap(data['valid_from'], data['valid_to'], other['valid_from'], other['valid_to']):
                overlapping.append({'index': index, 'discount_id': code, 'with': other['code']})
        valid.append((index, item, data))

    with transaction.atomic(), suspend_cache_signals():
        for index, item, data in valid:
            discount = Discount.objects.create(distributor_code=distributor_code, **data)
            result.add_created(DiscountSerializer(discount).data)
        if dry_run:
            transaction.set_rollback(True)

    result.validations = {
        'duplicateIds': sorted(duplicate_ids),
        'invalidCurrencies': sorted(invalid_currencies),
        'dateConflicts': date_conflicts,
        'overlappingDiscounts': overlapping,
        'invalidTypes': sorted(invalid_types),
    }
    logger.info(f"Bulk discount import: {result.success_count} created, {result.error_count} errors")
    return result

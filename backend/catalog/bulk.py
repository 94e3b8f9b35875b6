"""Bulk product import"""
import logging
from decimal import Decimal, InvalidOperation
from django.db import transaction
from backend.core.cache_signals import suspend_cache_signals
from backend.imports.parsers import parse_tags, parse_boolean
from backend.imports.results import BulkImportResult
from .matcher import match_name
from .models import Product, Brand, Category
from .serializers import ProductListSerializer

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = (
    'product_code', 'gtin', 'title', 'short_description', 'description', 'status', 'uom',
    'pack_size', 'vendor', 'supplier_code',
)
BOOLEAN_FIELDS = ('published', 'featured', 'track_inventory', 'mark_as_new', 'is_top_selling')


def _decimal(value, field, errors, minimum=None, maximum=None):
    if value in (None, ''):
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        errors.append(f'{field} must be a number')
        return None
    if minimum is not None and number < minimum:
        errors.append(f'{field} must be at least {minimum}')
    if maximum is not None and number > maximum:
        errors.append(f'{field} must be at most {maximum}')
    return number


class NameResolver:
    """Resolves brand and category names once per import, creating missing ones"""

    def __init__(self):
        self.brands = list(Brand.objects.values('id', 'name'))
        self.categories = list(Category.objects.filter(parent__isnull=True).values('id', 'name'))
        self.created = {'brands': 0, 'categories': 0, 'sub_categories': 0}

    def brand(self, name):
        if not name:
            return None
        result = match_name(name, self.brands, 'brand')
        if result.matched:
            return result.matched_id
        brand = Brand.objects.create(name=name.strip())
        self.brands.append({'id': brand.id, 'name': brand.name})
        self.created['brands'] += 1
        return brand.id

    def category(self, name, parent_id=None):
        if not name:
            return None
        if parent_id:
            candidates = list(Category.objects.filter(parent_id=parent_id).values('id', 'name'))
        else:
            candidates = self.categories
        result = match_name(name, candidates, 'sub-category' if parent_id else 'category')
        if result.matched:
            return result.matched_id
        category = Category.objects.create(name=name.strip(), parent_id=parent_id)
        if parent_id:
            self.created['sub_categories'] += 1
        else:
            self.categories.append({'id': category.id, 'name': category.name})
            self.created['categories'] += 1
        return category.id


def validate_product_row(item, seen_skus):
    """Returns (product kwargs, errors)"""
    errors = []
    name = str(item.get('name') or '').strip()
    if not name:
        errors.append('name is required')

    price = _decimal(item.get('price'), 'price', errors, minimum=Decimal('0'))
    if price is None and 'price must be a number' not in errors:
        errors.append('price is required')
    price_sale = _decimal(item.get('price_sale'), 'price_sale', errors, minimum=Decimal('0'))
    if price is not None and price_sale is not None and price_sale > price:
        errors.append('price_sale cannot be higher than price')
    discount_percentage = _decimal(item.get('discount_percentage'), 'discount_percentage', errors,
                                   minimum=Decimal('0'), maximum=Decimal('100'))
    tax = _decimal(item.get('tax'), 'tax', errors, minimum=Decimal('0'), maximum=Decimal('100'))
    weight = _decimal(item.get('weight'), 'weight', errors, minimum=Decimal('0'))

    sku = str(item.get('sku') or '').strip()
    if sku:
        if sku in seen_skus:
            errors.append(f'duplicate sku {sku} in file')
        elif Product.objects.filter(sku=sku).exists():
            errors.append(f'a product with sku {sku} already exists')

    status = item.get('status') or 'active'
    if status not in dict(Product.STATUS_CHOICES):
        errors.append(f'invalid status {status}')

    stock = item.get('stock_quantity')
    try:
        stock = int(stock) if stock not in (None, '') else 0
    except (TypeError, ValueError):
        errors.append('stock_quantity must be an integer')
        stock = 0

    pieces_per_case = item.get('pieces_per_case')
    try:
        pieces_per_case = int(pieces_per_case) if pieces_per_case not in (None, '') else None
    except (TypeError, ValueError):
        errors.append('pieces_per_case must be an integer')
        pieces_per_case = None

    data = {field: str(item.get(field) or '').strip() for field in PRODUCT_FIELDS}
    data.update({
        'name': name,
        'sku': sku,
        'status': status,
        'price': price if price is not None else Decimal('0.00'),
        'price_sale': price_sale,
        'discount_percentage': discount_percentage or Decimal('0.00'),
        'tax': tax or Decimal('0.00'),
        'weight': weight,
        'stock_quantity': stock,
        'pieces_per_case': pieces_per_case,
        'tags': parse_tags(item.get('tags')),
    })
    for field in BOOLEAN_FIELDS:
        value = parse_boolean(item.get(field))
        if value is not None:
            data[field] = value
    return data, errors


def bulk_create_products(items, distributor_code='', dry_run=False):
    """Validate each row, then create the valid ones in one transaction"""
    result = BulkImportResult('products', total=len(items))
    seen_skus = set()
    valid = []

    for index, item in enumerate(items):
        data, errors = validate_product_row(item, seen_skus)
        if errors:
            result.add_error(index, item, '; '.join(errors))
            continue
        if data['sku']:
            seen_skus.add(data['sku'])
        valid.append((index, item, data))

    with transaction.atomic(), suspend_cache_signals():
        resolver = NameResolver()
        for index, item, data in valid:
            data['brand_id'] = resolver.brand(str(item.get('brand') or '').strip())
            data['category_id'] = resolver.category(str(item.get('category') or '').strip())
            data['sub_category_id'] = resolver.category(str(item.get('sub_category') or '').strip(),
                                                        parent_id=data['category_id']) if data['category_id'] else None
            product = Product.objects.create(distributor_code=distributor_code, **data)
            result.add_created(ProductListSerializer(product).data)
        if dry_run:
            transaction.set_rollback(True)

    result.validations = {
        'duplicateSkus': sorted({error['item'].get('sku') for error in result.errors
                                 if 'sku' in error['error'] and error['item'].get('sku')}),
        'createdBrands': resolver.created['brands'],
        'createdCategories': resolver.created['categories'],
        'createdSubCategories': resolver.created['sub_categories'],
    }
    logger.info(f"Bulk product import: {result.success_count} created, {result.error_count} errors")
    return result

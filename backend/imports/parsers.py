"""
Spreadsheet and CSV parsing for bulk imports.

Files are read into a list of row dicts keyed by the header row, every value a
string. Entity mappers then turn those raw rows into the payloads the bulk
services accept.
"""
import csv
import io
import logging
import os
import re

from openpyxl import load_workbook

logger = logging.getLogger(__name__)

EXCEL_EXTENSIONS = ('.xlsx', '.xlsm')
CSV_EXTENSIONS = ('.csv', '.txt')

TRUE_VALUES = ('true', '1', 'yes', 'si', 'sí')
FALSE_VALUES = ('false', '0', 'no')


class FileParseError(Exception):
    """Raised when an uploaded file cannot be read as a table"""


def _cell_to_string(value):
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return str(value).strip()


def _rows_to_dicts(rows):
    rows = iter(rows)
    try:
        header_row = next(rows)
    except StopIteration:
        return []

    headers = []
    for index, value in enumerate(header_row, start=1):
        header = _cell_to_string(value)
        headers.append(header or f'Column{index}')

    records = []
    for row in rows:
        values = [_cell_to_string(value) for value in row]
        if not any(values):
            continue
        values += [''] * (len(headers) - len(values))
        records.append(dict(zip(headers, values[:len(headers)])))
    return records


def parse_excel(content):
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise FileParseError(f'Could not read spreadsheet: {str(e)}')
    try:
        if not workbook.worksheets:
            raise FileParseError('The spreadsheet has no sheets.')
        sheet = workbook.worksheets[0]
        return _rows_to_dicts(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()


def parse_csv(content):
    try:
        text = content.decode('utf-8-sig')
    except UnicodeDecodeError:
        text = content.decode('latin-1')
    if not text.strip():
        return []
    sample = text[:4096]
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=',;\t')
    except csv.Error:
        dialect = csv.excel
    return _rows_to_dicts(csv.reader(io.StringIO(text), dialect))


def parse_file(file_obj, filename=None):
    """
    Read the first sheet of an XLSX file or a CSV file into row dicts.

    The first row is the header; blank header cells become ColumnN, short rows
    are padded with '' and fully blank rows are skipped.
    """
    filename = filename or getattr(file_obj, 'name', '') or ''
    extension = os.path.splitext(filename.lower())[1]
    content = file_obj.read() if hasattr(file_obj, 'read') else file_obj
    if isinstance(content, str):
        content = content.encode('utf-8')

    if extension in EXCEL_EXTENSIONS:
        rows = parse_excel(content)
    elif extension in CSV_EXTENSIONS:
        rows = parse_csv(content)
    else:
        raise FileParseError(f'Unsupported file type "{extension or filename}". Upload a .xlsx or .csv file.')

    logger.info(f"Parsed {len(rows)} rows from {filename}")
    return rows


def parse_boolean(value):
    """true/1/yes/si -> True, false/0/no -> False, anything else -> None"""
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    return None


def parse_number(value):
    """Float value of a cell, or None when blank or not a number"""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = str(value).strip().replace(' ', '')
    if not text:
        return None
    if ',' in text and '.' in text:
        # the last separator is the decimal one: 1.234,50 and 1,234.50
        thousands = '.' if text.rfind(',') > text.rfind('.') else ','
        text = text.replace(thousands, '').replace(',', '.')
    elif text.count(',') == 1:
        text = text.replace(',', '.')
    elif text.count(',') > 1 or text.count('.') > 1:
        text = text.replace(',', '').replace('.', '')
    try:
        return float(text)
    except ValueError:
        return None


def parse_integer(value):
    number = parse_number(value)
    return int(number) if number is not None else None


def parse_tags(value):
    """Split on commas or semicolons"""
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(tag).strip() for tag in value if str(tag).strip()]
    return [tag.strip() for tag in re.split(r'[,;]', str(value)) if tag.strip()]


def parse_list(value, separator=','):
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [item.strip() for item in str(value).split(separator) if item.strip()]


def first_value(row, *keys, default=''):
    """Value of the first key present and non-blank in the row"""
    for key in keys:
        value = row.get(key)
        if value not in (None, ''):
            return value
    return default


CLIENT_INFORMATION_PREFIX = 'information.'


def parse_client_rows(rows):
    clients = []
    for row in rows:
        information = {}
        for key, value in row.items():
            if key.startswith(CLIENT_INFORMATION_PREFIX) and value != '':
                information[key[len(CLIENT_INFORMATION_PREFIX):]] = value
        if 'withCredit' in information:
            information['withCredit'] = bool(parse_boolean(information['withCredit']))
        clients.append({
            'email': first_value(row, 'email', 'Email'),
            'firstName': first_value(row, 'firstName', 'first_name'),
            'lastName': first_value(row, 'lastName', 'last_name'),
            'phone': first_value(row, 'phone'),
            'phoneOptional': first_value(row, 'phoneOptional', 'phone_optional'),
            'gender': first_value(row, 'gender'),
            'documentType': first_value(row, 'documentType', 'document_type'),
            'document': first_value(row, 'document'),
            'customerClass': first_value(row, 'customerClass', 'customer_class'),
            'customerClassTwo': first_value(row, 'customerClassTwo', 'customer_class_two'),
            'customerClassThree': first_value(row, 'customerClassThree', 'customer_class_three'),
            'customerClassDist': first_value(row, 'customerClassDist', 'customer_class_dist'),
            'customerClassDistTwo': first_value(row, 'customerClassDistTwo', 'customer_class_dist_two'),
            'latitude': parse_number(first_value(row, 'latitude')),
            'longitude': parse_number(first_value(row, 'longitude')),
            'status': first_value(row, 'status', default='A'),
            'clientCode': first_value(row, 'clientCode', 'client_code'),
            'distributorCodes': parse_list(first_value(row, 'distributorCodes', 'distributor_codes')),
            'information': information,
        })
    return clients


def parse_price_list_rows(rows):
    price_lists = []
    for row in rows:
        price_lists.append({
            'price_list_id': first_value(row, 'price_list_id', 'priceListId', 'code'),
            'name': first_value(row, 'name'),
            'description': first_value(row, 'description'),
            'currency': first_value(row, 'currency', default='USD'),
            'country': first_value(row, 'country'),
            'region': first_value(row, 'region'),
            'customer_type': first_value(row, 'customer_type', 'customerType'),
            'channel': first_value(row, 'channel'),
            'applies_to': first_value(row, 'applies_to', 'appliesTo', default='all'),
            'status': first_value(row, 'status', default='active'),
            'is_default': bool(parse_boolean(first_value(row, 'is_default', 'isDefault'))),
            'priority': parse_integer(first_value(row, 'priority')),
            'discount_type': first_value(row, 'discount_type', 'discountType'),
            'start_date': first_value(row, 'start_date', 'startDate'),
            'end_date': first_value(row, 'end_date', 'endDate'),
            'minimum_quantity': parse_integer(first_value(row, 'minimum_quantity', 'minimumQuantity')),
            'maximum_quantity': parse_integer(first_value(row, 'maximum_quantity', 'maximumQuantity')),
            'tags': parse_tags(first_value(row, 'tags')),
            'notes': first_value(row, 'notes'),
        })
    return price_lists


def parse_price_rows(rows):
    prices = []
    for row in rows:
        prices.append({
            'priceId': first_value(row, 'priceId', 'price_id', 'id'),
            'name': first_value(row, 'name'),
            'priceListId': first_value(row, 'priceListId', 'price_list_id'),
            'productSku': first_value(row, 'productSku', 'product_sku', 'productId', 'product_id',
                                      'productCode', 'product_code', 'sku'),
            'productName': first_value(row, 'productName', 'product_name'),
            'basePrice': parse_number(first_value(row, 'basePrice', 'base_price', 'price')),
            'salePrice': parse_number(first_value(row, 'salePrice', 'sale_price')),
            'discountPrice': parse_number(first_value(row, 'discountPrice', 'discount_price')),
            'wholesalePrice': parse_number(first_value(row, 'wholesalePrice', 'wholesale_price')),
            'retailPrice': parse_number(first_value(row, 'retailPrice', 'retail_price')),
            'loyaltyPrice': parse_number(first_value(row, 'loyaltyPrice', 'loyalty_price')),
            'corporatePrice': parse_number(first_value(row, 'corporatePrice', 'corporate_price')),
            'costPrice': parse_number(first_value(row, 'costPrice', 'cost_price', 'cost')),
            'competitorPrice': parse_number(first_value(row, 'competitorPrice', 'competitor_price')),
            'margin': parse_number(first_value(row, 'margin', 'margin_percentage')),
            'currency': first_value(row, 'currency'),
            'validFrom': first_value(row, 'validFrom', 'valid_from'),
            'validUntil': first_value(row, 'validUntil', 'valid_until', 'validTo', 'valid_to'),
            'minQuantity': parse_integer(first_value(row, 'minQuantity', 'min_quantity')),
            'maxQuantity': parse_integer(first_value(row, 'maxQuantity', 'max_quantity')),
            'priceType': first_value(row, 'priceType', 'price_type'),
            'customerType': first_value(row, 'customerType', 'customer_type'),
            'channel': first_value(row, 'channel'),
            'region': first_value(row, 'region'),
            'city': first_value(row, 'city'),
            'zone': first_value(row, 'zone'),
            'status': first_value(row, 'status'),
            'priority': parse_integer(first_value(row, 'priority')),
            'taxIncluded': parse_boolean(first_value(row, 'taxIncluded', 'tax_included')),
            'taxRate': parse_number(first_value(row, 'taxRate', 'tax_rate')),
            'marketPosition': first_value(row, 'marketPosition', 'market_position'),
            'tags': parse_tags(first_value(row, 'tags')),
            'notes': first_value(row, 'notes'),
        })
    return prices


def parse_product_rows(rows):
    products = []
    for row in rows:
        products.append({
            'product_code': first_value(row, 'productId', 'product_id', 'productCode', 'product_code'),
            'sku': first_value(row, 'sku', 'SKU'),
            'gtin': first_value(row, 'gtin', 'GTIN', 'ean', 'barcode'),
            'name': first_value(row, 'name', 'productName', 'product_name'),
            'title': first_value(row, 'title'),
            'short_description': first_value(row, 'shortDescription', 'short_description'),
            'description': first_value(row, 'description', 'fullDescription', 'full_description'),
            'category': first_value(row, 'category'),
            'sub_category': first_value(row, 'subCategory', 'sub_category', 'subcategory'),
            'brand': first_value(row, 'brand'),
            'status': first_value(row, 'status', default='active'),
            'published': parse_boolean(first_value(row, 'published')),
            'featured': parse_boolean(first_value(row, 'featured')),
            'price': parse_number(first_value(row, 'price', 'basePrice', 'base_price')),
            'price_sale': parse_number(first_value(row, 'priceSale', 'price_sale', 'salePrice')),
            'discount_percentage': parse_number(first_value(row, 'discountPercentage', 'discount_percentage')),
            'tax': parse_number(first_value(row, 'tax', 'taxRate', 'tax_rate')),
            'stock_quantity': parse_integer(first_value(row, 'stock', 'stockQuantity', 'stock_quantity')),
            'track_inventory': parse_boolean(first_value(row, 'trackInventory', 'track_inventory')),
            'uom': first_value(row, 'uom', 'unit'),
            'weight': parse_number(first_value(row, 'weight')),
            'pack_size': first_value(row, 'packSize', 'pack_size'),
            'pieces_per_case': parse_integer(first_value(row, 'piecesPerCase', 'pieces_per_case')),
            'mark_as_new': parse_boolean(first_value(row, 'markAsNew', 'mark_as_new')),
            'is_top_selling': parse_boolean(first_value(row, 'isTopSelling', 'is_top_selling')),
            'vendor': first_value(row, 'vendor'),
            'supplier_code': first_value(row, 'supplierCode', 'supplier_code', 'supplierId'),
            'tags': parse_tags(first_value(row, 'tags')),
        })
    return products


def parse_discount_rows(rows):
    """Discount rows are passed through; the bulk validator coerces them"""
    return [dict(row) for row in rows]


ROW_MAPPERS = {
    'clients': parse_client_rows,
    'price_lists': parse_price_list_rows,
    'prices': parse_price_rows,
    'products': parse_product_rows,
    'discounts': parse_discount_rows,
}

"""Column mapping between uploaded headers and entity fields"""
import re
from backend.catalog.matcher import levenshtein

# Entity fields accepted by each bulk import, with common header aliases
TARGET_FIELDS = {
    'clients': {
        'email': ['correo', 'mail', 'e-mail'],
        'firstName': ['first_name', 'nombre', 'nombres', 'name'],
        'lastName': ['last_name', 'apellido', 'apellidos', 'surname'],
        'phone': ['telefono', 'teléfono', 'celular', 'mobile'],
        'phoneOptional': ['phone2', 'telefono2', 'alt_phone'],
        'gender': ['genero', 'género', 'sexo'],
        'documentType': ['tipo_documento', 'doc_type'],
        'document': ['documento', 'nit', 'dni', 'ruc'],
        'customerClass': ['clase', 'customer_class'],
        'latitude': ['lat', 'latitud'],
        'longitude': ['lng', 'lon', 'longitud'],
        'status': ['estado'],
        'clientCode': ['codigo_cliente', 'client_code', 'code'],
        'distributorCodes': ['distribuidores', 'distributor_codes'],
    },
    'products': {
        'productId': ['product_id', 'codigo', 'código', 'product_code'],
        'sku': ['referencia', 'ref'],
        'gtin': ['ean', 'barcode', 'codigo_barras', 'upc'],
        'name': ['nombre', 'producto', 'product_name', 'productname'],
        'description': ['descripcion', 'descripción'],
        'category': ['categoria', 'categoría'],
        'subCategory': ['subcategoria', 'subcategoría', 'sub_category'],
        'brand': ['marca'],
        'price': ['precio', 'base_price', 'baseprice'],
        'priceSale': ['precio_oferta', 'sale_price', 'saleprice'],
        'stock': ['inventario', 'existencias', 'stock_quantity'],
        'tax': ['iva', 'impuesto', 'tax_rate'],
        'status': ['estado'],
        'tags': ['etiquetas'],
    },
    'price_lists': {
        'price_list_id': ['id', 'codigo', 'code', 'pricelistid'],
        'name': ['nombre'],
        'currency': ['moneda', 'divisa'],
        'country': ['pais', 'país'],
        'customer_type': ['tipo_cliente', 'customertype'],
        'channel': ['canal'],
        'start_date': ['fecha_inicio', 'startdate', 'valid_from'],
        'end_date': ['fecha_fin', 'enddate', 'valid_to'],
        'priority': ['prioridad'],
        'status': ['estado'],
    },
    'prices': {
        'priceId': ['price_id', 'id', 'codigo'],
        'name': ['nombre'],
        'priceListId': ['price_list_id', 'lista', 'lista_precios'],
        'productSku': ['sku', 'product_sku', 'product_id', 'referencia'],
        'productName': ['product_name', 'producto'],
        'basePrice': ['precio', 'price', 'base_price'],
        'salePrice': ['precio_oferta', 'sale_price'],
        'costPrice': ['costo', 'cost', 'cost_price'],
        'currency': ['moneda'],
        'validFrom': ['valid_from', 'desde', 'fecha_inicio'],
        'validUntil': ['valid_until', 'valid_to', 'hasta', 'fecha_fin'],
    },
    'discounts': {
        'discount_id': ['id', 'codigo', 'code', 'discountid'],
        'name': ['nombre'],
        'type': ['tipo', 'discount_type'],
        'discount_value': ['valor', 'value', 'descuento'],
        'currency': ['moneda'],
        'valid_from': ['desde', 'fecha_inicio', 'validfrom'],
        'valid_to': ['hasta', 'fecha_fin', 'validto'],
        'status': ['estado'],
        'priority': ['prioridad'],
    },
}


def normalize_header(header):
    """Lower-case and strip everything but letters and digits"""
    return re.sub(r'[^a-z0-9]', '', (header or '').lower())


def suggest_mapping(headers, entity):
    """
    Suggest the entity field for each uploaded header.

    Returns {header: field or None}. Headers are matched by normalized name,
    then by alias, then by edit distance of at most 2. A field is suggested
    for one header only.
    """
    fields = TARGET_FIELDS.get(entity, {})
    normalized_fields = {normalize_header(field): field for field in fields}
    normalized_aliases = {}
    for field, aliases in fields.items():
        for alias in aliases:
            normalized_aliases.setdefault(normalize_header(alias), field)

    mapping = {}
    used = set()
    for header in headers:
        key = normalize_header(header)
        field = normalized_fields.get(key) or normalized_aliases.get(key)
        if not field and key:
            candidates = sorted(
                ((levenshtein(key, name), target) for name, target in normalized_fields.items()),
                key=lambda pair: pair[0],
            )
            if candidates and candidates[0][0] <= 2:
                field = candidates[0][1]
        if field in used:
            field = None
        if field:
            used.add(field)
        mapping[header] = field
    return mapping


def apply_mapping(rows, mapping):
    """Rename row keys with the mapping; unmapped columns are dropped"""
    mapped_rows = []
    for row in rows:
        mapped = {}
        for header, value in row.items():
            field = mapping.get(header)
            if field:
                mapped[field] = value
            elif header.startswith('information.'):
                mapped[header] = value
        mapped_rows.append(mapped)
    return mapped_rows

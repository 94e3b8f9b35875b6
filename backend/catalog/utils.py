"""
Utility functions for catalog operations
"""
import os
import re
from difflib import SequenceMatcher
from django.utils import timezone
import uuid


def generate_unique_sku(base_name=None):
    """Generate a unique SKU"""
    from backend.catalog.models import Product

    prefix = re.sub(r'[^A-Za-z0-9]', '', base_name or '')[:4].upper() or 'PRD'
    timestamp = timezone.now().strftime('%Y%m%d')
    unique_id = str(uuid.uuid4())[:8].upper()
    sku = f"{prefix}-{timestamp}-{unique_id}"

    while Product.objects.filter(sku=sku).exists():
        unique_id = str(uuid.uuid4())[:8].upper()
        sku = f"{prefix}-{timestamp}-{unique_id}"

    return sku


def normalize_token(value):
    """Lower-case and drop everything except letters and digits"""
    return re.sub(r'[^a-z0-9]', '', (value or '').lower())


def filename_stems(filename):
    """The bare file stem plus the stem without a trailing gallery suffix ('_1', '-front', ' (2)')"""
    stem, _ext = os.path.splitext(os.path.basename(filename or ''))
    stripped = re.sub(r'(\s*\(\d+\)|[\s_-]+(\d{1,2}|front|back|side|main))$', '', stem, flags=re.IGNORECASE)
    return [value for value in {normalize_token(stem), normalize_token(stripped)} if value]


def image_similarity(filename, product):
    """
    Score 0-100 for how well an image filename identifies a product.

    Exact SKU, GTIN or product code matches score 100; otherwise the best
    sequence ratio against those codes and the product name is used.
    """
    stems = filename_stems(filename)
    if not stems:
        return 0

    codes = [normalize_token(value) for value in (product.sku, product.gtin, product.product_code) if value]
    codes = [code for code in codes if code]
    name = normalize_token(product.name)

    best = 0.0
    for stem in stems:
        if stem in codes:
            return 100
        for code in codes:
            if code in stem or stem in code:
                best = max(best, 90.0 * min(len(code), len(stem)) / max(len(code), len(stem)) + 10.0)
            best = max(best, SequenceMatcher(None, stem, code).ratio() * 100)
        if name:
            best = max(best, SequenceMatcher(None, stem, name).ratio() * 100)
    return int(round(min(best, 100)))

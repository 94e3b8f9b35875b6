"""Bulk importer of each entity, resolved lazily to keep the apps decoupled"""
from django.utils.module_loading import import_string

IMPORTERS = {
    'clients': 'backend.clients.bulk.bulk_create_clients',
    'products': 'backend.catalog.bulk.bulk_create_products',
    'price_lists': 'backend.pricing.bulk.bulk_create_price_lists',
    'prices': 'backend.pricing.bulk.bulk_create_prices',
    'discounts': 'backend.pricing.bulk.bulk_create_discounts',
}


def get_importer(entity):
    """bulk_create_* function for an entity; KeyError for unknown entities"""
    return import_string(IMPORTERS[entity])

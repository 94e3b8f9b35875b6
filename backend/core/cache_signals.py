"""
Cache invalidation signals
Automatically invalidate cache when data changes
"""
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging
import threading
from contextlib import contextmanager

from .cache_utils import (
    invalidate_products_cache, invalidate_dashboard_cache, invalidate_discounts_cache
)

logger = logging.getLogger(__name__)

# Thread-local storage to track signal suspension
_thread_locals = threading.local()


@contextmanager
def suspend_cache_signals():
    """
    Context manager to temporarily suspend cache invalidation signals.
    Used by bulk imports; caches are invalidated once after the block.
    """
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = False
        invalidate_products_cache()
        invalidate_discounts_cache()
        invalidate_dashboard_cache()


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


@receiver([post_save, post_delete], sender='catalog.Product')
@receiver([post_save, post_delete], sender='catalog.Category')
@receiver([post_save, post_delete], sender='catalog.Brand')
@receiver([post_save, post_delete], sender='pricing.Price')
@receiver([post_save, post_delete], sender='pricing.PriceList')
def invalidate_catalog_cache(sender, instance, **kwargs):
    """Invalidate product list and dashboard caches when catalog or pricing data changes"""
    if is_suspended():
        return
    logger.debug(f"Catalog change on {sender.__name__} {instance.pk}, invalidating caches")
    invalidate_products_cache()
    invalidate_dashboard_cache()


@receiver([post_save, post_delete], sender='pricing.Discount')
def invalidate_discount_cache(sender, instance, **kwargs):
    if is_suspended():
        return
    invalidate_discounts_cache()
    invalidate_products_cache()
    invalidate_dashboard_cache()


@receiver([post_save, post_delete], sender='orders.Order')
@receiver([post_save, post_delete], sender='clients.Client')
def invalidate_summary_cache(sender, instance, **kwargs):
    if is_suspended():
        return
    invalidate_dashboard_cache()

"""
Dashboard summary for the admin home page and the onboarding wizard
"""
from decimal import Decimal
from django.db.models import Count, Sum, Q
from django.utils import timezone
from .cache_utils import cached_query, DASHBOARD_SUMMARY_CACHE_TTL, DASHBOARD_SUMMARY_PREFIX


def _by_status(queryset, field='status'):
    return {row[field]: row['total'] for row in queryset.values(field).annotate(total=Count('id')).order_by(field)}


@cached_query(cache_ttl=DASHBOARD_SUMMARY_CACHE_TTL, key_prefix=DASHBOARD_SUMMARY_PREFIX)
def build_dashboard_summary(distributor_code=None):
    """
    Counts and revenue for one distributor, or for the whole platform when
    distributor_code is None.
    """
    from backend.catalog.models import Product, Category, Brand
    from backend.clients.models import Client
    from backend.pricing.models import PriceList, Discount
    from backend.orders.models import Order

    def scoped(model):
        queryset = model.objects.all()
        if distributor_code is not None:
            queryset = queryset.filter(distributor_code=distributor_code)
        return queryset

    products = scoped(Product)
    clients = scoped(Client)
    price_lists = scoped(PriceList)
    discounts = scoped(Discount)
    orders = scoped(Order)

    now = timezone.now()
    active_discounts = discounts.filter(status='active').filter(
        Q(valid_from__isnull=True) | Q(valid_from__lte=now),
        Q(valid_to__isnull=True) | Q(valid_to__gte=now),
    ).count()

    revenue_orders = orders.exclude(status='CANCELLED')
    revenue = revenue_orders.aggregate(total=Sum('total'))['total'] or Decimal('0.00')
    order_count = revenue_orders.count()

    summary = {
        'products': {
            'total': products.count(),
            'by_status': _by_status(products),
            'published': products.filter(published=True).count(),
            'out_of_stock': products.filter(track_inventory=True, stock_quantity__lte=0).count(),
        },
        'categories': Category.objects.count(),
        'brands': Brand.objects.count(),
        'clients': {
            'total': clients.count(),
            'by_status': _by_status(clients),
        },
        'price_lists': {
            'total': price_lists.count(),
            'active': price_lists.filter(status='active').count(),
        },
        'discounts': {
            'total': discounts.count(),
            'active': active_discounts,
        },
        'orders': {
            'total': orders.count(),
            'by_status': _by_status(orders),
            'revenue': str(revenue),
            'average_order_value': str((revenue / order_count).quantize(Decimal('0.01')) if order_count else Decimal('0.00')),
        },
    }

    recommendations = []
    if not summary['products']['total']:
        recommendations.append({'step': 'products', 'message': 'Import your product catalog.'})
    if not summary['clients']['total']:
        recommendations.append({'step': 'clients', 'message': 'Load the clients that buy from you.'})
    if not summary['price_lists']['total']:
        recommendations.append({'step': 'price_lists', 'message': 'Create at least one price list.'})
    if not summary['discounts']['active']:
        recommendations.append({'step': 'discounts', 'message': 'Set up a discount from a template.'})
    summary['recommendations'] = recommendations
    summary['setup_complete'] = not recommendations
    return summary

import django_filters
from django.db.models import Q
from .models import Order


class OrderFilter(django_filters.FilterSet):
    """Admin order filters"""
    status = django_filters.CharFilter(field_name='status', lookup_expr='exact')
    payment_type = django_filters.CharFilter(field_name='payment_type', lookup_expr='exact')
    client = django_filters.NumberFilter(field_name='client_id')
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')
    supplier = django_filters.CharFilter(method='filter_supplier', label='Supplier code or name')
    search = django_filters.CharFilter(method='filter_search', label='Search')

    class Meta:
        model = Order
        fields = ['status', 'payment_type', 'client', 'date_from', 'date_to', 'supplier', 'search']

    def filter_supplier(self, queryset, name, value):
        if not value:
            return queryset
        return queryset.filter(
            Q(items__supplier_code__iexact=value) | Q(items__supplier_name__icontains=value)
        ).distinct()

    def filter_search(self, queryset, name, value):
        if not value or not value.strip():
            return queryset
        value = value.strip()
        return queryset.filter(
            Q(order_number__icontains=value) |
            Q(user__email__icontains=value) |
            Q(user__username__icontains=value) |
            Q(client__first_name__icontains=value) |
            Q(client__last_name__icontains=value) |
            Q(client__client_code__icontains=value) |
            Q(tracking_number__icontains=value)
        )

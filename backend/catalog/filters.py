import django_filters
from django.db.models import Q
from .models import Product, ProductImage


class ProductFilter(django_filters.FilterSet):
    """Filter for Product model using django-filter"""

    # Basic search - searches across name, SKU, GTIN, product code, brand, category
    search = django_filters.CharFilter(method='filter_search', label='Search')

    category = django_filters.NumberFilter(method='filter_category', label='Category ID')
    sub_category = django_filters.NumberFilter(field_name='sub_category_id', lookup_expr='exact')
    brand = django_filters.NumberFilter(field_name='brand_id', lookup_expr='exact')
    status = django_filters.CharFilter(field_name='status', lookup_expr='exact')
    published = django_filters.BooleanFilter(field_name='published')
    featured = django_filters.BooleanFilter(field_name='featured')
    min_price = django_filters.NumberFilter(field_name='price', lookup_expr='gte')
    max_price = django_filters.NumberFilter(field_name='price', lookup_expr='lte')
    in_stock = django_filters.CharFilter(method='filter_in_stock', label='In Stock')
    tag = django_filters.CharFilter(method='filter_tag', label='Tag')

    class Meta:
        model = Product
        fields = ['search', 'category', 'sub_category', 'brand', 'status', 'published', 'featured',
                  'min_price', 'max_price', 'in_stock', 'tag']

    def filter_search(self, queryset, name, value):
        """
        Multi-word search: every word must appear in at least one of the
        searchable fields, in any order.
        """
        if not value or not value.strip():
            return queryset
        for word in value.split():
            queryset = queryset.filter(
                Q(name__icontains=word) |
                Q(sku__icontains=word) |
                Q(gtin__icontains=word) |
                Q(product_code__icontains=word) |
                Q(brand__name__icontains=word) |
                Q(category__name__icontains=word)
            )
        return queryset

    def filter_category(self, queryset, name, value):
        """Products whose category or sub-category is the given one"""
        if value is None:
            return queryset
        return queryset.filter(Q(category_id=value) | Q(sub_category_id=value))

    def filter_in_stock(self, queryset, name, value):
        if value is None or value == '':
            return queryset
        if value.lower() in ('true', '1', 'yes'):
            return queryset.filter(Q(track_inventory=False) | Q(stock_quantity__gt=0))
        return queryset.filter(track_inventory=True, stock_quantity__lte=0)

    def filter_tag(self, queryset, name, value):
        """Case-insensitive match against the tags list"""
        if not value:
            return queryset
        wanted = value.strip().lower()
        ids = [pk for pk, tags in queryset.values_list('id', 'tags')
               if any(str(tag).strip().lower() == wanted for tag in (tags or []))]
        return queryset.filter(id__in=ids)


class ProductImageFilter(django_filters.FilterSet):
    unassigned = django_filters.BooleanFilter(field_name='product', lookup_expr='isnull')
    product = django_filters.NumberFilter(field_name='product_id')

    class Meta:
        model = ProductImage
        fields = ['unassigned', 'product']

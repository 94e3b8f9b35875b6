import logging
from django.db import transaction
from django.db.models import Count, F
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from backend.core.cache_utils import get_cached_products_list, cache_products_list, PRODUCTS_LIST_CACHE_TTL
from backend.core.exceptions import ImageAnalysisError
from backend.core.permissions import is_admin_user, IsDashboardUser
from backend.core.utils import create_audit_log, get_distributor_code, paginate, scope_queryset
from backend.imports.payload import run_bulk_import
from backend.pricing.services import get_active_discounts, resolve_price_list, find_list_price, price_product
from .bulk import bulk_create_products
from .filters import ProductFilter, ProductImageFilter
from .matcher import match_catalog_item
from .vision import analyze_product_image
from .models import Category, Brand, Product, ProductImage, Favorite, STOREFRONT_STATUSES
from .serializers import (
    CategorySerializer, BrandSerializer, ProductSerializer, ProductListSerializer, ProductImageSerializer,
    FavoriteSerializer
)
from .utils import image_similarity

logger = logging.getLogger(__name__)


LIST_FILTER_PARAMS = ('search', 'category', 'sub_category', 'brand', 'status', 'published', 'featured',
                      'min_price', 'max_price', 'in_stock', 'tag', 'page', 'limit')


def _dashboard_required(request):
    if not is_admin_user(request.user):
        return Response({'detail': 'Admin dashboard access required.'}, status=status.HTTP_403_FORBIDDEN)
    return None


def visible_products(user):
    """Products a user may see: everything of its distributor on the dashboard, published ones on the storefront"""
    queryset = scope_queryset(Product.objects.all(), user)
    if not is_admin_user(user):
        queryset = queryset.filter(published=True, status__in=STOREFRONT_STATUSES)
    return queryset


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def category_list_create(request):
    """List categories (optionally ?parent=<id> or ?parent=root) or create one"""
    if request.method == 'GET':
        categories = Category.objects.select_related('parent').annotate(product_count=Count('products', distinct=True))
        parent = request.query_params.get('parent')
        if parent == 'root':
            categories = categories.filter(parent__isnull=True)
        elif parent:
            categories = categories.filter(parent_id=parent)
        if not is_admin_user(request.user):
            categories = categories.filter(is_active=True)
        serializer = CategorySerializer(categories, many=True)
        return Response(serializer.data)
    else:  # POST
        denied = _dashboard_required(request)
        if denied:
            return denied
        serializer = CategorySerializer(data=request.data)
        if serializer.is_valid():
            category = serializer.save()
            create_audit_log(request=request, action='create', model_name='Category', object_id=category.id,
                             object_name=category.name)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def category_detail(request, pk):
    """Retrieve, update or delete a category"""
    category = get_object_or_404(Category.objects.annotate(product_count=Count('products', distinct=True)), pk=pk)

    if request.method == 'GET':
        serializer = CategorySerializer(category)
        return Response(serializer.data)
    denied = _dashboard_required(request)
    if denied:
        return denied
    if request.method in ('PUT', 'PATCH'):
        serializer = CategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(request=request, action='delete', model_name='Category', object_id=category.id,
                         object_name=category.name)
        category.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Brand views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def brand_list_create(request):
    """List all brands or create a new brand"""
    if request.method == 'GET':
        brands = Brand.objects.annotate(product_count=Count('products', distinct=True))
        if not is_admin_user(request.user):
            brands = brands.filter(is_active=True)
        serializer = BrandSerializer(brands, many=True)
        return Response(serializer.data)
    else:  # POST
        denied = _dashboard_required(request)
        if denied:
            return denied
        serializer = BrandSerializer(data=request.data)
        if serializer.is_valid():
            brand = serializer.save()
            create_audit_log(request=request, action='create', model_name='Brand', object_id=brand.id,
                             object_name=brand.name)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def brand_detail(request, pk):
    """Retrieve, update or delete a brand"""
    brand = get_object_or_404(Brand.objects.annotate(product_count=Count('products', distinct=True)), pk=pk)

    if request.method == 'GET':
        serializer = BrandSerializer(brand)
        return Response(serializer.data)
    denied = _dashboard_required(request)
    if denied:
        return denied
    if request.method in ('PUT', 'PATCH'):
        serializer = BrandSerializer(brand, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(request=request, action='delete', model_name='Brand', object_id=brand.id,
                         object_name=brand.name)
        brand.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Product views
def _product_list(request):
    """
    Filtered, paginated product list.

    Responses are cached per filter set, distributor and audience; catalog
    signals clear the cache on any product, category, brand or price change.
    """
    filters_dict = {param: request.query_params.get(param, '') for param in LIST_FILTER_PARAMS}
    filters_dict['distributor'] = get_distributor_code(request.user)
    filters_dict['dashboard'] = is_admin_user(request.user)

    cached_data, cache_key = get_cached_products_list(filters_dict)
    if cached_data:
        logger.debug(f"Products list cache HIT (user: {request.user.username})")
        response = Response(cached_data)
        response['X-Cache'] = 'HIT'
        return response

    queryset = visible_products(request.user).select_related('brand', 'category').prefetch_related('images')
    filterset = ProductFilter(request.query_params, queryset=queryset)
    if not filterset.is_valid():
        return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
    queryset = filterset.qs.order_by('-updated_at', '-created_at')

    response_data = paginate(request, queryset, ProductListSerializer)
    cache_products_list(cache_key, response_data, PRODUCTS_LIST_CACHE_TTL)

    response = Response(response_data)
    response['X-Cache'] = 'MISS'
    return response


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_list_create(request):
    """List products (ProductFilter params, page/limit) or create one"""
    if request.method == 'GET':
        return _product_list(request)
    else:  # POST
        denied = _dashboard_required(request)
        if denied:
            return denied
        serializer = ProductSerializer(data=request.data, context={'request': request})
        if serializer.is_valid():
            product = serializer.save(distributor_code=get_distributor_code(request.user))
            create_audit_log(request=request, action='create', model_name='Product', object_id=product.id,
                             object_name=product.name, object_reference=product.sku)
            return Response(ProductSerializer(product, context={'request': request}).data,
                            status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


TRACKED_FIELDS = ('name', 'sku', 'price', 'price_sale', 'status', 'published', 'stock_quantity')


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(visible_products(request.user), pk=pk)

    if request.method == 'GET':
        serializer = ProductSerializer(product, context={'request': request})
        return Response(serializer.data)
    denied = _dashboard_required(request)
    if denied:
        return denied
    if request.method in ('PUT', 'PATCH'):
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH',
                                       context={'request': request})
        if serializer.is_valid():
            old_data = {field: getattr(product, field) for field in TRACKED_FIELDS}
            serializer.save()
            changes = {field: {'old': str(old_data[field]), 'new': str(getattr(product, field))}
                       for field in TRACKED_FIELDS if old_data[field] != getattr(product, field)}
            if changes:
                action = 'price_change' if set(changes) & {'price', 'price_sale'} else 'update'
                create_audit_log(request=request, action=action, model_name='Product', object_id=product.id,
                                 object_name=product.name, object_reference=product.sku, changes=changes)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        product_name, product_sku, product_id = product.name, product.sku, product.id
        product.delete()
        create_audit_log(request=request, action='delete', model_name='Product', object_id=product_id,
                         object_name=product_name, object_reference=product_sku,
                         changes={'name': product_name, 'sku': product_sku})
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_featured(request):
    """Featured products for the storefront home page"""
    try:
        limit = min(max(int(request.query_params.get('limit', 12)), 1), 100)
    except (TypeError, ValueError):
        limit = 12
    products = visible_products(request.user).filter(featured=True) \
        .select_related('brand', 'category').prefetch_related('images').order_by('-updated_at')[:limit]
    serializer = ProductListSerializer(products, many=True)
    return Response(serializer.data)


def _discount_summary(discount):
    return {
        'id': discount.id,
        'code': discount.code,
        'name': discount.name,
        'template': discount.template,
        'discount_type': discount.discount_type,
        'discount_value': str(discount.discount_value),
        'is_cumulative': discount.is_cumulative,
        'valid_to': discount.valid_to.isoformat() if discount.valid_to else None,
    }


def product_pricing(product, price_list, discounts):
    """pricing/discounts block of the with-discounts endpoints"""
    list_price = find_list_price(product, price_list)
    calculation = price_product(product, 1, price_list, discounts)
    applicable = [discount for discount in discounts if discount.applies_to_product(product)]
    best = max(applicable, key=lambda d: (d.priority, d.discount_value), default=None)
    return {
        'pricing': {
            'base_price': str(product.price),
            'sale_price': str(product.price_sale) if product.price_sale is not None else None,
            'price_list': price_list.code if price_list else None,
            'price_list_price': str(list_price.effective_price) if list_price else None,
            'final_price': str(calculation.final_price),
            'savings': str(calculation.total_savings),
            'applied_discounts': calculation.to_dict()['applied_discounts'],
        },
        'discounts': [_discount_summary(discount) for discount in applicable],
        'has_discounts': bool(applicable),
        'best_discount': _discount_summary(best) if best else None,
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_with_discounts(request, pk):
    """Product detail plus the customer's price and the discounts that apply to it"""
    product = get_object_or_404(
        visible_products(request.user).select_related('brand', 'category', 'sub_category'), pk=pk)
    data = ProductSerializer(product, context={'request': request}).data
    discounts = get_active_discounts(get_distributor_code(request.user))
    data.update(product_pricing(product, resolve_price_list(request.user), discounts))
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_list_with_discounts(request):
    """Paginated product list (ProductFilter params) with pricing for the requesting customer"""
    queryset = visible_products(request.user).select_related('brand', 'category', 'sub_category') \
        .prefetch_related('images')
    filterset = ProductFilter(request.query_params, queryset=queryset)
    if not filterset.is_valid():
        return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
    page = paginate(request, filterset.qs.order_by('-updated_at', '-created_at'), ProductListSerializer)

    products = Product.objects.select_related('brand', 'category', 'sub_category') \
        .in_bulk([row['id'] for row in page['results']])
    price_list = resolve_price_list(request.user)
    discounts = get_active_discounts(get_distributor_code(request.user))
    for row in page['results']:
        row.update(product_pricing(products[row['id']], price_list, discounts))
    return Response(page)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def product_bulk(request):
    return run_bulk_import(request, 'products', bulk_create_products)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def product_match(request):
    """Match brand, category and sub-category names of import rows against the catalog"""
    items = request.data.get('items')
    if not isinstance(items, list):
        return Response({'error': 'items must be a list.'}, status=status.HTTP_400_BAD_REQUEST)
    results = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            return Response({'error': f'Item {index} must be an object.'}, status=status.HTTP_400_BAD_REQUEST)
        results.append({'index': index, 'name': item.get('name', ''), **match_catalog_item(item)})
    return Response({'results': results})


# Image gallery views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def product_image_list_create(request):
    """Gallery images (?unassigned=true, ?product=<id>) or register an uploaded image"""
    if request.method == 'GET':
        queryset = scope_queryset(ProductImage.objects.select_related('product'), request.user).order_by('-created_at')
        filterset = ProductImageFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        return Response(paginate(request, filterset.qs, ProductImageSerializer))
    else:  # POST
        serializer = ProductImageSerializer(data=request.data)
        if serializer.is_valid():
            serializer.save(distributor_code=get_distributor_code(request.user))
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def product_image_detail(request, pk):
    image = get_object_or_404(scope_queryset(ProductImage.objects.all(), request.user), pk=pk)
    if request.method == 'GET':
        return Response(ProductImageSerializer(image).data)
    image.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def product_image_assign(request):
    """Attach a gallery image to a product"""
    image = get_object_or_404(scope_queryset(ProductImage.objects.all(), request.user),
                              pk=request.data.get('image_id'))
    product = get_object_or_404(scope_queryset(Product.objects.all(), request.user),
                                pk=request.data.get('product_id'))
    is_primary = bool(request.data.get('is_primary', False))

    with transaction.atomic():
        if is_primary or not product.images.exists():
            product.images.exclude(pk=image.pk).update(is_primary=False)
            is_primary = True
        image.product = product
        image.is_primary = is_primary
        image.position = product.images.exclude(pk=image.pk).count()
        image.save()
    product.save(update_fields=['updated_at'])
    create_audit_log(request=request, action='update', model_name='ProductImage', object_id=image.id,
                     object_name=image.filename, object_reference=product.sku,
                     changes={'product': product.id, 'is_primary': is_primary})
    return Response(ProductImageSerializer(image).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def product_image_batch_delete(request):
    ids = request.data.get('ids')
    if not isinstance(ids, list) or not ids:
        return Response({'error': 'ids must be a non-empty list.'}, status=status.HTTP_400_BAD_REQUEST)
    deleted, _ = scope_queryset(ProductImage.objects.filter(id__in=ids), request.user).delete()
    logger.info(f"Deleted {deleted} gallery images")
    return Response({'deleted': deleted})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def product_image_find_matches(request):
    """Products ranked by how well the image filename matches their sku, gtin or name"""
    image = get_object_or_404(scope_queryset(ProductImage.objects.all(), request.user),
                              pk=request.data.get('image_id'))
    try:
        min_similarity = int(request.data.get('min_similarity', 60))
    except (TypeError, ValueError):
        return Response({'error': 'min_similarity must be an integer.'}, status=status.HTTP_400_BAD_REQUEST)
    filename = image.filename or image.image_url

    matches = []
    for product in scope_queryset(Product.objects.all(), request.user).only(
            'id', 'name', 'sku', 'gtin', 'product_code'):
        similarity = image_similarity(filename, product)
        if similarity >= min_similarity:
            matches.append((similarity, product.id))
    matches.sort(key=lambda match: -match[0])
    matches = matches[:20]

    products = Product.objects.select_related('brand', 'category').prefetch_related('images') \
        .in_bulk([product_id for _, product_id in matches])
    return Response({
        'image': ProductImageSerializer(image).data,
        'matches': [{'similarity': similarity, 'product': ProductListSerializer(products[product_id]).data}
                    for similarity, product_id in matches],
    })


def _analyze(request, pk, force):
    image = get_object_or_404(scope_queryset(ProductImage.objects.all(), request.user), pk=pk)
    try:
        analyze_product_image(image, force=force)
    except ImageAnalysisError as e:
        response_status = status.HTTP_503_SERVICE_UNAVAILABLE if e.code == 'ai_unavailable' \
            else status.HTTP_502_BAD_GATEWAY
        return Response(e.as_response_data(), status=response_status)
    return Response(ProductImageSerializer(image).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def product_image_analyze(request, pk):
    """AI description of a gallery image; a stored analysis is returned as is"""
    return _analyze(request, pk, force=False)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def product_image_reanalyze(request, pk):
    """Run the AI analysis again, replacing the stored one"""
    return _analyze(request, pk, force=True)


# Favorite views
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def favorite_list(request):
    favorites = Favorite.objects.filter(user=request.user).select_related('product__brand', 'product__category')
    serializer = FavoriteSerializer(favorites, many=True)
    return Response(serializer.data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def favorite_add(request):
    product = get_object_or_404(visible_products(request.user), pk=request.data.get('product_id'))
    favorite, created = Favorite.objects.get_or_create(user=request.user, product=product)
    if created:
        Product.objects.filter(pk=product.pk).update(likes=F('likes') + 1)
    return Response(FavoriteSerializer(favorite).data, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def favorite_remove(request):
    deleted, _ = Favorite.objects.filter(user=request.user, product_id=request.data.get('product_id')).delete()
    if deleted:
        Product.objects.filter(pk=request.data.get('product_id'), likes__gt=0).update(likes=F('likes') - 1)
    return Response({'removed': bool(deleted)})

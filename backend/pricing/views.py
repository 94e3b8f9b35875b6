import logging
from decimal import Decimal
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q
from django.shortcuts import get_object_or_404
from backend.catalog.models import Product
from backend.core.exceptions import DomainError, TemplateConfigError
from backend.core.permissions import IsDashboardUser
from backend.core.utils import create_audit_log, get_distributor_code, paginate, scope_queryset
from backend.imports.payload import run_bulk_import
from .bulk import bulk_create_price_lists, bulk_create_prices, bulk_create_discounts
from .calculator import evaluate_cart, line_from_product, format_price_calculation, calculate_price, discount_rule
from .models import PriceList, Price, Discount, Coupon, STATUS_CHOICES
from .serializers import (
    PriceListSerializer, PriceSerializer, DiscountSerializer, DiscountFromTemplateSerializer, CouponSerializer,
    PriceCalculationRequestSerializer, CartLineSerializer, CouponValidateSerializer
)
from .services import (
    get_active_discounts, resolve_price_list, unit_price, price_product, validate_coupon, customer_context
)
from .templates import DISCOUNT_TEMPLATES, validate_template_config, validate_discount_config, build_discount_payload

logger = logging.getLogger(__name__)


def _detail(request, instance, serializer_class, model_name):
    """GET/PUT/PATCH/DELETE for a single pricing object"""
    if request.method == 'GET':
        serializer = serializer_class(instance)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = serializer_class(instance, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name=model_name, object_id=instance.pk,
                             object_name=str(instance), object_reference=instance.code,
                             changes={'fields': sorted(request.data.keys())})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(request=request, action='delete', model_name=model_name, object_id=instance.pk,
                         object_name=str(instance), object_reference=instance.code)
        instance.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


def _create(request, serializer_class, model_name):
    serializer = serializer_class(data=request.data)
    if serializer.is_valid():
        instance = serializer.save(distributor_code=get_distributor_code(request.user))
        create_audit_log(request=request, action='create', model_name=model_name, object_id=instance.pk,
                         object_name=str(instance), object_reference=instance.code)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# PriceList views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def price_list_list_create(request):
    """List price lists (status, currency, channel, search) or create one"""
    if request.method == 'GET':
        queryset = scope_queryset(PriceList.objects.all(), request.user)
        for param in ('status', 'currency', 'channel'):
            value = request.query_params.get(param)
            if value:
                queryset = queryset.filter(**{param: value})
        search = request.query_params.get('search')
        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(code__icontains=search) |
                                       Q(description__icontains=search))
        return Response(paginate(request, queryset, PriceListSerializer))
    else:  # POST
        return _create(request, PriceListSerializer, 'PriceList')


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def price_list_detail(request, pk):
    """Retrieve, update or delete a price list"""
    price_list = get_object_or_404(scope_queryset(PriceList.objects.all(), request.user), pk=pk)
    return _detail(request, price_list, PriceListSerializer, 'PriceList')


def _status_update(request, instance, model_name, serializer_class):
    new_status = request.data.get('status')
    if new_status not in dict(STATUS_CHOICES):
        return Response({'error': f"Invalid status. Use one of {', '.join(dict(STATUS_CHOICES))}."},
                        status=status.HTTP_400_BAD_REQUEST)
    old_status = instance.status
    instance.status = new_status
    instance.save(update_fields=['status', 'updated_at'])
    create_audit_log(request=request, action='status_change', model_name=model_name, object_id=instance.pk,
                     object_name=str(instance), object_reference=instance.code,
                     changes={'status': {'old': old_status, 'new': new_status}})
    return Response(serializer_class(instance).data)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def price_list_status(request, pk):
    price_list = get_object_or_404(scope_queryset(PriceList.objects.all(), request.user), pk=pk)
    return _status_update(request, price_list, 'PriceList', PriceListSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def price_list_prices(request, pk):
    """Prices of a price list"""
    price_list = get_object_or_404(scope_queryset(PriceList.objects.all(), request.user), pk=pk)
    return Response(paginate(request, price_list.prices.select_related('price_list'), PriceSerializer))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def price_list_bulk(request):
    return run_bulk_import(request, 'price_lists', bulk_create_price_lists)


# Price views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def prices_list_create(request):
    """List prices (price_list, product_sku, status) or create one"""
    if request.method == 'GET':
        queryset = scope_queryset(Price.objects.select_related('price_list'), request.user)
        price_list = request.query_params.get('price_list')
        if price_list:
            if price_list.isdigit():
                queryset = queryset.filter(Q(price_list_id=int(price_list)) | Q(price_list__code=price_list))
            else:
                queryset = queryset.filter(price_list__code=price_list)
        if request.query_params.get('product_sku'):
            queryset = queryset.filter(product_sku=request.query_params['product_sku'])
        if request.query_params.get('status'):
            queryset = queryset.filter(status=request.query_params['status'])
        return Response(paginate(request, queryset, PriceSerializer))
    else:  # POST
        return _create(request, PriceSerializer, 'Price')


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def price_detail(request, pk):
    price = get_object_or_404(scope_queryset(Price.objects.all(), request.user), pk=pk)
    old_base_price = price.base_price
    response = _detail(request, price, PriceSerializer, 'Price')
    if request.method in ('PUT', 'PATCH') and response.status_code == 200:
        price.refresh_from_db()
        if price.base_price != old_base_price:
            create_audit_log(request=request, action='price_change', model_name='Price', object_id=price.pk,
                             object_name=str(price), object_reference=price.code,
                             changes={'base_price': {'old': str(old_base_price), 'new': str(price.base_price)}})
    return response


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def price_bulk(request):
    return run_bulk_import(request, 'prices', bulk_create_prices)


# Discount views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def discount_list_create(request):
    """List discounts (status, template, discount_type, search) or create one"""
    if request.method == 'GET':
        queryset = scope_queryset(Discount.objects.all(), request.user)
        for param in ('status', 'template', 'discount_type'):
            value = request.query_params.get(param)
            if value:
                queryset = queryset.filter(**{param: value})
        search = request.query_params.get('search')
        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(code__icontains=search) |
                                       Q(description__icontains=search))
        return Response(paginate(request, queryset, DiscountSerializer))
    else:  # POST
        data = request.data
        try:
            validate_discount_config(data.get('template') or '', data.get('discount_type', 'percentage'),
                                     data.get('template_config') or {})
        except TemplateConfigError as e:
            return Response(e.as_response_data(), status=status.HTTP_400_BAD_REQUEST)
        return _create(request, DiscountSerializer, 'Discount')


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def discount_detail(request, pk):
    discount = get_object_or_404(scope_queryset(Discount.objects.all(), request.user), pk=pk)
    if request.method in ('PUT', 'PATCH'):
        data = request.data
        try:
            validate_discount_config(data.get('template', discount.template) or '',
                                     data.get('discount_type', discount.discount_type),
                                     data.get('template_config', discount.template_config) or {})
        except TemplateConfigError as e:
            return Response(e.as_response_data(), status=status.HTTP_400_BAD_REQUEST)
    return _detail(request, discount, DiscountSerializer, 'Discount')


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def discount_bulk(request):
    return run_bulk_import(request, 'discounts', bulk_create_discounts)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def discount_templates(request):
    """Catalogue of discount templates"""
    return Response({'templates': DISCOUNT_TEMPLATES, 'count': len(DISCOUNT_TEMPLATES)})


def _next_discount_code(template):
    base = f"{template.upper()}-"
    count = Discount.objects.filter(code__startswith=base).count() + 1
    code = f"{base}{count:04d}"
    while Discount.objects.filter(code=code).exists():
        count += 1
        code = f"{base}{count:04d}"
    return code


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def discount_from_template(request):
    """Create a discount from a template and its configuration"""
    serializer = DiscountFromTemplateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = dict(serializer.validated_data)
    template = data.pop('template')
    config = data.pop('config')
    try:
        validate_template_config(template, config)
    except TemplateConfigError as e:
        return Response(e.as_response_data(), status=status.HTTP_400_BAD_REQUEST)

    if not data.get('code'):
        data['code'] = _next_discount_code(template)
    elif Discount.objects.filter(code=data['code']).exists():
        return Response({'code': ['A discount with this code already exists.']}, status=status.HTTP_400_BAD_REQUEST)
    payload = build_discount_payload(template, data, config)
    discount = Discount.objects.create(distributor_code=get_distributor_code(request.user), **payload)
    create_audit_log(request=request, action='create', model_name='Discount', object_id=discount.pk,
                     object_name=discount.name, object_reference=discount.code, changes={'template': template})
    logger.info(f"Discount {discount.code} created from template {template}")
    return Response(DiscountSerializer(discount).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def discount_calculate(request):
    """Price a quantity of a product (or a bare base price) with the active discounts"""
    serializer = PriceCalculationRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    discounts = get_active_discounts(get_distributor_code(request.user))

    if data.get('product_id'):
        product = get_object_or_404(Product.objects.select_related('category', 'sub_category', 'brand'),
                                    pk=data['product_id'])
        if data.get('base_price') is not None:
            rules = []
            for discount in discounts:
                if discount.applies_to_product(product):
                    rule = discount_rule(discount)
                    if rule is not None:
                        rules.append(rule)
            result = calculate_price(data['base_price'], data['quantity'], rules)
        else:
            result = price_product(product, data['quantity'], resolve_price_list(request.user), discounts)
    else:
        result = calculate_price(data['base_price'], data['quantity'], [])

    response = result.to_dict()
    response['formatted'] = format_price_calculation(result)
    return Response(response)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def discount_evaluate_cart(request):
    """Apply the active discounts to a list of {product_id, quantity[, unit_price]} lines"""
    lines_data = request.data.get('lines', request.data.get('items'))
    serializer = CartLineSerializer(data=lines_data, many=True)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    products = Product.objects.select_related('category', 'sub_category', 'brand') \
        .in_bulk([line['product_id'] for line in serializer.validated_data])
    price_list = resolve_price_list(request.user)
    lines = []
    for line in serializer.validated_data:
        product = products.get(line['product_id'])
        if product is None:
            return Response({'error': f"Product {line['product_id']} not found."}, status=status.HTTP_400_BAD_REQUEST)
        price = line.get('unit_price')
        if price is None:
            price = unit_price(product, price_list, line['quantity'])
        lines.append(line_from_product(product, line['quantity'], price))

    evaluation = evaluate_cart(lines, get_active_discounts(get_distributor_code(request.user)),
                               customer=customer_context(request.user))
    return Response(evaluation.to_dict())


# Coupon views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def coupon_list_create(request):
    if request.method == 'GET':
        queryset = scope_queryset(Coupon.objects.select_related('discount'), request.user).order_by('-created_at')
        is_active = request.query_params.get('is_active')
        if is_active is not None:
            queryset = queryset.filter(is_active=is_active.lower() in ('1', 'true', 'yes'))
        return Response(paginate(request, queryset, CouponSerializer))
    else:  # POST
        return _create(request, CouponSerializer, 'Coupon')


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def coupon_detail(request, pk):
    coupon = get_object_or_404(scope_queryset(Coupon.objects.all(), request.user), pk=pk)
    return _detail(request, coupon, CouponSerializer, 'Coupon')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def coupon_validate(request):
    """Discount amount of a coupon for a subtotal"""
    serializer = CouponValidateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        coupon, amount = validate_coupon(serializer.validated_data['code'], serializer.validated_data['subtotal'],
                                         distributor_code=get_distributor_code(request.user))
    except DomainError as e:
        return Response(e.as_response_data(), status=status.HTTP_400_BAD_REQUEST)
    return Response({
        'valid': True,
        'code': coupon.code,
        'discount_type': coupon.discount_type,
        'value': str(coupon.value),
        'discount_amount': str(amount),
        'subtotal_after_discount': str(max(serializer.validated_data['subtotal'] - amount, Decimal('0.00'))),
    })

import logging
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from backend.core.exceptions import DomainError
from backend.core.permissions import IsDashboardUser
from backend.core.utils import create_audit_log, paginate, scope_queryset
from .filters import OrderFilter
from .models import Cart, Order
from .serializers import (
    CartSerializer, CartAddSerializer, CartUpdateSerializer, CartRemoveSerializer, OrderSerializer,
    CheckoutSerializer, OrderStatusSerializer
)
from . import services

logger = logging.getLogger(__name__)


def _cart_response(user, response_status=status.HTTP_200_OK):
    cart = services.get_cart(user)
    cart = Cart.objects.prefetch_related('items__product__images').get(pk=cart.pk)
    return Response(CartSerializer(cart).data, status=response_status)


# Cart views
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def cart_detail(request):
    """Current user's cart with items, total and item_count"""
    return _cart_response(request.user)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cart_add(request):
    serializer = CartAddSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        item = services.add_to_cart(request.user, serializer.validated_data['product_id'],
                                    serializer.validated_data['quantity'])
    except DomainError as e:
        return Response(e.as_response_data(), status=status.HTTP_400_BAD_REQUEST)
    create_audit_log(request=request, action='cart_add', model_name='CartItem', object_id=item.pk,
                     object_name=item.product.name, object_reference=item.product.sku,
                     changes={'quantity': serializer.validated_data['quantity']})
    return _cart_response(request.user, status.HTTP_201_CREATED)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def cart_update(request):
    """Set the quantity of a cart item; quantity 0 removes it"""
    serializer = CartUpdateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        services.update_cart_item(request.user, serializer.validated_data['item_id'],
                                  serializer.validated_data['quantity'])
    except DomainError as e:
        return Response(e.as_response_data(), status=status.HTTP_400_BAD_REQUEST)
    return _cart_response(request.user)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def cart_remove(request):
    serializer = CartRemoveSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    item_id = serializer.validated_data['item_id']
    try:
        services.remove_cart_item(request.user, item_id)
    except DomainError as e:
        return Response(e.as_response_data(), status=status.HTTP_400_BAD_REQUEST)
    create_audit_log(request=request, action='cart_remove', model_name='CartItem', object_id=item_id)
    return _cart_response(request.user)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def cart_clear(request):
    services.clear_cart(request.user)
    return _cart_response(request.user)


# Order views
def _orders():
    return Order.objects.select_related('user', 'client', 'coupon').prefetch_related('items')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def order_list_create(request):
    """List own orders (paginated) or checkout the cart"""
    if request.method == 'GET':
        queryset = _orders().filter(user=request.user)
        if request.query_params.get('status'):
            queryset = queryset.filter(status=request.query_params['status'])
        return Response(paginate(request, queryset, OrderSerializer, default_limit=20))
    else:  # POST
        serializer = CheckoutSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            order = services.checkout(request.user, serializer.validated_data)
        except DomainError as e:
            return Response(e.as_response_data(), status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='order_create', model_name='Order', object_id=order.pk,
                         object_name=order.order_number, object_reference=order.order_number,
                         changes={'total': str(order.total), 'items': order.items.count()})
        return Response(OrderSerializer(_orders().get(pk=order.pk)).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_detail(request, pk):
    order = get_object_or_404(_orders().filter(user=request.user), pk=pk)
    return Response(OrderSerializer(order).data)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def order_cancel(request, pk):
    """Cancel one of the user's orders; the stock is restored"""
    order = get_object_or_404(Order.objects.filter(user=request.user), pk=pk)
    try:
        order, old_status = services.transition_order(order, 'CANCELLED')
    except DomainError as e:
        return Response(e.as_response_data(), status=status.HTTP_400_BAD_REQUEST)
    create_audit_log(request=request, action='order_cancel', model_name='Order', object_id=order.pk,
                     object_name=order.order_number, object_reference=order.order_number,
                     changes={'status': {'old': old_status, 'new': order.status}})
    return Response(OrderSerializer(_orders().get(pk=order.pk)).data)


# Admin order views
def _admin_orders(request):
    return scope_queryset(_orders(), request.user)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def admin_order_list(request):
    """All orders of the distributor (status, date_from, date_to, client, payment_type, supplier, search)"""
    filterset = OrderFilter(request.query_params, queryset=_admin_orders(request))
    if not filterset.is_valid():
        return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
    return Response(paginate(request, filterset.qs.order_by('-created_at'), OrderSerializer))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def admin_order_detail(request, pk):
    order = get_object_or_404(_admin_orders(request), pk=pk)
    data = OrderSerializer(order).data
    data['items_by_supplier'] = services.items_by_supplier(order)
    return Response(data)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def admin_order_status(request, pk):
    order = get_object_or_404(_admin_orders(request), pk=pk)
    serializer = OrderStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        order, old_status = services.transition_order(
            order,
            serializer.validated_data['status'],
            tracking_number=serializer.validated_data.get('tracking_number'),
            estimated_delivery=serializer.validated_data.get('estimated_delivery'),
        )
    except DomainError as e:
        return Response(e.as_response_data(), status=status.HTTP_400_BAD_REQUEST)
    action = 'order_cancel' if order.status == 'CANCELLED' else 'order_status'
    create_audit_log(request=request, action=action, model_name='Order', object_id=order.pk,
                     object_name=order.order_number, object_reference=order.order_number,
                     changes={'status': {'old': old_status, 'new': order.status}})
    return Response(OrderSerializer(_orders().get(pk=order.pk)).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def admin_order_stats(request):
    filterset = OrderFilter(request.query_params, queryset=scope_queryset(Order.objects.all(), request.user))
    if not filterset.is_valid():
        return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
    return Response(services.order_stats(filterset.qs))

from django.urls import path
from . import views

urlpatterns = [
    # Cart
    path('cart/', views.cart_detail, name='cart-detail'),
    path('cart/add/', views.cart_add, name='cart-add'),
    path('cart/update/', views.cart_update, name='cart-update'),
    path('cart/remove/', views.cart_remove, name='cart-remove'),
    path('cart/clear/', views.cart_clear, name='cart-clear'),

    # Orders
    path('orders/', views.order_list_create, name='order-list-create'),
    path('orders/<int:pk>/', views.order_detail, name='order-detail'),
    path('orders/<int:pk>/cancel/', views.order_cancel, name='order-cancel'),

    # Admin orders
    path('admin/orders/', views.admin_order_list, name='admin-order-list'),
    path('admin/orders/stats/', views.admin_order_stats, name='admin-order-stats'),
    path('admin/orders/<int:pk>/', views.admin_order_detail, name='admin-order-detail'),
    path('admin/orders/<int:pk>/status/', views.admin_order_status, name='admin-order-status'),
]

from django.contrib import admin
from .models import Cart, CartItem, Order, OrderItem


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    raw_id_fields = ['product']


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ['user', 'created_at', 'updated_at']
    search_fields = ['user__username', 'user__email']
    inlines = [CartItemInline]


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    raw_id_fields = ['product']
    readonly_fields = ['line_total']


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'user', 'client', 'status', 'payment_type', 'payment_status', 'total', 'created_at']
    list_filter = ['status', 'payment_type', 'payment_status', 'created_at']
    search_fields = ['order_number', 'user__email', 'client__first_name', 'client__last_name', 'tracking_number']
    ordering = ['-created_at']
    readonly_fields = ['order_number', 'subtotal', 'discount', 'tax', 'total', 'applied_discounts', 'created_at', 'updated_at']
    inlines = [OrderItemInline]

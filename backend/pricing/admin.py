from django.contrib import admin
from .models import PriceList, Price, Discount, Coupon


class PriceInline(admin.TabularInline):
    model = Price
    extra = 0
    fields = ['code', 'product_sku', 'product_name', 'base_price', 'sale_price', 'status']


@admin.register(PriceList)
class PriceListAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'currency', 'customer_type', 'channel', 'status', 'is_default', 'priority', 'start_date', 'end_date']
    list_filter = ['status', 'currency', 'channel', 'is_default', 'created_at']
    search_fields = ['code', 'name', 'description']
    ordering = ['-priority', 'name']
    inlines = [PriceInline]
    readonly_fields = ['created_at', 'updated_at']


@admin.register(Price)
class PriceAdmin(admin.ModelAdmin):
    list_display = ['code', 'product_sku', 'product_name', 'price_list', 'base_price', 'sale_price', 'currency', 'status']
    list_filter = ['status', 'price_type', 'currency', 'channel']
    search_fields = ['code', 'name', 'product_sku', 'product_name']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(Discount)
class DiscountAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'template', 'discount_type', 'discount_value', 'status', 'is_cumulative', 'times_used', 'valid_from', 'valid_to']
    list_filter = ['status', 'template', 'discount_type', 'is_cumulative', 'created_at']
    search_fields = ['code', 'name', 'description']
    ordering = ['-priority', 'name']
    readonly_fields = ['times_used', 'created_at', 'updated_at']


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ['code', 'discount_type', 'value', 'min_purchase_amount', 'times_used', 'usage_limit', 'is_active', 'valid_to']
    list_filter = ['is_active', 'discount_type', 'created_at']
    search_fields = ['code', 'description']
    readonly_fields = ['times_used', 'created_at', 'updated_at']

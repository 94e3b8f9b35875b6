from django.contrib import admin
from django.utils.safestring import mark_safe
from .models import Category, Brand, Product, ProductImage, Favorite


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'parent', 'is_active', 'created_at']
    list_filter = ['is_active', 'created_at']
    search_fields = ['name', 'slug']
    ordering = ['name']


@admin.register(Brand)
class BrandAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'is_active', 'created_at']
    list_filter = ['is_active', 'created_at']
    search_fields = ['name']
    ordering = ['name']


class ProductImageInline(admin.TabularInline):
    model = ProductImage
    extra = 0
    fields = ['image_url', 'filename', 'is_primary', 'position']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'sku', 'category', 'brand', 'status', 'published', 'featured', 'price', 'stock_quantity', 'updated_at']
    list_filter = ['status', 'published', 'featured', 'track_inventory', 'category', 'brand', 'created_at']
    search_fields = ['name', 'sku', 'gtin', 'product_code', 'description']
    ordering = ['-updated_at']
    inlines = [ProductImageInline]
    readonly_fields = ['likes', 'created_at', 'updated_at']


@admin.register(ProductImage)
class ProductImageAdmin(admin.ModelAdmin):
    list_display = ['filename', 'product', 'is_primary', 'position', 'image_preview', 'created_at']
    list_filter = ['is_primary', 'created_at']
    search_fields = ['filename', 'product__name', 'product__sku']
    ordering = ['-created_at']
    readonly_fields = ['image_preview', 'created_at']

    def image_preview(self, obj):
        if obj.image_url:
            return mark_safe(f'<img src="{obj.image_url}" style="max-height: 80px;" />')
        return '-'
    image_preview.short_description = 'Preview'


@admin.register(Favorite)
class FavoriteAdmin(admin.ModelAdmin):
    list_display = ['user', 'product', 'created_at']
    search_fields = ['user__username', 'product__name']
    ordering = ['-created_at']

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User, Setting, AuditLog, OneTimeCode, Plan, Distributor, ShippingAddress, PaymentMethod


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['username', 'email', 'user_type', 'distributor_code', 'is_verified', 'is_active', 'is_staff', 'date_joined']
    list_filter = ['user_type', 'is_verified', 'is_active', 'is_staff', 'is_superuser', 'date_joined']
    search_fields = ['username', 'email', 'first_name', 'last_name', 'distributor_code']
    ordering = ['username']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Storefront', {'fields': ('phone', 'user_type', 'distributor_code', 'is_verified', 'two_factor_enabled')}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Storefront', {'fields': ('phone', 'user_type', 'distributor_code')}),
    )


@admin.register(OneTimeCode)
class OneTimeCodeAdmin(admin.ModelAdmin):
    list_display = ['user', 'purpose', 'expires_at', 'used_at', 'created_at']
    list_filter = ['purpose']
    search_fields = ['user__username', 'user__email']
    readonly_fields = ['code', 'created_at']


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    list_display = ['name', 'display_name', 'price', 'currency', 'billing_cycle', 'is_active']
    list_filter = ['is_active', 'billing_cycle']


@admin.register(Distributor)
class DistributorAdmin(admin.ModelAdmin):
    list_display = ['business_name', 'distributor_code', 'owner', 'plan', 'is_active', 'created_at']
    list_filter = ['is_active', 'plan']
    search_fields = ['business_name', 'distributor_code', 'ruc']


@admin.register(ShippingAddress)
class ShippingAddressAdmin(admin.ModelAdmin):
    list_display = ['user', 'label', 'city', 'is_default']
    search_fields = ['user__username', 'address', 'city']


@admin.register(PaymentMethod)
class PaymentMethodAdmin(admin.ModelAdmin):
    list_display = ['user', 'method_type', 'last4', 'is_default']
    list_filter = ['method_type']


@admin.register(Setting)
class SettingAdmin(admin.ModelAdmin):
    list_display = ['key', 'value', 'updated_at']
    search_fields = ['key', 'description']
    ordering = ['key']
    readonly_fields = ['updated_at']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['user', 'action', 'model_name', 'object_id', 'ip_address', 'created_at']
    list_filter = ['action', 'model_name', 'created_at']
    search_fields = ['user__username', 'model_name', 'object_id', 'object_reference']
    ordering = ['-created_at']
    readonly_fields = ['user', 'action', 'model_name', 'object_id', 'changes', 'ip_address', 'created_at']

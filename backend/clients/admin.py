from django.contrib import admin
from .models import Client


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ['client_code', 'first_name', 'last_name', 'email', 'phone', 'customer_class', 'status', 'distributor_code', 'created_at']
    list_filter = ['status', 'customer_class', 'gender', 'is_verified', 'created_at']
    search_fields = ['client_code', 'first_name', 'last_name', 'email', 'document', 'phone']
    ordering = ['-created_at']
    readonly_fields = ['created_at', 'updated_at']
    raw_id_fields = ['user', 'price_list']

from django.urls import path
from .views import (
    price_list_list_create, price_list_detail, price_list_status, price_list_prices, price_list_bulk,
    prices_list_create, price_detail, price_bulk,
    discount_list_create, discount_detail, discount_bulk, discount_templates, discount_from_template,
    discount_calculate, discount_evaluate_cart,
    coupon_list_create, coupon_detail, coupon_validate
)

urlpatterns = [
    # PriceList endpoints
    path('price-lists/', price_list_list_create, name='price-list-list-create'),
    path('price-lists/bulk/', price_list_bulk, name='price-list-bulk'),
    path('price-lists/<int:pk>/', price_list_detail, name='price-list-detail'),
    path('price-lists/<int:pk>/status/', price_list_status, name='price-list-status'),
    path('price-lists/<int:pk>/prices/', price_list_prices, name='price-list-prices'),

    # Price endpoints
    path('prices/', prices_list_create, name='price-list-create'),
    path('prices/bulk/', price_bulk, name='price-bulk'),
    path('prices/<int:pk>/', price_detail, name='price-detail'),

    # Discount endpoints
    path('discounts/', discount_list_create, name='discount-list-create'),
    path('discounts/bulk/', discount_bulk, name='discount-bulk'),
    path('discounts/templates/', discount_templates, name='discount-templates'),
    path('discounts/from-template/', discount_from_template, name='discount-from-template'),
    path('discounts/calculate/', discount_calculate, name='discount-calculate'),
    path('discounts/evaluate-cart/', discount_evaluate_cart, name='discount-evaluate-cart'),
    path('discounts/<int:pk>/', discount_detail, name='discount-detail'),

    # Coupon endpoints
    path('coupons/', coupon_list_create, name='coupon-list-create'),
    path('coupons/validate/', coupon_validate, name='coupon-validate'),
    path('coupons/<int:pk>/', coupon_detail, name='coupon-detail'),
]

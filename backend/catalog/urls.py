from django.urls import path
from .views import (
    category_list_create, category_detail,
    brand_list_create, brand_detail,
    product_list_create, product_detail, product_featured,
    product_with_discounts, product_list_with_discounts,
    product_bulk, product_match,
    product_image_list_create, product_image_detail, product_image_assign,
    product_image_batch_delete, product_image_find_matches, product_image_analyze, product_image_reanalyze,
    favorite_list, favorite_add, favorite_remove
)

urlpatterns = [
    # Category endpoints
    path('categories/', category_list_create, name='category-list-create'),
    path('categories/<int:pk>/', category_detail, name='category-detail'),

    # Brand endpoints
    path('brands/', brand_list_create, name='brand-list-create'),
    path('brands/<int:pk>/', brand_detail, name='brand-detail'),

    # Product endpoints
    path('products/', product_list_create, name='product-list-create'),
    path('products/featured/', product_featured, name='product-featured'),
    path('products/with-discounts/', product_list_with_discounts, name='product-list-with-discounts'),
    path('products/bulk/', product_bulk, name='product-bulk'),
    path('products/match/', product_match, name='product-match'),
    path('products/<int:pk>/', product_detail, name='product-detail'),
    path('products/<int:pk>/with-discounts/', product_with_discounts, name='product-with-discounts'),

    # Image gallery endpoints
    path('product-images/', product_image_list_create, name='product-image-list-create'),
    path('product-images/assign/', product_image_assign, name='product-image-assign'),
    path('product-images/batch-delete/', product_image_batch_delete, name='product-image-batch-delete'),
    path('product-images/find-matches/', product_image_find_matches, name='product-image-find-matches'),
    path('product-images/<int:pk>/', product_image_detail, name='product-image-detail'),
    path('product-images/<int:pk>/analyze/', product_image_analyze, name='product-image-analyze'),
    path('product-images/<int:pk>/re-analyze/', product_image_reanalyze, name='product-image-reanalyze'),

    # Favorite endpoints
    path('favorites/', favorite_list, name='favorite-list'),
    path('favorites/add/', favorite_add, name='favorite-add'),
    path('favorites/remove/', favorite_remove, name='favorite-remove'),
]

from django.urls import path
from . import views

urlpatterns = [
    path('clients/', views.client_list_create, name='client-list-create'),
    path('clients/bulk/', views.client_bulk, name='client-bulk'),
    path('clients/export/', views.client_export, name='client-export'),
    path('clients/send-invitation/', views.client_send_invitation, name='client-send-invitation'),
    path('clients/by-code/<str:code>/', views.client_by_code, name='client-by-code'),
    path('clients/<int:pk>/', views.client_detail, name='client-detail'),
    path('clients/<int:pk>/status/', views.client_status, name='client-status'),
]

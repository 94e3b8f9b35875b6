from django.urls import path
from .views import (
    CustomTokenObtainPairView, CustomTokenRefreshView, register, verify_otp, resend_otp, user_me,
    user_details, user_type_update, change_password, two_factor_toggle,
    address_list_create, address_detail, payment_method_list_create, payment_method_detail,
    plan_list, plan_detail, plan_select,
    distributor_create, distributor_by_email, distributor_update,
    user_list_create, user_detail,
    setting_list_create, setting_detail,
    audit_log_list, audit_log_detail,
    dashboard_summary
)

urlpatterns = [
    # Auth endpoints
    path('auth/register/', register, name='register'),
    path('auth/verify-otp/', verify_otp, name='verify-otp'),
    path('auth/resend-otp/', resend_otp, name='resend-otp'),
    path('auth/login/', CustomTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/me/', user_me, name='user-me'),

    # Current user settings
    path('user/details/', user_details, name='user-details'),
    path('user/type/', user_type_update, name='user-type'),
    path('user/change-password/', change_password, name='user-change-password'),
    path('user/two-factor/', two_factor_toggle, name='user-two-factor'),
    path('user/addresses/', address_list_create, name='address-list-create'),
    path('user/addresses/<int:pk>/', address_detail, name='address-detail'),
    path('user/payment-methods/', payment_method_list_create, name='payment-method-list-create'),
    path('user/payment-methods/<int:pk>/', payment_method_detail, name='payment-method-detail'),

    # Plans and distributors
    path('plans/', plan_list, name='plan-list'),
    path('plans/select/', plan_select, name='plan-select'),
    path('plans/<int:pk>/', plan_detail, name='plan-detail'),
    path('distributors/', distributor_create, name='distributor-create'),
    path('distributors/by-email/<str:email>/', distributor_by_email, name='distributor-by-email'),
    path('distributors/<int:pk>/', distributor_update, name='distributor-update'),

    # User endpoints
    path('users/', user_list_create, name='user-list-create'),
    path('users/<int:pk>/', user_detail, name='user-detail'),

    # Setting endpoints
    path('settings/', setting_list_create, name='setting-list-create'),
    path('settings/<int:pk>/', setting_detail, name='setting-detail'),

    # AuditLog endpoints
    path('audit-logs/', audit_log_list, name='audit-log-list'),
    path('audit-logs/<int:pk>/', audit_log_detail, name='audit-log-detail'),

    path('dashboard/summary/', dashboard_summary, name='dashboard-summary'),
]

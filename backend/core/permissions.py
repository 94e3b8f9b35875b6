from rest_framework.permissions import BasePermission


def is_admin_user(user):
    """
    Check if user may use the admin dashboard.
    Returns True for superusers, staff, platform admins and distributor accounts
    that own a distributor code.
    """
    if not user or not user.is_authenticated:
        return False
    return user.can_access_dashboard


class IsDashboardUser(BasePermission):
    """Grants access to admin dashboard endpoints"""
    message = 'Admin dashboard access required.'

    def has_permission(self, request, view):
        return is_admin_user(request.user)


class IsPlatformAdmin(BasePermission):
    """Grants access to platform-wide administration (users, settings)"""
    message = 'Platform administrator access required.'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_platform_admin)

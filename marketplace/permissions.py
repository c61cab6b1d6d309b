from rest_framework import permissions


class IsAdminRole(permissions.BasePermission):
    """
    Allow access to users holding the ADMIN role only.
    """
    message = 'Only admins can perform this action.'

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_admin)

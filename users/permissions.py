# users/permissions.py
from rest_framework.permissions import BasePermission


class IsCooperativeAdmin(BasePermission):
    """Admins and super admins of the current cooperative"""
    message = 'Only cooperative administrators can perform this action'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_cooperative_admin)


class IsMember(BasePermission):
    """Authenticated users with a membership record"""
    message = 'Member profile not found'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and hasattr(user, 'member'))

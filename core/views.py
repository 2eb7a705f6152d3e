"""
Core App Views - Current user and role permissions
"""

from rest_framework import permissions
from rest_framework.decorators import api_view
from rest_framework.response import Response

from .models import UserRole
from .serializers import UserSerializer


class IsDriver(permissions.BasePermission):
    """Permission for driver users only."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.role == UserRole.DRIVER


class IsCompanyOrAdmin(permissions.BasePermission):
    """Permission for companies and platform admins."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and (
            request.user.role == UserRole.COMPANY or request.user.is_platform_admin
        )


@api_view(['GET'])
def me(request):
    """Get current user profile."""
    return Response(UserSerializer(request.user).data)

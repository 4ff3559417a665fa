from rest_framework.permissions import BasePermission

from authentication.models import User


class IsApprovedUser(BasePermission):
    """Session user that exists, is active and was approved by an administrator."""

    message = "로그인이 필요합니다."

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        return isinstance(user, User) and user.is_authenticated


class IsAdminRole(IsApprovedUser):
    """Approved session user holding the ADMIN role."""

    message = "관리자 권한이 필요합니다."

    def has_permission(self, request, view):
        return super().has_permission(request, view) and request.user.is_admin

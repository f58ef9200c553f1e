# config/users/permissions.py
from django.conf import settings
from django.utils.crypto import constant_time_compare
from rest_framework.permissions import BasePermission

from .models import User


def is_admin(user) -> bool:
    if user is None or not getattr(user, "is_authenticated", False):
        return False
    return bool(user.is_superuser or getattr(user, "role", None) == User.ROLE_ADMIN)


def is_owner(user, deposit) -> bool:
    if user is None or not getattr(user, "is_authenticated", False):
        return False
    return deposit.user_id == user.pk


def has_cron_secret(request) -> bool:
    expected = getattr(settings, "CRON_SECRET", "")
    provided = request.headers.get("X-Cron-Secret", "")
    # пустой секрет в настройках = cron-доступ выключен
    if not expected or not provided:
        return False
    return constant_time_compare(provided, expected)


class IsMarketplaceAdmin(BasePermission):
    message = "Admin access required."

    def has_permission(self, request, view):
        return is_admin(request.user)


class IsCronOrMarketplaceAdmin(BasePermission):
    """
    Settlement trigger: либо cron с X-Cron-Secret, либо admin по JWT.
    """

    message = "Admin access or cron secret required."

    def has_permission(self, request, view):
        if has_cron_secret(request):
            return True
        return is_admin(request.user)

# users/permissions.py

from rest_framework.permissions import BasePermission

from users.models import ROLE_ADMIN, ROLE_BUSINESS_OWNER, ROLE_STAFF, ROLE_TOURIST


# ---------------- BASE ROLE PERMISSION ----------------
class HasRole(BasePermission):
    """
    Base permission to check user role safely.
    """

    allowed_roles = set()

    def has_permission(self, request, view):
        user = request.user
        return bool(
            user
            and user.is_authenticated
            and getattr(user, "role", None) in self.allowed_roles
        )


# ---------------- ROLE PERMISSIONS ----------------
class IsAdmin(HasRole):
    allowed_roles = {ROLE_ADMIN}


class IsTourist(HasRole):
    allowed_roles = {ROLE_TOURIST}


class IsBusinessMemberOrAdmin(HasRole):
    """
    Business owners / staff (object-level business match is enforced by
    the order services) and platform admins.
    """

    allowed_roles = {ROLE_BUSINESS_OWNER, ROLE_STAFF, ROLE_ADMIN}

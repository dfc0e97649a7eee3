from .user import (
    BUSINESS_ROLES,
    ROLE_ADMIN,
    ROLE_BUSINESS_OWNER,
    ROLE_STAFF,
    ROLE_TOURIST,
    User,
    UserManager,
)

__all__ = [
    "User",
    "UserManager",
    "ROLE_TOURIST",
    "ROLE_BUSINESS_OWNER",
    "ROLE_STAFF",
    "ROLE_ADMIN",
    "BUSINESS_ROLES",
]

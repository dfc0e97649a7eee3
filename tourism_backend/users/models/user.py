"""
PATH: users/models/user.py

CUSTOM USER MODEL

- Email is the canonical login identity.
- `role` identifies the caller to the order lifecycle:
  tourist (purchaser), business_owner / staff (act for their business),
  admin (platform operator).
- `business` links owners and staff to the business they act for.
"""

from __future__ import annotations

import uuid

from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.core.exceptions import ValidationError
from django.db import models

ROLE_TOURIST = "tourist"
ROLE_BUSINESS_OWNER = "business_owner"
ROLE_STAFF = "staff"
ROLE_ADMIN = "admin"

BUSINESS_ROLES = {ROLE_BUSINESS_OWNER, ROLE_STAFF}


# ---------------- USER MANAGER ----------------
class UserManager(BaseUserManager):
    def create_user(self, email=None, password=None, **extra_fields):
        email = (email or "").strip()
        if not email:
            raise ValueError("An email address is required")

        email = self.normalize_email(email)
        extra_fields.setdefault("is_active", True)

        user = self.model(email=email, **extra_fields)

        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()

        user.full_clean(exclude=["password"])
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        if not password:
            raise ValueError("Superuser must have a password")

        extra_fields.setdefault("role", ROLE_ADMIN)
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("is_active", True)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True")

        return self.create_user(email=email, password=password, **extra_fields)


# ---------------- USER MODEL ----------------
class User(AbstractBaseUser, PermissionsMixin):
    ROLE_CHOICES = [
        (ROLE_TOURIST, "Tourist"),
        (ROLE_BUSINESS_OWNER, "Business Owner"),
        (ROLE_STAFF, "Staff"),
        (ROLE_ADMIN, "Admin"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True)

    first_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100, blank=True)

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_TOURIST)

    business = models.ForeignKey(
        "businesses.Business",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="members",
    )

    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    class Meta:
        ordering = ["-created_at"]

    def clean(self):
        if self.role in BUSINESS_ROLES and not self.business_id:
            raise ValidationError("Business owners and staff must belong to a business")

    @property
    def is_platform_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def acts_for_business(self, business_id) -> bool:
        return (
            self.role in BUSINESS_ROLES
            and self.business_id is not None
            and str(self.business_id) == str(business_id)
        )

    def __str__(self):
        return f"{self.email} ({self.role})"

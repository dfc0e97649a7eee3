# businesses/models/business.py

import uuid

from django.db import models


class Business(models.Model):
    """
    A shop, restaurant or tour operator listed on the platform.

    Membership (owner / staff) lives on the user record
    (User.business + User.role).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=255, db_index=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

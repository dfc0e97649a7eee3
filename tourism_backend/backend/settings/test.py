# backend/settings/test.py
"""
PATH: backend/settings/test.py

TEST SETTINGS
- In-memory sqlite + locmem cache
- Deterministic gateway credentials (requests are always mocked)
- Throttling effectively disabled
"""

from __future__ import annotations

from .base import *  # noqa: F403
from .base import REST_FRAMEWORK

DEBUG = False
TESTING = True

SECRET_KEY = "test-secret-key"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "tourism-tests",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

PAYMENTS = {
    "PAYMONGO": {
        "PUBLIC_KEY": "pk_test_dummy",
        "SECRET_KEY": "sk_test_dummy",
        "WEBHOOK_SECRET": "whsk_test_dummy",
        "SUCCESS_URL": "http://testserver/payment/success",
        "CANCEL_URL": "http://testserver/payment/cancel",
        "TIMEOUT_SECONDS": 5,
        "READ_RETRIES": 2,
        "WEBHOOK_TOLERANCE_SECONDS": 300,
        "INTENT_EXPIRY_HOURS": 24,
    }
}

ORDERS_CANCELLATION_GRACE_SECONDS = 10
ORDERS_ABANDONMENT_THRESHOLD_MINUTES = 30
ORDERS_SWEEP_BATCH_SIZE = 50
ORDERS_SWEEPER_VERIFY_WITH_GATEWAY = False
ORDERS_TAX_RATE = "0.00"

NOTIFICATIONS_DISPATCHER = "notifications.services.dispatchers.log_dispatcher"

REST_FRAMEWORK = {
    **REST_FRAMEWORK,
    "DEFAULT_THROTTLE_RATES": {
        "anon": "10000/min",
        "user": "10000/min",
        "order_write": "10000/min",
        "webhook": "10000/min",
    },
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {"null": {"class": "logging.NullHandler"}},
    "root": {"handlers": ["null"], "level": "WARNING"},
}

"""
PATH: backend/settings/base.py

BASE SETTINGS (shared by dev + prod + test)

Operational maturity:
- Throttling (public writes + gateway webhook)
- Order lifecycle knobs (grace window, abandonment threshold, sweep interval)
- PayMongo gateway credentials + timeouts
- Shared cache (sweeper lock) configurable via CACHE_URL
- Sentry (optional): error visibility in production
"""

from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path

import environ
from corsheaders.defaults import default_headers, default_methods

# -----------------------------------------
# BASE DIRECTORY
# -----------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# -----------------------------------------
# TEST MODE DETECTION
# -----------------------------------------
TESTING = "test" in sys.argv

# -----------------------------------------
# ENV (django-environ)
# -----------------------------------------
env = environ.Env(
    DEBUG=(bool, True),
    SECRET_KEY=(str, ""),
    TIME_ZONE=(str, "Asia/Manila"),
    LOG_LEVEL=(str, "INFO"),
    ALLOWED_HOSTS=(list, ["localhost", "127.0.0.1"]),
    CORS_ALLOWED_ORIGINS=(list, ["http://localhost:5173"]),
    CSRF_TRUSTED_ORIGINS=(list, ["http://localhost:5173"]),
    DATABASE_URL=(str, f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
    CACHE_URL=(str, "locmemcache://"),
    # PayMongo
    PAYMONGO_SECRET_KEY=(str, ""),
    PAYMONGO_PUBLIC_KEY=(str, ""),
    PAYMONGO_WEBHOOK_SECRET=(str, ""),
    PAYMONGO_SUCCESS_URL=(str, ""),
    PAYMONGO_CANCEL_URL=(str, ""),
    PAYMONGO_TIMEOUT_SECONDS=(int, 15),
    PAYMONGO_READ_RETRIES=(int, 2),
    PAYMONGO_WEBHOOK_TOLERANCE_SECONDS=(int, 300),
    PAYMENT_INTENT_EXPIRY_HOURS=(int, 24),
    # Order lifecycle
    ORDERS_CANCELLATION_GRACE_SECONDS=(int, 10),
    ORDERS_ABANDONMENT_THRESHOLD_MINUTES=(int, 30),
    ORDERS_SWEEP_INTERVAL_SECONDS=(int, 300),
    ORDERS_SWEEP_BATCH_SIZE=(int, 50),
    ORDERS_SWEEPER_VERIFY_WITH_GATEWAY=(bool, True),
    ORDERS_TAX_RATE=(str, "0.00"),
    # Notifications (outbox dispatcher, dotted path)
    NOTIFICATIONS_DISPATCHER=(str, "notifications.services.dispatchers.log_dispatcher"),
    NOTIFICATIONS_MAX_ATTEMPTS=(int, 5),
    NOTIFICATIONS_CLAIM_TIMEOUT_SECONDS=(int, 300),
    # Throttling
    THROTTLE_ANON_RATE=(str, "60/min"),
    THROTTLE_USER_RATE=(str, "600/min"),
    THROTTLE_ORDER_WRITE_RATE=(str, "30/min"),
    THROTTLE_WEBHOOK_RATE=(str, "600/min"),
    # Sentry (optional; enable by setting SENTRY_DSN)
    SENTRY_DSN=(str, ""),
    SENTRY_ENVIRONMENT=(str, "development"),
    SENTRY_TRACES_SAMPLE_RATE=(float, 0.0),
    SENTRY_SEND_PII=(bool, False),
)

# -----------------------------------------
# LOAD .env
# -----------------------------------------
env_file_1 = BASE_DIR / ".env"
env_file_2 = BASE_DIR.parent / ".env"

if env_file_1.exists():
    env.read_env(str(env_file_1))
elif env_file_2.exists():
    env.read_env(str(env_file_2))

# -----------------------------------------
# CORE SECURITY
# -----------------------------------------
SECRET_KEY = (env("SECRET_KEY") or "dev-insecure-change-me").strip()
DEBUG = env.bool("DEBUG")
ALLOWED_HOSTS = env.list("ALLOWED_HOSTS")

# -----------------------------------------
# I18N / TZ
# -----------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = (env("TIME_ZONE") or "Asia/Manila").strip()
USE_I18N = True
USE_TZ = True

# -----------------------------------------
# AUTH USER MODEL (custom)
# -----------------------------------------
AUTH_USER_MODEL = "users.User"

# -----------------------------------------
# INSTALLED APPS
# -----------------------------------------
INSTALLED_APPS = [
    "corsheaders",
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "rest_framework_simplejwt",
    "drf_spectacular",
    "django_filters",
    "businesses.apps.BusinessesConfig",
    "users.apps.UsersConfig",
    "products.apps.ProductsConfig",
    "audit.apps.AuditConfig",
    "notifications.apps.NotificationsConfig",
    "orders.apps.OrdersConfig",
    "payments.apps.PaymentsConfig",
]

# -----------------------------------------
# MIDDLEWARE
# -----------------------------------------
MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "backend.urls"
WSGI_APPLICATION = "backend.wsgi.application"
APPEND_SLASH = True

# -----------------------------------------
# TEMPLATES (required for Django admin)
# -----------------------------------------
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [str(BASE_DIR / "templates")],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    }
]

# -----------------------------------------
# REST FRAMEWORK
# -----------------------------------------
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": ("rest_framework.permissions.IsAuthenticated",),
    "DEFAULT_FILTER_BACKENDS": ("django_filters.rest_framework.DjangoFilterBackend",),
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 20,
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_THROTTLE_CLASSES": (
        "rest_framework.throttling.AnonRateThrottle",
        "rest_framework.throttling.UserRateThrottle",
    ),
    "DEFAULT_THROTTLE_RATES": {
        "anon": env("THROTTLE_ANON_RATE"),
        "user": env("THROTTLE_USER_RATE"),
        "order_write": env("THROTTLE_ORDER_WRITE_RATE"),
        "webhook": env("THROTTLE_WEBHOOK_RATE"),
    },
}

# -----------------------------------------
# SIMPLE JWT
# -----------------------------------------
SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=30),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=1),
}

# -----------------------------------------
# DATABASE
# -----------------------------------------
DATABASES = {
    "default": env.db("DATABASE_URL"),
}

# -----------------------------------------
# CACHE (shared, expiring key-value store)
# -----------------------------------------
# Multi-instance deployments must point CACHE_URL at redis/memcached so the
# sweeper lock is observed by every process.
CACHES = {
    "default": env.cache("CACHE_URL"),
}

# -----------------------------------------
# PAYMENTS (PayMongo)
# -----------------------------------------
PAYMENTS = {
    "PAYMONGO": {
        "PUBLIC_KEY": (env("PAYMONGO_PUBLIC_KEY") or "").strip(),
        "SECRET_KEY": (env("PAYMONGO_SECRET_KEY") or "").strip(),
        "WEBHOOK_SECRET": (env("PAYMONGO_WEBHOOK_SECRET") or "").strip(),
        "SUCCESS_URL": (env("PAYMONGO_SUCCESS_URL") or "").strip(),
        "CANCEL_URL": (env("PAYMONGO_CANCEL_URL") or "").strip(),
        "TIMEOUT_SECONDS": env.int("PAYMONGO_TIMEOUT_SECONDS"),
        "READ_RETRIES": env.int("PAYMONGO_READ_RETRIES"),
        "WEBHOOK_TOLERANCE_SECONDS": env.int("PAYMONGO_WEBHOOK_TOLERANCE_SECONDS"),
        "INTENT_EXPIRY_HOURS": env.int("PAYMENT_INTENT_EXPIRY_HOURS"),
    }
}

# -----------------------------------------
# ORDER LIFECYCLE
# -----------------------------------------
ORDERS_CANCELLATION_GRACE_SECONDS = env.int("ORDERS_CANCELLATION_GRACE_SECONDS")
ORDERS_ABANDONMENT_THRESHOLD_MINUTES = env.int("ORDERS_ABANDONMENT_THRESHOLD_MINUTES")
ORDERS_SWEEP_INTERVAL_SECONDS = env.int("ORDERS_SWEEP_INTERVAL_SECONDS")
ORDERS_SWEEP_BATCH_SIZE = env.int("ORDERS_SWEEP_BATCH_SIZE")
ORDERS_SWEEPER_VERIFY_WITH_GATEWAY = env.bool("ORDERS_SWEEPER_VERIFY_WITH_GATEWAY")
ORDERS_TAX_RATE = (env("ORDERS_TAX_RATE") or "0.00").strip()

# -----------------------------------------
# NOTIFICATIONS (outbox)
# -----------------------------------------
NOTIFICATIONS_DISPATCHER = env("NOTIFICATIONS_DISPATCHER")
NOTIFICATIONS_MAX_ATTEMPTS = env.int("NOTIFICATIONS_MAX_ATTEMPTS")
NOTIFICATIONS_CLAIM_TIMEOUT_SECONDS = env.int("NOTIFICATIONS_CLAIM_TIMEOUT_SECONDS")

# -----------------------------------------
# LOGGING
# -----------------------------------------
LOG_LEVEL = (env("LOG_LEVEL") or "INFO").strip().upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django.db.backends": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
    },
}

# -----------------------------------------
# SENTRY (optional)
# -----------------------------------------
SENTRY_DSN = (env("SENTRY_DSN") or "").strip()
SENTRY_ENVIRONMENT = (env("SENTRY_ENVIRONMENT") or "development").strip()
SENTRY_TRACES_SAMPLE_RATE = float(env("SENTRY_TRACES_SAMPLE_RATE"))
SENTRY_SEND_PII = env.bool("SENTRY_SEND_PII")

if SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.django import DjangoIntegration

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=SENTRY_ENVIRONMENT,
        integrations=[DjangoIntegration()],
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=SENTRY_SEND_PII,
    )

# -----------------------------------------
# CORS / CSRF
# -----------------------------------------
CORS_ALLOWED_ORIGINS = env.list("CORS_ALLOWED_ORIGINS")
CORS_ALLOW_CREDENTIALS = True
CORS_ALLOW_METHODS = list(default_methods)
CORS_ALLOW_HEADERS = list(default_headers) + ["paymongo-signature"]

CSRF_TRUSTED_ORIGINS = env.list("CSRF_TRUSTED_ORIGINS")

# -----------------------------------------
# STATIC FILES
# -----------------------------------------
STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------------------
# SWAGGER
# -----------------------------------------
SPECTACULAR_SETTINGS = {
    "TITLE": "Tourism Platform Order & Payment API",
    "DESCRIPTION": "Orders, stock reservation, PayMongo payments, refunds and abandonment sweeps",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}

import os
from decimal import Decimal

os.environ.setdefault("DJANGO_DEBUG", "True")
os.environ.setdefault("DJANGO_SECRET_KEY", "storefront-test-secret-key")

from .settings import *  # noqa: E402,F401,F403
from .settings import REST_FRAMEWORK  # noqa: E402

SECURE_SSL_REDIRECT = False
SESSION_COOKIE_SECURE = False
CSRF_COOKIE_SECURE = False
SECURE_HSTS_SECONDS = 0

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

REST_FRAMEWORK = {
    **REST_FRAMEWORK,
    "DEFAULT_THROTTLE_RATES": {
        scope: "10000/min" for scope in REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"]
    },
}

STOREFRONT_TAX_RATE = Decimal("0.15")
STOREFRONT_CURRENCY = "PKR"
STOREFRONT_STAFF_ROLES = ["admin", "staff"]
PUBLIC_API_BASE_URL = "https://api.storefront.test"
DIGITAL_ACCESS_DEFAULT_MAX_DOWNLOADS = 3
DIGITAL_ACCESS_TOKEN_TTL_HOURS = 24
DIGITAL_ACCESS_TOKEN_ROTATION_MARGIN_MINUTES = 5
RESEND_API_KEY = ""
STRIPE_SECRET_KEY = "sk_test_storefront"
STRIPE_WEBHOOK_SECRET = "whsec_storefront"
CLERK_AUTHORIZED_PARTIES = []
STOREFRONT_BANK_ACCOUNTS = [
    {
        "bank_name": "Habib Bank Limited",
        "account_title": "Storefront Publications",
        "account_number": "0123456789012",
        "iban": "PK36 HABB 0000 1234 5678 9012",
        "branch_code": "0123",
        "branch_name": "Main Branch, Karachi",
        "is_primary": True,
    },
    {
        "bank_name": "United Bank Limited",
        "account_title": "Storefront Publications",
        "account_number": "9876543210987",
        "branch_code": "0109",
        "branch_name": "Gulshan Branch, Lahore",
    },
]

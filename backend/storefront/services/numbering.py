from __future__ import annotations

import secrets
from datetime import datetime

from django.conf import settings
from django.utils import timezone


def generate_order_number(now: datetime | None = None) -> str:
    moment = now or timezone.now()
    prefix = str(getattr(settings, "STOREFRONT_ORDER_NUMBER_PREFIX", "ORD") or "ORD").strip().upper()
    return f"{prefix}-{moment:%Y%m%d}-{secrets.token_hex(4).upper()}"


def generate_payment_reference(now: datetime | None = None) -> str:
    moment = now or timezone.now()
    return f"PAY-{moment:%Y%m%d%H%M%S}-{secrets.token_hex(3).upper()}"

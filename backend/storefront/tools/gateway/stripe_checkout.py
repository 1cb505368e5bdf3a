from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from django.conf import settings

logger = logging.getLogger(__name__)


class GatewayError(RuntimeError):
    """Raised when the payment gateway rejects or fails a request."""


class GatewayConfigurationError(GatewayError):
    """Raised when gateway credentials or the SDK are missing."""


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str
    payment_status: str
    payment_intent_id: str


def _stripe():
    try:
        import stripe
    except ImportError as exc:
        raise GatewayConfigurationError(
            "stripe package is required for gateway checkout. Run: pip install stripe"
        ) from exc
    return stripe


def _secret_key() -> str:
    secret_key = str(getattr(settings, "STRIPE_SECRET_KEY", "") or "").strip()
    if not secret_key:
        raise GatewayConfigurationError("STRIPE_SECRET_KEY is not configured.")
    return secret_key


def _session_from_stripe(session: Any) -> CheckoutSession:
    payment_intent = getattr(session, "payment_intent", None) or ""
    if not isinstance(payment_intent, str):
        payment_intent = getattr(payment_intent, "id", "") or ""
    return CheckoutSession(
        id=str(getattr(session, "id", "") or ""),
        url=str(getattr(session, "url", "") or ""),
        payment_status=str(getattr(session, "payment_status", "") or ""),
        payment_intent_id=payment_intent,
    )


def create_checkout_session(
    *,
    amount_cents: int,
    currency: str,
    reference: str,
    description: str,
    customer_email: str = "",
    metadata: dict[str, str] | None = None,
    success_url: str,
    cancel_url: str,
) -> CheckoutSession:
    stripe = _stripe()
    params: dict[str, Any] = {
        "mode": "payment",
        "line_items": [
            {
                "price_data": {
                    "currency": currency.lower(),
                    "unit_amount": int(amount_cents),
                    "product_data": {"name": description},
                },
                "quantity": 1,
            }
        ],
        "success_url": success_url,
        "cancel_url": cancel_url,
        "client_reference_id": reference,
        "metadata": metadata or {},
    }
    if customer_email:
        params["customer_email"] = customer_email

    try:
        session = stripe.checkout.Session.create(api_key=_secret_key(), **params)
    except stripe.StripeError as exc:
        logger.warning("Stripe checkout session create failed for %s: %s", reference, exc)
        raise GatewayError(str(exc)) from exc

    checkout = _session_from_stripe(session)
    logger.info("Created Stripe checkout session %s for payment %s.", checkout.id, reference)
    return checkout


def retrieve_checkout_session(session_id: str) -> CheckoutSession:
    stripe = _stripe()
    try:
        session = stripe.checkout.Session.retrieve(session_id, api_key=_secret_key())
    except stripe.StripeError as exc:
        logger.warning("Stripe checkout session lookup failed for %s: %s", session_id, exc)
        raise GatewayError(str(exc)) from exc
    return _session_from_stripe(session)


def verify_webhook_payload(payload: bytes, signature: str, secret: str) -> dict[str, Any]:
    """Check the Stripe-Signature header and return the decoded event body."""
    stripe = _stripe()
    stripe.WebhookSignature.verify_header(payload.decode("utf-8"), signature, secret)
    event = json.loads(payload)
    if not isinstance(event, dict):
        raise ValueError("Webhook payload must be a JSON object.")
    return event

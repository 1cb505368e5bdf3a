from __future__ import annotations

from typing import Any

from django.conf import settings

from ..tools.gateway import GatewayConfigurationError, verify_webhook_payload


class WebhookVerificationError(RuntimeError):
    pass


def _verify_webhook(payload: bytes, signature: str) -> dict[str, Any]:
    """Verify the Stripe-Signature header and return the parsed event payload."""
    signing_secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "")
    if not signing_secret:
        raise WebhookVerificationError("STRIPE_WEBHOOK_SECRET is not configured.")
    if not signature:
        raise WebhookVerificationError("Missing Stripe-Signature header.")

    try:
        return verify_webhook_payload(payload, signature, signing_secret)
    except GatewayConfigurationError as exc:
        raise WebhookVerificationError(str(exc)) from exc
    except Exception as exc:
        raise WebhookVerificationError(
            f"Webhook signature verification failed: {exc}"
        ) from exc

from .stripe_checkout import (
    CheckoutSession,
    GatewayConfigurationError,
    GatewayError,
    create_checkout_session,
    retrieve_checkout_session,
    verify_webhook_payload,
)

__all__ = [
    "CheckoutSession",
    "GatewayConfigurationError",
    "GatewayError",
    "create_checkout_session",
    "retrieve_checkout_session",
    "verify_webhook_payload",
]

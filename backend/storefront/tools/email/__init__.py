from .resend import (
    resend_is_configured,
    send_download_link_email,
    send_order_confirmed_email,
    send_payment_confirmed_email,
)

__all__ = [
    "resend_is_configured",
    "send_download_link_email",
    "send_order_confirmed_email",
    "send_payment_confirmed_email",
]

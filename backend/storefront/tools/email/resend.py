from __future__ import annotations

import json
import logging
from html import escape
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from django.conf import settings

from ...models import DigitalAccess, Order, Payment

logger = logging.getLogger(__name__)

RESEND_EMAILS_ENDPOINT = "https://api.resend.com/emails"


def _normalize_text(value: object) -> str:
    return str(value or "").strip()


def _normalize_url(value: object) -> str:
    return _normalize_text(value).rstrip("/")


def _normalize_email_candidates(values: list[str]) -> list[str]:
    deduped: list[str] = []
    seen: set[str] = set()
    for raw in values:
        candidate = _normalize_text(raw).lower()
        if not candidate or candidate in seen:
            continue
        seen.add(candidate)
        deduped.append(candidate)
    return deduped


def resend_is_configured() -> bool:
    api_key = _normalize_text(getattr(settings, "RESEND_API_KEY", ""))
    sender = _normalize_text(getattr(settings, "RESEND_FROM_EMAIL", ""))
    return bool(api_key and sender)


def _format_currency(cents: int, currency: str) -> str:
    normalized_currency = _normalize_text(currency).upper() or "PKR"
    amount = (int(cents or 0)) / 100
    return f"{normalized_currency} {amount:,.2f}"


def _order_recipients(order: Order) -> list[str]:
    account = order.customer_account
    return _normalize_email_candidates(
        [
            order.customer_email,
            getattr(account, "billing_email", "") if account else "",
        ]
    )


def _send_resend_email(
    *,
    recipients: list[str],
    subject: str,
    html_body: str,
    text_body: str,
    tags: dict[str, str] | None = None,
    idempotency_key: str | None = None,
) -> bool:
    if not recipients:
        logger.debug("Skipping Resend email with no recipients.")
        return False

    if not resend_is_configured():
        logger.debug("Skipping Resend email because API key or sender is missing.")
        return False

    payload: dict[str, object] = {
        "from": _normalize_text(getattr(settings, "RESEND_FROM_EMAIL", "")),
        "to": recipients,
        "subject": subject,
        "html": html_body,
        "text": text_body,
    }

    reply_to = _normalize_text(getattr(settings, "RESEND_REPLY_TO_EMAIL", ""))
    if reply_to:
        payload["reply_to"] = [reply_to]

    if tags:
        payload["tags"] = [
            {"name": _normalize_text(name), "value": _normalize_text(value)}
            for name, value in tags.items()
            if _normalize_text(name) and _normalize_text(value)
        ]

    request_headers = {
        "Authorization": f"Bearer {_normalize_text(getattr(settings, 'RESEND_API_KEY', ''))}",
        "Content-Type": "application/json",
    }
    if idempotency_key:
        request_headers["Idempotency-Key"] = idempotency_key

    timeout_seconds = int(getattr(settings, "RESEND_TIMEOUT_SECONDS", 10))
    request = Request(
        RESEND_EMAILS_ENDPOINT,
        data=json.dumps(payload).encode("utf-8"),
        headers=request_headers,
        method="POST",
    )

    # Notifications never fail the caller; every error ends here as a log line.
    try:
        with urlopen(request, timeout=timeout_seconds) as response:
            status = int(getattr(response, "status", 200))
            body = response.read().decode("utf-8", errors="ignore")
    except HTTPError as exc:
        error_body = exc.read().decode("utf-8", errors="ignore")
        logger.warning("Resend request failed with status %s: %s", exc.code, error_body)
        return False
    except URLError as exc:
        logger.warning("Resend request failed: %s", exc.reason)
        return False
    except Exception:
        logger.exception("Unexpected error while sending email through Resend.")
        return False

    if status < 200 or status >= 300:
        logger.warning("Resend returned unexpected status %s: %s", status, body)
        return False

    logger.info("Resend accepted email request: %s", body)
    return True


def send_order_confirmed_email(order: Order) -> bool:
    recipients = _order_recipients(order)
    if not recipients:
        return False

    frontend_url = _normalize_url(getattr(settings, "FRONTEND_APP_URL", ""))
    order_url = f"{frontend_url}/account/orders/{order.order_number}" if frontend_url else ""

    items = list(order.items.order_by("id"))
    item_lines_text = [
        f"- {item.product_title_snapshot} x{item.quantity} ({_format_currency(item.total_cents, order.currency)})"
        for item in items
    ]
    item_lines_html = "".join(
        (
            "<li>"
            f"{escape(item.product_title_snapshot)} x{item.quantity}"
            f" ({escape(_format_currency(item.total_cents, order.currency))})"
            "</li>"
        )
        for item in items
    )

    text_sections = [
        "Thank you for your order.",
        "",
        f"Order: {order.order_number}",
        f"Subtotal: {_format_currency(order.subtotal_cents, order.currency)}",
        f"Tax: {_format_currency(order.tax_cents, order.currency)}",
        f"Total: {_format_currency(order.total_cents, order.currency)}",
        "",
        "Items:",
        *(item_lines_text or ["- No item details available"]),
    ]
    if order_url:
        text_sections.extend(["", f"View order: {order_url}"])

    html_body = f"""
      <div style="font-family: Georgia, serif; line-height: 1.5; color: #111827;">
        <h2 style="margin: 0 0 12px;">Order received</h2>
        <p style="margin: 0 0 16px;"><strong>Order:</strong> {escape(order.order_number)}<br /><strong>Total:</strong> {escape(_format_currency(order.total_cents, order.currency))}</p>
        <ul style="margin: 0 0 16px 20px; padding: 0;">
          {item_lines_html or "<li>No item details available</li>"}
        </ul>
        {"<p style='margin: 0;'><a href='" + escape(order_url) + "'>View your order</a></p>" if order_url else ""}
      </div>
    """.strip()

    return _send_resend_email(
        recipients=recipients,
        subject=f"Order {order.order_number} received",
        html_body=html_body,
        text_body="\n".join(text_sections).strip(),
        tags={"event": "order_confirmed", "source": "storefront"},
        idempotency_key=f"order-confirmed-{order.order_number}",
    )


def send_payment_confirmed_email(order: Order, payment: Payment) -> bool:
    recipients = _order_recipients(order)
    if not recipients:
        return False

    frontend_url = _normalize_url(getattr(settings, "FRONTEND_APP_URL", ""))
    downloads_url = f"{frontend_url}/account/downloads" if frontend_url else ""
    has_digital_items = order.items.exclude(product_format_snapshot="print").exists()
    amount = _format_currency(payment.amount_cents, payment.currency)

    text_sections = [
        f"We received your payment of {amount} for order {order.order_number}.",
        f"Payment reference: {payment.reference}",
    ]
    if has_digital_items and downloads_url:
        text_sections.extend(["", f"Your digital titles are ready: {downloads_url}"])

    html_body = f"""
      <div style="font-family: Georgia, serif; line-height: 1.5; color: #111827;">
        <h2 style="margin: 0 0 12px;">Payment confirmed</h2>
        <p style="margin: 0 0 8px;">We received <strong>{escape(amount)}</strong> for order <strong>{escape(order.order_number)}</strong>.</p>
        <p style="margin: 0 0 16px;"><strong>Reference:</strong> {escape(payment.reference)}</p>
        {"<p style='margin: 0;'><a href='" + escape(downloads_url) + "'>Open your downloads</a></p>" if has_digital_items and downloads_url else ""}
      </div>
    """.strip()

    return _send_resend_email(
        recipients=recipients,
        subject=f"Payment received for order {order.order_number}",
        html_body=html_body,
        text_body="\n".join(text_sections).strip(),
        tags={"event": "payment_confirmed", "source": "storefront"},
        idempotency_key=f"payment-confirmed-{payment.reference}",
    )


def send_download_link_email(access: DigitalAccess, download_url: str) -> bool:
    account = access.customer_account
    recipients = _normalize_email_candidates([account.billing_email, account.profile.email])
    if not recipients:
        return False

    title = access.order_item.product_title_snapshot or access.product.title
    valid_until = access.token_expires_at.isoformat() if access.token_expires_at else ""
    text_body = "\n".join(
        [
            f"Your download link for {title}:",
            download_url,
            "",
            f"Link valid until: {valid_until}",
            f"Downloads remaining: {access.downloads_remaining}",
        ]
    )
    html_body = f"""
      <div style="font-family: Georgia, serif; line-height: 1.5; color: #111827;">
        <h2 style="margin: 0 0 12px;">{escape(title)}</h2>
        <p style="margin: 0 0 8px;"><a href="{escape(download_url)}">Download your copy</a></p>
        <p style="margin: 0;">Link valid until {escape(valid_until)}. Downloads remaining: {access.downloads_remaining}.</p>
      </div>
    """.strip()

    return _send_resend_email(
        recipients=recipients,
        subject=f"Download link for {title}",
        html_body=html_body,
        text_body=text_body,
        tags={"event": "download_link", "source": "storefront"},
        idempotency_key=f"download-link-{access.download_token}",
    )

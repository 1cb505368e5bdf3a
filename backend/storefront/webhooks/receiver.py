from __future__ import annotations

import logging

from django.db import DatabaseError
from django.db.models import F
from django.http import HttpRequest, JsonResponse
from django.utils import timezone as django_timezone
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from ..models import WebhookEvent
from .handlers import EVENT_HANDLERS
from .verification import WebhookVerificationError, _verify_webhook

logger = logging.getLogger(__name__)


def _record_event(event_id: str, event_type: str, payload: dict) -> WebhookEvent | None:
    """Keep an audit row per gateway event; redeliveries bump the counter."""
    if not event_id:
        return None
    try:
        webhook_event, created = WebhookEvent.objects.get_or_create(
            provider=WebhookEvent.Provider.STRIPE,
            event_id=event_id,
            defaults={
                "event_type": event_type or "unknown",
                "payload": payload,
                "status": WebhookEvent.Status.RECEIVED,
            },
        )
        if not created:
            WebhookEvent.objects.filter(pk=webhook_event.pk).update(delivery_count=F("delivery_count") + 1)
            webhook_event.refresh_from_db(fields=["delivery_count"])
    except DatabaseError:
        logger.exception("Could not record Stripe webhook event %s.", event_id)
        return None
    return webhook_event


def _finish_event(webhook_event: WebhookEvent | None, status: str, error_message: str = "") -> None:
    if webhook_event is None:
        return
    webhook_event.status = status
    webhook_event.processed_at = django_timezone.now()
    webhook_event.error_message = error_message
    webhook_event.save(update_fields=["status", "processed_at", "error_message"])


@method_decorator(csrf_exempt, name="dispatch")
class StripeWebhookView(View):
    """Receive Stripe events and reconcile the matching payments.

    Payment correctness never depends on the audit row: every handler relies on
    the payment's pending status under a row lock, so redeliveries are replayed.
    """

    def post(self, request: HttpRequest) -> JsonResponse:
        try:
            event = _verify_webhook(request.body, request.headers.get("Stripe-Signature", ""))
        except WebhookVerificationError as exc:
            logger.warning("Stripe webhook verification failed: %s", exc)
            return JsonResponse({"error": str(exc)}, status=400)

        event_id = str(event.get("id") or "").strip()
        event_type = str(event.get("type") or "").strip()
        data = event.get("data", {})
        webhook_event = _record_event(event_id, event_type, event)

        handler = EVENT_HANDLERS.get(event_type)
        if handler is None:
            logger.debug("Unhandled Stripe webhook event type: %s", event_type)
            _finish_event(webhook_event, WebhookEvent.Status.IGNORED)
            return JsonResponse({"status": "ok"})

        try:
            applied = handler(data if isinstance(data, dict) else {})
        except Exception as exc:
            logger.exception("Error processing Stripe webhook event %s (%s).", event_id, event_type)
            _finish_event(webhook_event, WebhookEvent.Status.FAILED, str(exc))
            return JsonResponse({"error": "Internal handler error"}, status=500)

        _finish_event(
            webhook_event,
            WebhookEvent.Status.PROCESSED if applied else WebhookEvent.Status.IGNORED,
        )
        return JsonResponse({"status": "ok"})

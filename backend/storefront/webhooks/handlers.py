from __future__ import annotations

import logging
from typing import Any, Callable

from ..services.payments import PAID_SESSION_STATUSES, mark_payment_failed, mark_payment_succeeded
from .helpers import (
    _event_object,
    _extract_failure_message,
    _extract_payment_intent_id,
    _normalize_text,
)

logger = logging.getLogger(__name__)


def handle_checkout_session_completed(data: dict[str, Any]) -> bool:
    session = _event_object(data)
    payment_status = _normalize_text(session.get("payment_status")).lower()
    if payment_status not in PAID_SESSION_STATUSES:
        # Delayed methods settle later through async_payment_* events.
        logger.info(
            "Checkout session %s completed with payment_status=%s; waiting for async result.",
            session.get("id"),
            payment_status or "unknown",
        )
        return False
    return handle_checkout_session_succeeded(data)


def handle_checkout_session_succeeded(data: dict[str, Any]) -> bool:
    session = _event_object(data)
    session_id = _normalize_text(session.get("id"))
    if not session_id:
        return False
    payment = mark_payment_succeeded(
        session_id=session_id,
        payment_intent_id=_extract_payment_intent_id(session),
        raw_payload=session,
    )
    return payment is not None


def handle_checkout_session_failed(data: dict[str, Any]) -> bool:
    session = _event_object(data)
    session_id = _normalize_text(session.get("id"))
    if not session_id:
        return False
    payment = mark_payment_failed(session_id=session_id, raw_payload=session)
    return payment is not None


def handle_payment_intent_succeeded(data: dict[str, Any]) -> bool:
    intent = _event_object(data)
    intent_id = _normalize_text(intent.get("id"))
    if not intent_id:
        return False
    return mark_payment_succeeded(payment_intent_id=intent_id, raw_payload=intent) is not None


def handle_payment_intent_failed(data: dict[str, Any]) -> bool:
    intent = _event_object(data)
    intent_id = _normalize_text(intent.get("id"))
    if not intent_id:
        return False
    payment = mark_payment_failed(
        payment_intent_id=intent_id,
        message=_extract_failure_message(intent),
        raw_payload=intent,
    )
    return payment is not None


EVENT_HANDLERS: dict[str, Callable[[dict[str, Any]], bool]] = {
    "checkout.session.completed": handle_checkout_session_completed,
    "checkout.session.async_payment_succeeded": handle_checkout_session_succeeded,
    "checkout.session.async_payment_failed": handle_checkout_session_failed,
    "payment_intent.succeeded": handle_payment_intent_succeeded,
    "payment_intent.payment_failed": handle_payment_intent_failed,
}

from __future__ import annotations

from typing import Any


def _normalize_text(value: Any) -> str:
    return str(value or "").strip()


def _event_object(data: dict[str, Any]) -> dict[str, Any]:
    obj = data.get("object")
    return obj if isinstance(obj, dict) else {}


def _extract_payment_intent_id(obj: dict[str, Any]) -> str:
    payment_intent = obj.get("payment_intent")
    if isinstance(payment_intent, dict):
        return _normalize_text(payment_intent.get("id"))
    return _normalize_text(payment_intent)


def _extract_failure_message(obj: dict[str, Any]) -> str:
    last_error = obj.get("last_payment_error")
    if isinstance(last_error, dict) and last_error.get("message"):
        return _normalize_text(last_error.get("message"))
    return ""

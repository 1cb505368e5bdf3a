from __future__ import annotations

from typing import Any

from rest_framework.exceptions import ValidationError

from ..models import CustomerAccount, Profile


def _safe_str(value: Any) -> str:
    return str(value).strip() if value else ""


def sync_profile_from_claims(claims: dict[str, Any]) -> Profile | None:
    clerk_user_id = _safe_str(claims.get("sub"))
    if not clerk_user_id:
        return None

    defaults = {
        "email": _safe_str(claims.get("email")),
        "first_name": _safe_str(claims.get("given_name") or claims.get("first_name")),
        "last_name": _safe_str(claims.get("family_name") or claims.get("last_name")),
        "phone": _safe_str(claims.get("phone_number") or claims.get("phone")),
        "is_active": True,
    }
    profile, created = Profile.objects.get_or_create(
        clerk_user_id=clerk_user_id,
        defaults=defaults,
    )

    if not created:
        changed_fields: list[str] = []
        for field_name, field_value in defaults.items():
            # Claims without a value never wipe data the customer already has.
            if field_value in ("", None) and getattr(profile, field_name):
                continue
            if getattr(profile, field_name) != field_value:
                setattr(profile, field_name, field_value)
                changed_fields.append(field_name)
        if changed_fields:
            profile.save(update_fields=[*changed_fields, "updated_at"])

    return profile


def get_request_claims(request) -> dict[str, Any]:
    claims = getattr(request, "clerk_claims", request.auth or {})
    return claims if isinstance(claims, dict) else {}


def get_request_profile(request) -> Profile:
    cached_profile = getattr(request, "_cached_profile", None)
    if cached_profile is not None:
        return cached_profile

    profile = sync_profile_from_claims(get_request_claims(request))
    if profile is None:
        raise ValidationError("Missing Clerk identity in token claims.")

    request._cached_profile = profile
    return profile


def get_request_customer_account(request) -> CustomerAccount:
    cached_account = getattr(request, "_cached_customer_account", None)
    if cached_account is not None:
        return cached_account

    profile = get_request_profile(request)
    defaults = {
        "external_customer_id": profile.clerk_user_id,
        "billing_email": profile.email,
        "full_name": profile.display_name,
        "phone": profile.phone,
    }
    account, created = CustomerAccount.objects.get_or_create(profile=profile, defaults=defaults)

    if not created:
        changed_fields: list[str] = []
        if not account.billing_email and profile.email:
            account.billing_email = profile.email
            changed_fields.append("billing_email")
        if not account.full_name and profile.display_name:
            account.full_name = profile.display_name
            changed_fields.append("full_name")
        if not account.phone and profile.phone:
            account.phone = profile.phone
            changed_fields.append("phone")
        if changed_fields:
            account.save(update_fields=[*changed_fields, "updated_at"])

    request._cached_customer_account = account
    return account


def get_request_actor(request) -> str:
    claims = get_request_claims(request)
    return _safe_str(claims.get("email")) or _safe_str(claims.get("sub"))

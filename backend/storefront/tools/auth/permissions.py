from __future__ import annotations

from django.conf import settings
from rest_framework.permissions import BasePermission

from .clerk import extract_roles


class IsStoreStaff(BasePermission):
    message = "Store staff role required."

    def has_permission(self, request, view) -> bool:
        claims = getattr(request, "clerk_claims", None) or request.auth
        if not isinstance(claims, dict):
            return False
        allowed = {role.lower() for role in getattr(settings, "STOREFRONT_STAFF_ROLES", [])}
        return bool(extract_roles(claims) & allowed)

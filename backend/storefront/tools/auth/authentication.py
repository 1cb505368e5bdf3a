from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from rest_framework import exceptions
from rest_framework.authentication import BaseAuthentication, CSRFCheck, get_authorization_header
from rest_framework.exceptions import AuthenticationFailed

from .clerk import ClerkConfigurationError, decode_clerk_token, extract_roles


@dataclass(frozen=True)
class ClerkPrincipal:
    """Authenticated storefront user backed only by verified token claims."""

    clerk_user_id: str
    claims: dict[str, Any]
    roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def is_anonymous(self) -> bool:
        return False

    @property
    def id(self) -> str:
        return self.clerk_user_id

    @property
    def pk(self) -> str:
        return self.clerk_user_id

    @property
    def email(self) -> str:
        return str(self.claims.get("email") or "").strip()


class ClerkJWTAuthentication(BaseAuthentication):
    keyword = "Bearer"
    session_cookie = "__session"

    def authenticate(self, request):
        token, source = self._extract_token(request)
        if token is None:
            return None

        if source == "cookie":
            self._enforce_csrf(request)

        try:
            claims = decode_clerk_token(token)
        except ClerkConfigurationError as exc:
            raise AuthenticationFailed(str(exc)) from exc

        request.clerk_claims = claims
        principal = ClerkPrincipal(
            clerk_user_id=claims["sub"],
            claims=claims,
            roles=frozenset(extract_roles(claims)),
        )
        return principal, claims

    def authenticate_header(self, request) -> str:
        return self.keyword

    def _extract_token(self, request) -> tuple[str | None, str | None]:
        auth = get_authorization_header(request).split()
        if auth:
            if auth[0].decode("utf-8").lower() != self.keyword.lower():
                return None, None
            if len(auth) != 2:
                raise AuthenticationFailed("Invalid Authorization header: expected 'Bearer <token>'.")
            return auth[1].decode("utf-8"), "header"

        cookie_token = request.COOKIES.get(self.session_cookie)
        if cookie_token:
            return cookie_token, "cookie"
        return None, None

    def _enforce_csrf(self, request) -> None:
        def dummy_get_response(_request):  # pragma: no cover
            return None

        check = CSRFCheck(dummy_get_response)
        check.process_request(request)
        reason = check.process_view(request, None, (), {})
        if reason:
            raise exceptions.PermissionDenied(f"CSRF Failed: {reason}")

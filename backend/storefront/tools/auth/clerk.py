from __future__ import annotations

import ipaddress
from functools import lru_cache
from typing import Any
from urllib.parse import urlparse

from django.conf import settings
from rest_framework.exceptions import AuthenticationFailed

SUPPORTED_ALGORITHMS = ["RS256", "RS384", "RS512", "ES256", "ES384", "ES512", "EdDSA"]
DEFAULT_PORTS = {"https": 443, "http": 80}


class ClerkConfigurationError(RuntimeError):
    pass


def _origin_parts(value: str) -> tuple[str, str, int | None, str] | None:
    parsed = urlparse(str(value or "").strip())
    if not parsed.scheme or not parsed.hostname:
        return None
    scheme = parsed.scheme.lower()
    return (
        scheme,
        parsed.hostname.lower(),
        parsed.port or DEFAULT_PORTS.get(scheme),
        (parsed.path or "").rstrip("/"),
    )


def _is_loopback(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def authorized_party_matches(azp: str | None, allowed_parties: list[str]) -> bool:
    """Compare the token's ``azp`` origin against the configured frontends.

    localhost and 127.0.0.1 are interchangeable when scheme, port and path agree.
    """
    if not azp:
        return False

    azp_parts = _origin_parts(azp)
    for allowed in filter(None, allowed_parties):
        if azp.rstrip("/").lower() == allowed.rstrip("/").lower():
            return True

        allowed_parts = _origin_parts(allowed)
        if not azp_parts or not allowed_parts:
            continue
        if azp_parts == allowed_parts:
            return True
        if (
            azp_parts[0] == allowed_parts[0]
            and azp_parts[2:] == allowed_parts[2:]
            and _is_loopback(azp_parts[1])
            and _is_loopback(allowed_parts[1])
        ):
            return True
    return False


def _jwt():
    try:
        import jwt
    except ImportError as exc:
        raise ClerkConfigurationError(
            "PyJWT with crypto backend is required for Clerk token verification."
        ) from exc
    return jwt


@lru_cache(maxsize=2)
def _jwks_client(jwks_url: str):
    return _jwt().PyJWKClient(jwks_url)


def decode_clerk_token(token: str) -> dict[str, Any]:
    jwt = _jwt()
    jwks_url = getattr(settings, "CLERK_JWKS_URL", "")
    if not jwks_url:
        raise ClerkConfigurationError("CLERK_JWKS_URL is not configured.")
    issuer = getattr(settings, "CLERK_JWT_ISSUER", "") or None
    audience = getattr(settings, "CLERK_JWT_AUDIENCE", "") or None

    try:
        signing_key = _jwks_client(jwks_url).get_signing_key_from_jwt(token)
        claims = jwt.decode(
            token,
            signing_key.key,
            algorithms=SUPPORTED_ALGORITHMS,
            issuer=issuer,
            audience=audience,
            options={"verify_aud": bool(audience), "verify_iss": bool(issuer)},
        )
    except jwt.InvalidTokenError as exc:
        raise AuthenticationFailed("Invalid Clerk token.") from exc

    if not claims.get("sub"):
        raise AuthenticationFailed("Token is missing sub claim.")

    allowed_parties = [party for party in getattr(settings, "CLERK_AUTHORIZED_PARTIES", []) if party]
    if allowed_parties and not authorized_party_matches(claims.get("azp"), allowed_parties):
        raise AuthenticationFailed(
            "Token authorized party is not allowed. "
            "Add your frontend origin to CLERK_AUTHORIZED_PARTIES."
        )
    return claims


def extract_roles(claims: dict[str, Any]) -> set[str]:
    """Collect role names from top-level or ``metadata`` claims."""
    raw_values: list[Any] = [claims.get("role"), claims.get("roles")]
    metadata = claims.get("metadata")
    if isinstance(metadata, dict):
        raw_values.extend([metadata.get("role"), metadata.get("roles")])

    roles: set[str] = set()
    for raw in raw_values:
        values = raw if isinstance(raw, (list, tuple)) else [raw]
        for value in values:
            normalized = str(value or "").strip().lower()
            if normalized:
                roles.add(normalized)
    return roles

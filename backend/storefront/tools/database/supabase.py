from __future__ import annotations

from functools import lru_cache
from typing import Any

from django.conf import settings


class SupabaseConfigurationError(RuntimeError):
    pass


def _require_setting(name: str) -> str:
    value = getattr(settings, name, "")
    if not value:
        raise SupabaseConfigurationError(f"{name} is not configured.")
    return value


def _ensure_https(url: str) -> str:
    if url and not url.startswith(("http://", "https://")):
        return f"https://{url}"
    return url


@lru_cache(maxsize=2)
def _cached_client(url: str, key: str) -> Any:
    from supabase import create_client

    return create_client(url, key)


def get_supabase_client(use_service_role: bool = False) -> Any:
    """Return a cached Supabase client.

    The service-role key bypasses row level security and is only used for
    server-side storage access (digital files, payment proofs).

    Raises:
        SupabaseConfigurationError: If settings are missing or the
            ``supabase`` package is not installed.
    """
    try:
        import supabase  # noqa: F401
    except ImportError as exc:
        raise SupabaseConfigurationError(
            "Supabase client dependencies are missing or incompatible."
        ) from exc

    url = _ensure_https(_require_setting("SUPABASE_URL"))
    key_setting = "SUPABASE_SERVICE_ROLE_KEY" if use_service_role else "SUPABASE_ANON_KEY"
    return _cached_client(url, _require_setting(key_setting))

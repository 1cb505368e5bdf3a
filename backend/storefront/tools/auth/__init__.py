from .authentication import ClerkJWTAuthentication, ClerkPrincipal
from .clerk import (
    ClerkConfigurationError,
    authorized_party_matches,
    decode_clerk_token,
    extract_roles,
)
from .permissions import IsStoreStaff

__all__ = [
    "ClerkJWTAuthentication",
    "ClerkPrincipal",
    "ClerkConfigurationError",
    "IsStoreStaff",
    "authorized_party_matches",
    "decode_clerk_token",
    "extract_roles",
]

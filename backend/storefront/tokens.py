from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class DownloadToken:
    """Opaque download credential with its own validity window.

    The window is independent of the owning access record's hard expiry, so
    rotating a token never touches the access's download counter or expiry.
    """

    token: str
    valid_from: datetime
    valid_until: datetime

    @classmethod
    def issue(cls, now: datetime, ttl: timedelta) -> "DownloadToken":
        return cls(token=secrets.token_urlsafe(32), valid_from=now, valid_until=now + ttl)

    def is_valid_at(self, now: datetime) -> bool:
        return self.valid_from <= now < self.valid_until

    def needs_rotation(self, now: datetime, margin: timedelta) -> bool:
        return now + margin >= self.valid_until


def token_needs_rotation(token: DownloadToken | None, now: datetime, margin: timedelta) -> bool:
    if token is None:
        return True
    return token.needs_rotation(now, margin)

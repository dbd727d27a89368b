"""Type definitions for fallback authentication."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Final

import msgspec

from gp51link.reliability.types import ServiceLevel
from gp51link.store.types import AuthUser, as_utc, utc_now

# Authentication tiers are the degradation levels of the gp51 service
AuthenticationLevel = ServiceLevel

OFFLINE_SESSION_TTL: Final[timedelta] = timedelta(hours=24)
GP51_EMAIL_DOMAIN: Final[str] = "gp51.local"


def gp51_email(username: str) -> str:
    """Supabase account email for a GP51 username."""
    if "@" in username:
        return username

    return f"{username}@{GP51_EMAIL_DOMAIN}"


@dataclass(slots=True)
class AuthResult:
    success: bool
    level: AuthenticationLevel
    user: AuthUser | None = None
    token: str | None = None  # GP51 token
    access_token: str | None = None  # Supabase access token
    error: str | None = None


class OfflineSession(msgspec.Struct, kw_only=True):
    username: str
    password_hash: str  # argon2id, checked before the session is handed out
    user: AuthUser | None = None
    access_token: str | None = None
    expires_at: datetime

    @property
    def is_valid(self) -> bool:
        return as_utc(self.expires_at) > utc_now()

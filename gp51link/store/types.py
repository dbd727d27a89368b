"""Row types for the Supabase tables gp51link reads and writes."""

from datetime import datetime, timezone
from typing import Any

import msgspec


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps from `timestamp without time zone` columns as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)

    return value


class GP51Session(msgspec.Struct, kw_only=True):
    """A row of `gp51_sessions`: a GP51 token plus its metadata"""

    id: str | None = None
    username: str
    gp51_token: Any = None  # str, JSON string or {status, token} object
    token_expires_at: datetime
    api_url: str = ""
    envio_user_id: str | None = None
    is_active: bool = True
    last_activity_at: datetime | None = None
    last_validated_at: datetime | None = None

    @property
    def expires_at(self) -> datetime:
        return as_utc(self.token_expires_at)

    @property
    def is_valid(self) -> bool:
        return self.expires_at > utc_now()

    @property
    def token(self) -> str | None:
        return self.gp51_token if isinstance(self.gp51_token, str) else None


class HealthMetric(msgspec.Struct, kw_only=True, omit_defaults=True):
    """A row of `gp51_health_metrics`, appended after every health check"""

    timestamp: datetime
    latency: int  # milliseconds
    success: bool
    error_details: str | None = None


class AuthUser(msgspec.Struct, kw_only=True):
    id: str
    email: str | None = None
    user_metadata: dict[str, Any] = msgspec.field(default_factory=dict)


class AuthSession(msgspec.Struct, kw_only=True):
    """GoTrue password-grant / sign-up response"""

    access_token: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None
    user: AuthUser | None = None

"""GP51 session lookup, validation and refresh."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Final

import msgspec
import structlog

from gp51link.core.logging import Logger
from gp51link.exceptions import GP51Error, SessionUnavailable, SupabaseError
from gp51link.gp51.client import GP51Client
from gp51link.reliability.rate_limiter import RateLimiter
from gp51link.store.supabase import SupabaseStore
from gp51link.store.types import GP51Session, utc_now

logger: Logger = structlog.getLogger(__name__)

SESSION_TTL: Final[timedelta] = timedelta(hours=24)
MIN_TOKEN_LENGTH: Final[int] = 10
_ERROR_MARKERS: Final[tuple[str, ...]] = ("error", "fail", "invalid")


@dataclass(slots=True, frozen=True)
class TokenCheck:
    is_valid: bool
    token: str | None = None
    error: str | None = None


@dataclass(slots=True)
class SessionHealthReport:
    total_sessions: int = 0
    valid_sessions: int = 0
    expired_sessions: int = 0
    invalid_tokens: int = 0
    last_checked: datetime = field(default_factory=utc_now)


def parse_token(raw: Any) -> TokenCheck:
    """
    Normalise a stored GP51 token.

    Rows hold either the bare token, the raw login response as a JSON string,
    or that response as an object.
    """
    token: str | None

    if isinstance(raw, str):
        try:
            decoded = msgspec.json.decode(raw)
        except msgspec.DecodeError:
            decoded = None

        if isinstance(decoded, dict):
            if decoded.get("status") != 0 or not decoded.get("token"):
                return TokenCheck(
                    False,
                    error=f"Invalid JSON token: status={decoded.get('status')}",
                )
            token = str(decoded["token"])
        else:
            token = raw.strip()

    elif isinstance(raw, dict):
        if raw.get("status") != 0 or not raw.get("token"):
            return TokenCheck(False, error=f"Invalid token object: status={raw.get('status')}")
        token = str(raw["token"])

    else:
        return TokenCheck(False, error=f"Invalid token type: {type(raw).__name__}")

    if not token:
        return TokenCheck(False, error="Token is empty")

    if len(token) < MIN_TOKEN_LENGTH:
        return TokenCheck(False, error=f"Token too short: {len(token)} characters")

    lowered = token.lower()
    if any(marker in lowered for marker in _ERROR_MARKERS):
        return TokenCheck(False, error=f"Token contains error indication: {token[:50]}")

    return TokenCheck(True, token=token)


class SessionManager:
    """
    Keeps one usable GP51 session available.

    Sessions live in `gp51_sessions`; when the newest one is unusable the
    manager logs in again with the configured service credentials.
    """

    __slots__ = ("_store", "_client", "_rate_limiter", "_username", "_password", "_current")

    def __init__(
        self,
        store: SupabaseStore,
        client: GP51Client,
        rate_limiter: RateLimiter,
        username: str = "",
        password: str = "",
    ) -> None:
        self._store = store
        self._client = client
        self._rate_limiter = rate_limiter
        self._username = username
        self._password = password
        self._current: GP51Session | None = None

    @property
    def current(self) -> GP51Session | None:
        """Last session handed out, without touching the store."""
        return self._current

    @property
    def can_refresh(self) -> bool:
        return bool(self._username and self._password)

    async def get_valid_session(self) -> GP51Session:
        """
        Return a non-expired session with a normalised token.

        Raises:
            SessionUnavailable: nothing stored and no refresh possible
        """
        try:
            session = await self._store.get_active_session()
        except SupabaseError as e:
            raise SessionUnavailable(f"Failed to retrieve session data: {e}") from e

        if session is None:
            logger.warning("No active GP51 session stored")
            return await self.refresh_session()

        check = parse_token(session.gp51_token)
        if not check.is_valid:
            logger.warning(f"Invalid token for session of {session.username}: {check.error}")
            return await self.refresh_session(session)

        if not session.is_valid:
            logger.info(f"GP51 session for {session.username} expired, refreshing")
            return await self.refresh_session(session)

        now = utc_now()
        validated = msgspec.structs.replace(
            session, gp51_token=check.token, last_validated_at=now
        )

        if session.id:
            try:
                await self._store.update_session(session.id, {"last_validated_at": now})
            except SupabaseError as e:
                logger.warning(f"Could not stamp last_validated_at: {e}")

        self._current = validated
        return validated

    async def refresh_session(self, session: GP51Session | None = None) -> GP51Session:
        """
        Log in again and persist the new token with a 24h expiry.

        Raises:
            SessionUnavailable: no credentials configured or login failed
        """
        if not self.can_refresh:
            raise SessionUnavailable(
                "No GP51 credentials configured for session refresh"
            )

        username = self._username
        logger.info(f"Refreshing GP51 session for {username}")

        try:
            token = await self._rate_limiter.execute_with_retry(
                lambda: self._client.login(username, self._password),
                "gp51 login",
            )
        except GP51Error as e:
            raise SessionUnavailable(f"Re-authentication failed: {e}") from e

        now = utc_now()
        fields = {
            "gp51_token": token,
            "token_expires_at": now + SESSION_TTL,
            "last_activity_at": now,
            "last_validated_at": now,
            "is_active": True,
        }

        try:
            if session is not None and session.id and session.username == username:
                refreshed = await self._store.update_session(session.id, fields)
            else:
                refreshed = await self.store_session(username, token)
        except SupabaseError as e:
            raise SessionUnavailable(f"Failed to persist refreshed session: {e}") from e

        logger.info(f"GP51 session refreshed for {username}")
        self._current = refreshed
        return refreshed

    async def store_session(
        self,
        username: str,
        token: str,
        envio_user_id: str | None = None,
    ) -> GP51Session:
        """Upsert the session row for `username` with a fresh 24h token."""
        now = utc_now()
        stored = await self._store.upsert_session(
            GP51Session(
                username=username,
                gp51_token=token,
                token_expires_at=now + SESSION_TTL,
                api_url=self._client.api_url,
                envio_user_id=envio_user_id,
                is_active=True,
                last_activity_at=now,
                last_validated_at=now,
            )
        )
        self._current = stored
        return stored

    async def session_health(self) -> SessionHealthReport:
        sessions = await self._store.list_active_sessions()
        report = SessionHealthReport(total_sessions=len(sessions))

        for session in sessions:
            if not parse_token(session.gp51_token).is_valid:
                report.invalid_tokens += 1
            elif not session.is_valid:
                report.expired_sessions += 1
            else:
                report.valid_sessions += 1

        logger.info(
            f"Session health: {report.valid_sessions}/{report.total_sessions} valid, "
            f"{report.expired_sessions} expired, {report.invalid_tokens} invalid"
        )
        return report

"""Async access to the Supabase REST, auth and functions endpoints."""

import asyncio
from typing import Any, Final, TypeVar

import aiohttp
import msgspec
import structlog

from gp51link.core.logging import Logger
from gp51link.exceptions import SupabaseError
from gp51link.store.types import (
    AuthSession,
    AuthUser,
    GP51Session,
    HealthMetric,
    utc_now,
)

logger: Logger = structlog.getLogger(__name__)

T = TypeVar("T")

REQUEST_TIMEOUT: Final[float] = 10.0
SESSIONS_TABLE: Final[str] = "gp51_sessions"
HEALTH_METRICS_TABLE: Final[str] = "gp51_health_metrics"

_sessions_decoder = msgspec.json.Decoder(list[GP51Session])
_metrics_decoder = msgspec.json.Decoder(list[HealthMetric])
_auth_decoder = msgspec.json.Decoder(AuthSession)
_user_decoder = msgspec.json.Decoder(AuthUser)
_any_decoder = msgspec.json.Decoder()


class SupabaseStore:
    """
    PostgREST / GoTrue / edge-function client for one Supabase project.

    Uses the service role key, so row level security does not apply.
    """

    __slots__ = ("_session", "_url", "_key")

    def __init__(self, session: aiohttp.ClientSession, url: str, service_key: str) -> None:
        if not url or not service_key:
            raise ValueError("Supabase url and service key are required")

        self._session = session
        self._url = url.rstrip("/")
        self._key = service_key

    # ------------------------------------------------------------------
    # gp51_sessions
    # ------------------------------------------------------------------

    async def get_active_session(self) -> GP51Session | None:
        """Most recently used active session, if any."""
        rows = await self._select_sessions(
            {
                "select": "*",
                "is_active": "eq.true",
                "order": "last_activity_at.desc.nullslast",
                "limit": "1",
            }
        )
        return rows[0] if rows else None

    async def find_cached_session(self, username: str) -> GP51Session | None:
        """Latest-expiring session for username that has not expired yet."""
        rows = await self._select_sessions(
            {
                "select": "*",
                "username": f"eq.{username}",
                "token_expires_at": f"gt.{utc_now().isoformat()}",
                "order": "token_expires_at.desc",
                "limit": "1",
            }
        )
        return rows[0] if rows else None

    async def list_active_sessions(self) -> list[GP51Session]:
        return await self._select_sessions({"select": "*", "is_active": "eq.true"})

    async def upsert_session(self, record: GP51Session) -> GP51Session:
        body = await self._request(
            "POST",
            f"/rest/v1/{SESSIONS_TABLE}",
            params={"on_conflict": "username"},
            payload=_encode_row(record),
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        rows = _decode(_sessions_decoder, body, SESSIONS_TABLE)
        if not rows:
            raise SupabaseError("Session upsert returned no rows")

        return rows[0]

    async def update_session(self, session_id: str, fields: dict[str, Any]) -> GP51Session:
        body = await self._request(
            "PATCH",
            f"/rest/v1/{SESSIONS_TABLE}",
            params={"id": f"eq.{session_id}"},
            payload=msgspec.json.encode(fields),
            headers={"Prefer": "return=representation"},
        )
        rows = _decode(_sessions_decoder, body, SESSIONS_TABLE)
        if not rows:
            raise SupabaseError(f"Session {session_id} not found for update", status=404)

        return rows[0]

    # ------------------------------------------------------------------
    # gp51_health_metrics
    # ------------------------------------------------------------------

    async def insert_health_metric(self, metric: HealthMetric) -> None:
        await self._request(
            "POST",
            f"/rest/v1/{HEALTH_METRICS_TABLE}",
            payload=_encode_row(metric),
            headers={"Prefer": "return=minimal"},
        )

    async def recent_health_metrics(self, limit: int = 100) -> list[HealthMetric]:
        body = await self._request(
            "GET",
            f"/rest/v1/{HEALTH_METRICS_TABLE}",
            params={
                "select": "timestamp,latency,success,error_details",
                "order": "timestamp.desc",
                "limit": str(limit),
            },
        )
        return _decode(_metrics_decoder, body, HEALTH_METRICS_TABLE)

    # ------------------------------------------------------------------
    # auth
    # ------------------------------------------------------------------

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        body = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            payload=msgspec.json.encode({"email": email, "password": password}),
        )
        return _decode(_auth_decoder, body, "auth session")

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: dict[str, Any] | None = None,
    ) -> AuthSession:
        body = await self._request(
            "POST",
            "/auth/v1/signup",
            payload=msgspec.json.encode(
                {"email": email, "password": password, "data": metadata or {}}
            ),
        )
        auth = _decode(_auth_decoder, body, "auth session")
        if auth.user is None:
            # With email confirmation on, GoTrue returns the bare user
            auth = AuthSession(user=_decode(_user_decoder, body, "auth user"))

        return auth

    # ------------------------------------------------------------------
    # edge functions
    # ------------------------------------------------------------------

    async def invoke_function(self, name: str, payload: dict[str, Any]) -> dict[str, Any]:
        body = await self._request(
            "POST",
            f"/functions/v1/{name}",
            payload=msgspec.json.encode(payload),
        )
        data = _decode(_any_decoder, body, f"function {name}") if body else {}
        if not isinstance(data, dict):
            raise SupabaseError(f"Function {name} returned non-object response")

        return data

    # ------------------------------------------------------------------

    async def _select_sessions(self, params: dict[str, str]) -> list[GP51Session]:
        body = await self._request("GET", f"/rest/v1/{SESSIONS_TABLE}", params=params)
        return _decode(_sessions_decoder, body, SESSIONS_TABLE)

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        payload: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> bytes:
        request_headers = {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if headers:
            request_headers.update(headers)

        try:
            async with self._session.request(
                method,
                f"{self._url}{path}",
                params=params,
                data=payload,
                headers=request_headers,
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
            ) as response:
                body = await response.read()
                status = response.status

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SupabaseError(f"Supabase {method} {path} failed: {e}") from e

        if status >= 400:
            raise SupabaseError(
                f"Supabase {method} {path} returned HTTP {status}: {body[:200]!r}",
                status=status,
            )

        return body


def _encode_row(row: msgspec.Struct) -> bytes:
    # PostgREST fills id/defaults itself, so drop unset optionals
    data = {k: v for k, v in msgspec.structs.asdict(row).items() if v is not None}
    return msgspec.json.encode(data)


def _decode(decoder: "msgspec.json.Decoder[T]", body: bytes, what: str) -> T:
    try:
        return decoder.decode(body)
    except msgspec.DecodeError as e:
        raise SupabaseError(f"Unexpected {what} payload from Supabase: {e}") from e

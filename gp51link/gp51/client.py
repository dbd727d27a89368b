"""Async client for the GP51 web API."""

import asyncio
import hashlib
from typing import Any, Final, TypeVar

import aiohttp
import msgspec
import structlog

from gp51link.core.logging import Logger
from gp51link.exceptions import ErrorKind, GP51Error
from gp51link.gp51.protocol import (
    GP51Response,
    LoginRequest,
    LoginResponse,
    MonitorListResponse,
)

logger: Logger = structlog.getLogger(__name__)

LOGIN_TIMEOUT: Final[float] = 15.0
API_TIMEOUT: Final[float] = 10.0
CONNECTION_TEST_TIMEOUT: Final[float] = 5.0
USER_AGENT: Final[str] = "gp51link/0.1"

# Upstream has no structured rate-limit code; these substrings of `cause`
# are a stopgap until it does.
RATE_LIMIT_SIGNATURES: Final[tuple[str, ...]] = ("rate limit", "ip limit", "8902")
AUTH_SIGNATURES: Final[tuple[str, ...]] = (
    "token",
    "expire",
    "session",
    "not login",
    "9903",
    "9906",
)

ResponseT = TypeVar("ResponseT", bound=GP51Response)


def hash_password(password: str) -> str:
    """GP51 expects the lowercase MD5 hex digest of the password."""
    return hashlib.md5(password.encode("utf-8")).hexdigest()


def classify_cause(text: str) -> ErrorKind:
    lowered = text.lower()

    if any(signature in lowered for signature in RATE_LIMIT_SIGNATURES):
        return ErrorKind.RATE_LIMITED

    if any(signature in lowered for signature in AUTH_SIGNATURES):
        return ErrorKind.AUTH_EXPIRED

    return ErrorKind.UNKNOWN


def build_api_url(base_url: str) -> str:
    base = base_url.rstrip("/")
    if base.endswith("/webapi"):
        return base

    return f"{base}/webapi"


class GP51Client:
    """
    Thin wrapper over `POST {base}/webapi?action=...`.

    Every failure surfaces as GP51Error with an ErrorKind so callers never
    need to inspect vendor text themselves.
    """

    __slots__ = ("_session", "_api_url", "_global_token")

    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str,
        global_token: str = "",
    ) -> None:
        self._session = session
        self._api_url = build_api_url(base_url)
        self._global_token = global_token

    @property
    def api_url(self) -> str:
        return self._api_url

    async def login(self, username: str, password: str) -> str:
        """Authenticate and return a GP51 token.

        Raises:
            GP51Error: kind REJECTED when GP51 refuses the credentials,
                otherwise GP51 was unreachable or throttled us
        """
        request = LoginRequest(username=username.strip(), password=hash_password(password))
        params = {"token": self._global_token} if self._global_token else {}

        body = await self._post_raw(
            "login",
            params=params,
            payload=msgspec.json.encode(request),
            timeout=LOGIN_TIMEOUT,
        )

        try:
            response = msgspec.json.decode(body, type=LoginResponse)
        except msgspec.DecodeError:
            # Some GP51 deployments answer login with a bare token
            token = body.decode("utf-8", errors="replace").strip()
            if not token or "error" in token.lower() or "fail" in token.lower():
                raise GP51Error(
                    f"Invalid authentication response: {token[:100]}",
                    kind=ErrorKind.REJECTED,
                )
            logger.debug(f"GP51 login for {username} returned plain text token")
            return token

        if not response.ok:
            cause = response.cause or f"status {response.status}"
            kind = classify_cause(f"{response.status} {cause}")
            raise GP51Error(
                f"GP51 login rejected for {username}: {cause}",
                kind=kind if kind == ErrorKind.RATE_LIMITED else ErrorKind.REJECTED,
                status=response.status,
                cause=response.cause,
            )

        if not response.token:
            raise GP51Error(
                "GP51 login succeeded without a token",
                kind=ErrorKind.UNKNOWN,
                status=response.status,
            )

        logger.info(f"GP51 login succeeded for {username}")
        return response.token

    async def call(
        self,
        action: str,
        token: str,
        payload: dict[str, Any] | None = None,
        response_type: type[ResponseT] = GP51Response,
        timeout: float = API_TIMEOUT,
    ) -> ResponseT:
        """Invoke an authenticated GP51 action and decode the response."""
        body = await self._post_raw(
            action,
            params={"token": token},
            payload=msgspec.json.encode(payload or {}),
            timeout=timeout,
        )

        try:
            response = msgspec.json.decode(body, type=response_type)
        except msgspec.DecodeError as e:
            raise GP51Error(
                f"Invalid JSON from GP51 {action}: {body[:100]!r}",
                kind=ErrorKind.UNKNOWN,
            ) from e

        self._raise_for_status(response, action)
        return response

    async def query_monitor_list(self, token: str, username: str) -> MonitorListResponse:
        return await self.call(
            "querymonitorlist",
            token,
            {"username": username},
            response_type=MonitorListResponse,
        )

    async def test_connection(self, token: str, username: str) -> GP51Response:
        """Cheapest authenticated round trip, used for liveness checks."""
        return await self.call(
            "querymonitorlist",
            token,
            {"username": username},
            response_type=GP51Response,
            timeout=CONNECTION_TEST_TIMEOUT,
        )

    async def _post_raw(
        self,
        action: str,
        params: dict[str, str],
        payload: bytes,
        timeout: float,
    ) -> bytes:
        query = {"action": action, **params}

        try:
            async with self._session.post(
                self._api_url,
                params=query,
                data=payload,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json, text/plain",
                    "User-Agent": USER_AGENT,
                },
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                body = await response.read()
                status = response.status

        except asyncio.TimeoutError as e:
            raise GP51Error(
                f"GP51 {action} timed out after {timeout:.0f}s",
                kind=ErrorKind.NETWORK,
            ) from e

        except aiohttp.ClientError as e:
            raise GP51Error(
                f"GP51 {action} request failed: {e}",
                kind=ErrorKind.NETWORK,
            ) from e

        if status == 429:
            raise GP51Error(
                f"GP51 {action} rate limited (HTTP 429)",
                kind=ErrorKind.RATE_LIMITED,
                status=status,
            )

        if status >= 400:
            text = body.decode("utf-8", errors="replace")
            raise GP51Error(
                f"GP51 {action} HTTP {status}: {text[:200]}",
                kind=classify_cause(text) if status < 500 else ErrorKind.NETWORK,
                status=status,
            )

        if not body.strip():
            raise GP51Error(f"Empty response from GP51 {action}", kind=ErrorKind.UNKNOWN)

        return body

    @staticmethod
    def _raise_for_status(response: GP51Response, action: str) -> None:
        if response.ok:
            return

        cause = response.cause or f"status {response.status}"
        raise GP51Error(
            f"GP51 API error {response.status} on {action}: {cause}",
            kind=classify_cause(f"{response.status} {cause}"),
            status=response.status,
            cause=response.cause,
        )

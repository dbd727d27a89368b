"""End-to-end GP51 connection test: session, reachability, data flow."""

import time

import structlog
from codetiming import Timer

from gp51link.core.logging import Logger, bind_check_context, clear_check_context
from gp51link.exceptions import GP51Error, SessionUnavailable
from gp51link.gp51.client import GP51Client
from gp51link.monitoring.types import (
    RESULT_CACHE_TTL,
    ConnectionReport,
    RealConnectionResult,
    ReportSummary,
)
from gp51link.reliability.rate_limiter import RateLimiter
from gp51link.session.manager import SessionManager

logger: Logger = structlog.getLogger(__name__)


class RealConnectionTester:
    """
    Runs three checks in order and stops at the first failure:

    1. a valid (non-expired) GP51 session exists
    2. the GP51 API answers an authenticated request
    3. an actual device list fetch returns data

    Results are reused for 30 seconds.
    """

    __slots__ = ("_client", "_sessions", "_rate_limiter", "_cached", "_cached_at")

    def __init__(
        self,
        client: GP51Client,
        sessions: SessionManager,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._client = client
        self._sessions = sessions
        self._rate_limiter = rate_limiter
        self._cached: RealConnectionResult | None = None
        self._cached_at = 0.0

    def clear_cache(self) -> None:
        self._cached = None
        self._cached_at = 0.0

    async def test_real_connection(self) -> RealConnectionResult:
        if self._cached is not None and time.monotonic() - self._cached_at < RESULT_CACHE_TTL:
            return self._cached

        bind_check_context("connection-test")
        try:
            result = RealConnectionResult()
            timer = Timer(logger=None)

            with timer:
                try:
                    await self._run_checks(result)
                except Exception as e:
                    logger.exception(f"Unexpected error during GP51 connection test: {e}")
                    result.error_message = f"Connection test failed: {e}"

            result.latency = int(timer.last * 1000)

            logger.info(
                f"GP51 connection test: session={result.session_valid} "
                f"api={result.api_reachable} data={result.data_flowing} "
                f"({result.latency}ms)"
            )
        finally:
            clear_check_context()

        self._cached = result
        self._cached_at = time.monotonic()
        return result

    async def generate_connection_report(self) -> ConnectionReport:
        result = await self.test_real_connection()
        return build_report(result)

    async def _run_checks(self, result: RealConnectionResult) -> None:
        try:
            session = await self._sessions.get_valid_session()
        except SessionUnavailable as e:
            result.error_message = f"Session invalid: {e}"
            return

        if not session.is_valid or not session.token:
            result.error_message = "Session invalid: token missing or expired"
            return

        result.session_valid = True

        try:
            await self._throttle()
            await self._client.test_connection(session.token, session.username)
        except GP51Error as e:
            result.error_message = f"API unreachable: {e}"
            return

        result.api_reachable = True

        try:
            await self._throttle()
            monitor_list = await self._client.query_monitor_list(
                session.token, session.username
            )
        except GP51Error as e:
            result.error_message = f"Data flow failed: {e}"
            return

        devices = monitor_list.devices()
        result.device_count = len(devices)

        if not monitor_list.groups:
            result.error_message = "Data flow failed: no device groups returned"
            return

        result.data_flowing = True

    async def _throttle(self) -> None:
        if self._rate_limiter is not None:
            await self._rate_limiter.wait_for_rate_limit()


def build_report(result: RealConnectionResult) -> ConnectionReport:
    suggestions: list[str] = []

    if not result.session_valid:
        summary = ReportSummary.CRITICAL
        details = "GP51 session is invalid or expired"
        suggestions += [
            "Re-authenticate with GP51 to create a fresh session",
            "Check the configured GP51 username and password",
        ]

    elif not result.api_reachable:
        summary = ReportSummary.CRITICAL
        details = "GP51 API is not reachable"
        suggestions += [
            "Verify network connectivity to the GP51 server",
            "Check the GP51 service status",
            "Wait for the rate limit circuit breaker to cool down if it is open",
        ]

    elif not result.data_flowing:
        summary = ReportSummary.DEGRADED
        details = "GP51 API reachable but no device data returned"
        suggestions += [
            "Confirm devices are assigned to the GP51 account",
            "Check account permissions for querymonitorlist",
        ]

    else:
        summary = ReportSummary.HEALTHY
        details = (
            f"GP51 connection healthy, {result.device_count} devices "
            f"in {result.latency}ms"
        )

    if result.error_message and summary != ReportSummary.HEALTHY:
        details = f"{details}: {result.error_message}"

    return ConnectionReport(
        summary=summary,
        details=details,
        suggestions=suggestions,
        result=result,
    )

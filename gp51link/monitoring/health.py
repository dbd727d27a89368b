"""Periodic GP51 connectivity checks with replay-one status broadcasting."""

import asyncio
import math

import structlog
from codetiming import Timer

from gp51link.core.logging import Logger, bind_check_context, clear_check_context
from gp51link.core.pubsub import StatusBroadcaster, Unsubscribe
from gp51link.exceptions import GP51Error, SessionUnavailable
from gp51link.gp51.client import GP51Client
from gp51link.monitoring.types import (
    DEFAULT_CHECK_INTERVAL,
    MAX_CONSECUTIVE_FAILURES,
    SLOW_RESPONSE_THRESHOLD_MS,
    ConnectionHealth,
    ConnectionHealthStatus,
    HealthCallback,
    HealthRating,
    HealthState,
    SessionInfo,
)
from gp51link.reliability.degradation import DegradationTracker
from gp51link.reliability.rate_limiter import RateLimiter
from gp51link.session.manager import SessionManager
from gp51link.store.supabase import SupabaseStore
from gp51link.store.types import HealthMetric, utc_now

logger: Logger = structlog.getLogger(__name__)

GP51_SERVICE = "gp51"


class ConnectionHealthMonitor:
    """
    Pings GP51 and classifies the connection.

    Every check appends exactly one row to `gp51_health_metrics` and
    publishes the new ConnectionHealthStatus to all subscribers before
    returning it.
    """

    __slots__ = (
        "_client",
        "_store",
        "_sessions",
        "_degradation",
        "_rate_limiter",
        "_broadcaster",
        "_monitor_task",
        "_interval",
    )

    def __init__(
        self,
        client: GP51Client,
        store: SupabaseStore,
        sessions: SessionManager,
        degradation: DegradationTracker | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._sessions = sessions
        self._degradation = degradation
        self._rate_limiter = rate_limiter

        self._broadcaster: StatusBroadcaster[ConnectionHealthStatus] = StatusBroadcaster(
            "connection-health",
            ConnectionHealthStatus(status=HealthState.DISCONNECTED),
        )
        self._monitor_task: asyncio.Task[None] | None = None
        self._interval = DEFAULT_CHECK_INTERVAL

    @property
    def current_status(self) -> ConnectionHealthStatus:
        status = self._broadcaster.latest
        assert status is not None  # seeded in __init__
        return status

    @property
    def is_monitoring(self) -> bool:
        return self._monitor_task is not None and not self._monitor_task.done()

    def subscribe(self, callback: HealthCallback) -> Unsubscribe:
        """Register callback; it immediately receives the current status."""
        return self._broadcaster.subscribe(callback)

    async def perform_health_check(self) -> ConnectionHealthStatus:
        bind_check_context("health")
        try:
            status = await self._check()
            await self._persist_metric(status)
            self._track_degradation(status)

            if status.is_connected:
                logger.debug(f"GP51 health check {status.status} in {status.latency}ms")
            else:
                logger.warning(
                    f"GP51 health check {status.status} "
                    f"({status.consecutive_failures} in a row): {status.error_message}"
                )

            self._broadcaster.publish(status)
        finally:
            clear_check_context()

        return status

    def get_connection_health(self) -> ConnectionHealth:
        return assess_health(self.current_status)

    async def attempt_reconnection(self) -> ConnectionHealthStatus:
        """Refresh the GP51 session, then check again."""
        logger.info("Attempting GP51 reconnection")
        previous = self.current_status
        self._broadcaster.publish(
            ConnectionHealthStatus(
                status=HealthState.CONNECTING,
                last_check=utc_now(),
                session_info=previous.session_info,
                consecutive_failures=previous.consecutive_failures,
                last_successful_check=previous.last_successful_check,
            )
        )

        try:
            await self._sessions.refresh_session(self._sessions.current)
        except SessionUnavailable as e:
            logger.warning(f"Session refresh during reconnection failed: {e}")

        return await self.perform_health_check()

    async def start_monitoring(self, interval: float = DEFAULT_CHECK_INTERVAL) -> None:
        if self.is_monitoring:
            logger.warning("GP51 health monitoring already running")
            return

        self._interval = interval
        self._monitor_task = asyncio.create_task(
            self._monitor_loop(),
            name="gp51-health-monitor",
        )
        logger.info(f"Started GP51 health monitoring every {interval:.0f}s")

    async def stop_monitoring(self) -> None:
        if self._monitor_task is None:
            return

        self._monitor_task.cancel()
        try:
            await self._monitor_task
        except asyncio.CancelledError:
            pass

        self._monitor_task = None
        logger.info("Stopped GP51 health monitoring")

    async def get_health_history(self, limit: int = 100) -> list[HealthMetric]:
        return await self._store.recent_health_metrics(limit)

    async def _monitor_loop(self) -> None:
        while True:
            try:
                await self.perform_health_check()
                await asyncio.sleep(self._interval)

            except asyncio.CancelledError:
                break

            except Exception as e:
                logger.error(f"Health monitor loop error: {e}", exc_info=True)
                await asyncio.sleep(self._interval)

    async def _check(self) -> ConnectionHealthStatus:
        previous = self.current_status
        timer = Timer(logger=None)
        session_info: SessionInfo | None = None
        error_message: str | None = None

        try:
            session = await self._sessions.get_valid_session()
            session_info = SessionInfo(
                username=session.username,
                expires_at=session.expires_at,
                is_valid=session.is_valid,
            )
            if self._rate_limiter is not None:
                await self._rate_limiter.wait_for_rate_limit()

            with timer:
                await self._client.test_connection(session.token or "", session.username)

            state = (
                HealthState.DEGRADED
                if _to_ms(timer.last) > SLOW_RESPONSE_THRESHOLD_MS
                else HealthState.CONNECTED
            )

        except SessionUnavailable as e:
            state = HealthState.AUTH_ERROR
            error_message = str(e)

        except GP51Error as e:
            state = HealthState.AUTH_ERROR if e.is_auth_error else HealthState.DISCONNECTED
            error_message = str(e)

        except Exception as e:
            logger.exception(f"Unexpected error during GP51 health check: {e}")
            state = HealthState.DISCONNECTED
            error_message = str(e)

        now = utc_now()
        connected = state in (HealthState.CONNECTED, HealthState.DEGRADED)
        return ConnectionHealthStatus(
            status=state,
            last_check=now,
            latency=_to_ms(timer.last),
            error_message=error_message,
            session_info=session_info,
            consecutive_failures=0 if connected else previous.consecutive_failures + 1,
            last_successful_check=now if connected else previous.last_successful_check,
        )

    async def _persist_metric(self, status: ConnectionHealthStatus) -> None:
        metric = HealthMetric(
            timestamp=status.last_check or utc_now(),
            latency=status.latency or 0,
            success=status.is_connected,
            error_details=status.error_message,
        )

        try:
            await self._store.insert_health_metric(metric)
        except Exception as e:
            logger.warning(f"Failed to persist GP51 health metric: {e}")

    def _track_degradation(self, status: ConnectionHealthStatus) -> None:
        if self._degradation is None or not self._degradation.is_registered(GP51_SERVICE):
            return

        if status.is_connected:
            self._degradation.record_success(GP51_SERVICE)
        else:
            self._degradation.record_failure(
                GP51_SERVICE, status.error_message or status.status
            )


def _to_ms(seconds: float) -> int:
    if math.isnan(seconds):
        return 0

    return int(seconds * 1000)


def assess_health(status: ConnectionHealthStatus) -> ConnectionHealth:
    """Rate the connection from the latest check and its failure streak."""
    if status.is_connected:
        return ConnectionHealth(
            rating=HealthRating.HEALTHY,
            message="GP51 connection is stable and operational",
        )

    if status.consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
        return ConnectionHealth(
            rating=HealthRating.CRITICAL,
            message=f"GP51 connection has failed {status.consecutive_failures} times in a row",
            recommendations=[
                "Check GP51 credentials and API configuration",
                "Verify network connectivity",
                "Contact GP51 support if issues persist",
            ],
        )

    if status.consecutive_failures > 0:
        return ConnectionHealth(
            rating=HealthRating.WARNING,
            message="GP51 connection experiencing intermittent issues",
            recommendations=[
                "Monitor connection stability",
                "Check for network issues",
                "Verify GP51 service status",
            ],
        )

    return ConnectionHealth(
        rating=HealthRating.UNKNOWN,
        message="GP51 connection status unknown",
        recommendations=["Perform connection test to verify status"],
    )

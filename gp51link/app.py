import asyncio
import signal
from typing import Any

import aiohttp
import structlog

from gp51link.auth import FallbackAuthenticator, OfflineSessionStore
from gp51link.core.config import Settings, settings
from gp51link.core.logging import Logger
from gp51link.gp51 import GP51Client
from gp51link.monitoring import ConnectionHealthMonitor, RealConnectionTester
from gp51link.monitoring.health import GP51_SERVICE
from gp51link.reliability import DegradationTracker, RateLimitConfig, RateLimiter
from gp51link.server import HTTPServer
from gp51link.session import SessionManager
from gp51link.store import SupabaseStore

logger: Logger = structlog.getLogger(__name__)


class GP51Link:
    """
    Main application orchestrator.

    Owns one instance of every reliability component so that they all share
    the same rate limiter, degradation state and HTTP session.
    """

    __slots__ = (
        "_settings",
        "_http_session",
        "_client",
        "_store",
        "_rate_limiter",
        "_degradation",
        "_sessions",
        "_monitor",
        "_tester",
        "_authenticator",
        "_http_server",
        "_enable_http",
        "_running",
        "_shutdown_event",
    )

    def __init__(
        self,
        config: Settings = settings,
        enable_http: bool = True,
    ) -> None:
        self._settings = config
        self._enable_http = enable_http

        # Components (initialised on start)
        self._http_session: aiohttp.ClientSession | None = None
        self._client: GP51Client | None = None
        self._store: SupabaseStore | None = None
        self._sessions: SessionManager | None = None
        self._monitor: ConnectionHealthMonitor | None = None
        self._tester: RealConnectionTester | None = None
        self._authenticator: FallbackAuthenticator | None = None
        self._http_server: HTTPServer | None = None

        self._rate_limiter = RateLimiter(RateLimitConfig.from_settings(config))
        self._degradation = DegradationTracker()
        self._degradation.register_service(GP51_SERVICE)

        self._running = False
        self._shutdown_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def degradation(self) -> DegradationTracker:
        return self._degradation

    @property
    def monitor(self) -> ConnectionHealthMonitor | None:
        return self._monitor

    @property
    def tester(self) -> RealConnectionTester | None:
        return self._tester

    @property
    def authenticator(self) -> FallbackAuthenticator | None:
        return self._authenticator

    async def start(self) -> None:
        """
        Build all components and start background monitoring.

        Raises:
            Exception: If a required component cannot be created
        """
        if self._running:
            logger.warning("Application already running")
            return

        logger.info("Starting gp51link...")
        config = self._settings

        try:
            # 1. Shared HTTP session
            self._http_session = aiohttp.ClientSession()

            # 2. Remote APIs
            self._client = GP51Client(
                self._http_session,
                base_url=config.GP51_BASE_URL,
                global_token=config.GP51_GLOBAL_TOKEN,
            )
            self._store = SupabaseStore(
                self._http_session,
                url=config.SUPABASE_URL,
                service_key=config.SUPABASE_SERVICE_KEY,
            )
            logger.info(f"✓ GP51 client ready for {self._client.api_url}")

            # 3. Sessions
            self._sessions = SessionManager(
                self._store,
                self._client,
                self._rate_limiter,
                username=config.GP51_USERNAME,
                password=config.GP51_PASSWORD,
            )
            logger.info("✓ SessionManager initialised")

            # 4. Monitoring
            self._monitor = ConnectionHealthMonitor(
                self._client,
                self._store,
                self._sessions,
                degradation=self._degradation,
                rate_limiter=self._rate_limiter,
            )
            self._tester = RealConnectionTester(
                self._client,
                self._sessions,
                rate_limiter=self._rate_limiter,
            )

            # 5. Authentication
            self._authenticator = FallbackAuthenticator.with_default_strategies(
                self._client,
                self._store,
                self._sessions,
                self._rate_limiter,
                self._degradation,
                OfflineSessionStore(config.OFFLINE_SESSION_DIR),
            )
            logger.info("✓ FallbackAuthenticator initialised")

            await self._monitor.start_monitoring(config.HEALTH_CHECK_INTERVAL)

            # 6. HTTP Server (if enabled)
            if self._enable_http:
                self._http_server = HTTPServer(
                    app=self,
                    port=config.HTTP_PORT,
                    host=config.HTTP_HOST,
                )
                try:
                    await self._http_server.start()
                except Exception as e:
                    logger.error(f"Failed to start HTTP server: {e}")
                    self._http_server = None

            self._running = True
            logger.info("✓ gp51link started successfully!")

        except Exception as e:
            logger.error(f"X Application startup failed: {e}")
            await self._stop()
            raise

    async def stop(self) -> None:
        if not self._running:
            logger.warning("Application not running")
            return

        logger.info("Stopping application...")
        await self._stop()
        self._running = False
        logger.info("Application stopped")

    async def _stop(self) -> None:
        if self._http_server:
            try:
                await self._http_server.stop()
            except Exception as e:
                logger.error(f"Error stopping HTTP server: {e}")
            self._http_server = None

        if self._monitor:
            try:
                await self._monitor.stop_monitoring()
            except Exception as e:
                logger.error(f"Error stopping health monitor: {e}")

        if self._http_session:
            await self._http_session.close()
            self._http_session = None

    async def run(self) -> None:
        """Run until SIGINT or SIGTERM, then stop gracefully."""
        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            logger.info("Shutdown signal received")
            self._shutdown_event.set()

        signals = (signal.SIGINT, signal.SIGTERM)
        for sig in signals:
            loop.add_signal_handler(sig, signal_handler)

        try:
            await self.start()
            await self._shutdown_event.wait()
        finally:
            await self.stop()

            for sig in signals:
                loop.remove_signal_handler(sig)

    def get_stats(self) -> dict[str, Any]:
        """
        Snapshot of every component for /stats and /metrics.

        Returns:
            dict with keys: running, rate_limiter, services, connection
        """
        limiter_stats = self._rate_limiter.get_stats()

        stats: dict[str, Any] = {
            "running": self._running,
            "rate_limiter": {
                "total_requests": limiter_stats.total_requests,
                "successful_requests": limiter_stats.successful_requests,
                "failed_requests": limiter_stats.failed_requests,
                "rate_limited_requests": limiter_stats.rate_limited_requests,
                "consecutive_failures": limiter_stats.consecutive_failures,
                "circuit_open": limiter_stats.circuit_open,
                "circuit_remaining": limiter_stats.circuit_remaining,
                "success_rate": limiter_stats.success_rate,
            },
            "services": {
                status.name: {
                    "level": str(status.level),
                    "is_healthy": status.is_healthy,
                    "consecutive_failures": status.consecutive_failures,
                    "fallback_active": status.fallback_active,
                    "last_error": status.last_error,
                }
                for status in self._degradation.get_all_service_statuses()
            },
            "connection": {},
        }

        if self._monitor:
            current = self._monitor.current_status
            health = self._monitor.get_connection_health()
            last_success = current.last_successful_check
            stats["connection"] = {
                "status": str(current.status),
                "latency_ms": current.latency,
                "last_check": current.last_check.isoformat() if current.last_check else None,
                "error_message": current.error_message,
                "consecutive_failures": current.consecutive_failures,
                "last_successful_check": last_success.isoformat() if last_success else None,
                "health": str(health.rating),
                "recommendations": health.recommendations,
                "monitoring": self._monitor.is_monitoring,
            }

        if self._authenticator:
            stats["auth_level"] = str(self._authenticator.get_current_level())

        return stats

    def is_healthy(self) -> bool:
        if not self._running:
            return False

        if self._rate_limiter.is_circuit_open:
            logger.warning("Health check failed: GP51 circuit breaker open")
            return False

        if self._monitor and not self._monitor.current_status.is_connected:
            logger.debug(f"Health check: GP51 {self._monitor.current_status.status}")
            return False

        return True

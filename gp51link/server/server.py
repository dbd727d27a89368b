from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import msgspec
import structlog
from aiohttp import web
from aiohttp.hdrs import CONTENT_TYPE
from prometheus_client import CONTENT_TYPE_LATEST

from gp51link.core.logging import Logger
from gp51link.metrics.prometheus import MetricsCollector
from gp51link.monitoring.health import GP51_SERVICE

if TYPE_CHECKING:
    from gp51link.app import GP51Link

logger: Logger = structlog.getLogger(__name__)


def _json_dumps(data: object) -> str:
    return msgspec.json.encode(data).decode()


class HTTPServer:
    """
    HTTP server exposing health, stats and GP51 connection endpoints.

    Started and stopped by the application alongside the health monitor.
    """

    __slots__ = (
        "_app",
        "_port",
        "_host",
        "_runner",
        "_site",
        "_running",
    )

    def __init__(
        self,
        app: GP51Link,
        port: int = 8080,
        host: str = "0.0.0.0",
    ) -> None:
        """Initialize HTTP server.

        Args:
            app: application instance to query for health/stats
            port: Port to bind to (default: 8080)
            host: Host to bind to (default: 0.0.0.0 for container compatibility)
        """
        self._app = app
        self._port = port
        self._host = host
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def build_application(self) -> web.Application:
        web_app = web.Application()
        web_app.router.add_get("/health", self._handle_health)
        web_app.router.add_get("/stats", self._handle_stats)
        web_app.router.add_get("/metrics", self._handle_metrics)
        web_app.router.add_get("/connection-report", self._handle_connection_report)
        web_app.router.add_get("/auth/level", self._handle_auth_level)
        return web_app

    async def start(self) -> None:
        """Start HTTP server.

        Raises:
            Exception: If server fails to start (port conflict, etc.)
        """
        if self._running:
            logger.warning("HTTP server already running")
            return

        logger.info(f"Starting HTTP server on {self._host}:{self._port}")

        self._runner = web.AppRunner(self.build_application())
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()

        self._running = True
        logger.info(f"✓ HTTP server started on {self._host}:{self._port}")

    async def stop(self) -> None:
        """Stop HTTP server gracefully."""
        if not self._running:
            logger.warning("HTTP server not running")
            return

        logger.info("Stopping HTTP server...")
        self._running = False

        if self._site:
            await self._site.stop()
            self._site = None

        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        logger.info("✓ HTTP server stopped")

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Handle GET /health endpoint.

        Returns:
            200 OK if healthy, 503 Service Unavailable otherwise
        """
        logger.debug("GET /health")

        is_healthy = self._app.is_healthy()
        monitor = self._app.monitor

        components = {
            "circuit_closed": not self._app.rate_limiter.is_circuit_open,
            "monitoring": monitor is not None and monitor.is_monitoring,
            "gp51_connected": monitor is not None and monitor.current_status.is_connected,
        }

        response_data = {
            "healthy": is_healthy,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "components": components,
        }

        status = 200 if is_healthy else 503
        return web.json_response(response_data, status=status)

    async def _handle_stats(self, request: web.Request) -> web.Response:
        logger.debug("GET /stats")

        return web.json_response(self._app.get_stats(), status=200, dumps=_json_dumps)

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        """Handle GET /metrics endpoint.

        Returns:
            200 OK with Prometheus text exposition format
        """
        try:
            collector = MetricsCollector(self._app)
            metrics_bytes = collector.collect_metrics()

        except Exception as e:
            logger.exception(f"Error getting metrics: {e}")
            return web.json_response({"error": str(e)}, status=500)

        return web.Response(
            body=metrics_bytes,
            headers={CONTENT_TYPE: CONTENT_TYPE_LATEST},
        )

    async def _handle_connection_report(self, request: web.Request) -> web.Response:
        """Handle GET /connection-report endpoint.

        Runs (or reuses) the end-to-end connection test.

        Returns:
            200 OK with summary, details, suggestions and raw result
            503 Service Unavailable when the tester is not available
        """
        logger.debug("GET /connection-report")

        tester = self._app.tester
        if tester is None:
            return web.json_response({"error": "Connection tester not available"}, status=503)

        report = await tester.generate_connection_report()
        return web.json_response(asdict(report), status=200, dumps=_json_dumps)

    async def _handle_auth_level(self, request: web.Request) -> web.Response:
        logger.debug("GET /auth/level")

        authenticator = self._app.authenticator
        if authenticator is None:
            return web.json_response({"error": "Authenticator not available"}, status=503)

        return web.json_response(
            {
                "level": str(authenticator.get_current_level()),
                "gp51_service_level": str(self._app.degradation.get_level(GP51_SERVICE)),
            },
            status=200,
        )

"""Unit tests for HTTP server component."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp.test_utils import TestClient, TestServer

from gp51link.monitoring.tester import build_report
from gp51link.monitoring.types import RealConnectionResult
from gp51link.reliability.types import ServiceLevel
from gp51link.server import HTTPServer


def make_app(healthy: bool = True) -> MagicMock:
    mock_app = MagicMock()
    mock_app.is_healthy.return_value = healthy
    mock_app.rate_limiter.is_circuit_open = not healthy
    mock_app.monitor.is_monitoring = True
    mock_app.monitor.current_status.is_connected = healthy
    mock_app.get_stats.return_value = {
        "running": True,
        "rate_limiter": {"total_requests": 3, "circuit_open": False},
        "services": {},
        "connection": {},
    }
    return mock_app


class TestHTTPServerLifecycle:
    """Test HTTPServer lifecycle management."""

    @pytest.mark.asyncio
    async def test_start_already_running(self):
        server = HTTPServer(MagicMock())
        server._running = True

        # Should log warning and return early
        await server.start()

        assert server._runner is None

    @pytest.mark.asyncio
    async def test_stop_not_running(self):
        server = HTTPServer(MagicMock())

        await server.stop()

        assert not server.is_running

    @pytest.mark.asyncio
    async def test_start_stop_on_free_port(self):
        server = HTTPServer(MagicMock(), port=0, host="127.0.0.1")

        await server.start()
        assert server.is_running

        await server.stop()
        assert not server.is_running


class TestHealthEndpoint:
    """Test /health endpoint handler."""

    @pytest.mark.asyncio
    async def test_health_endpoint_healthy(self):
        server = HTTPServer(make_app(healthy=True))

        async with TestClient(TestServer(server.build_application())) as client:
            resp = await client.get("/health")

            assert resp.status == 200
            data = await resp.json()

            assert data["healthy"] is True
            assert "timestamp" in data
            assert data["components"] == {
                "circuit_closed": True,
                "monitoring": True,
                "gp51_connected": True,
            }

    @pytest.mark.asyncio
    async def test_health_endpoint_unhealthy(self):
        server = HTTPServer(make_app(healthy=False))

        async with TestClient(TestServer(server.build_application())) as client:
            resp = await client.get("/health")

            assert resp.status == 503
            data = await resp.json()
            assert data["healthy"] is False
            assert data["components"]["circuit_closed"] is False


class TestStatsAndMetrics:
    @pytest.mark.asyncio
    async def test_stats_endpoint(self):
        server = HTTPServer(make_app())

        async with TestClient(TestServer(server.build_application())) as client:
            resp = await client.get("/stats")

            assert resp.status == 200
            data = await resp.json()
            assert data["rate_limiter"]["total_requests"] == 3

    @pytest.mark.asyncio
    async def test_metrics_endpoint(self):
        server = HTTPServer(make_app())

        async with TestClient(TestServer(server.build_application())) as client:
            resp = await client.get("/metrics")

            assert resp.status == 200
            assert resp.headers["Content-Type"].startswith("text/plain")
            body = await resp.text()
            assert "gp51link_application_running 1.0" in body


class TestConnectionReportEndpoint:
    @pytest.mark.asyncio
    async def test_returns_report(self):
        mock_app = make_app()
        report = build_report(
            RealConnectionResult(
                session_valid=True, api_reachable=True, data_flowing=True, device_count=3
            )
        )
        mock_app.tester.generate_connection_report = AsyncMock(return_value=report)
        server = HTTPServer(mock_app)

        async with TestClient(TestServer(server.build_application())) as client:
            resp = await client.get("/connection-report")

            assert resp.status == 200
            data = await resp.json()
            assert data["summary"] == "Healthy"
            assert data["result"]["device_count"] == 3
            assert isinstance(data["result"]["checked_at"], str)

    @pytest.mark.asyncio
    async def test_tester_unavailable(self):
        mock_app = make_app()
        mock_app.tester = None
        server = HTTPServer(mock_app)

        async with TestClient(TestServer(server.build_application())) as client:
            resp = await client.get("/connection-report")

            assert resp.status == 503


class TestAuthLevelEndpoint:
    @pytest.mark.asyncio
    async def test_reports_levels(self):
        mock_app = make_app()
        mock_app.authenticator.get_current_level.return_value = ServiceLevel.MINIMAL
        mock_app.degradation.get_level.return_value = ServiceLevel.MINIMAL
        server = HTTPServer(mock_app)

        async with TestClient(TestServer(server.build_application())) as client:
            resp = await client.get("/auth/level")

            assert resp.status == 200
            assert await resp.json() == {
                "level": "minimal",
                "gp51_service_level": "minimal",
            }

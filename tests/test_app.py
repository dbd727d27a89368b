"""Tests for the GP51Link application orchestrator."""

import pytest

from gp51link.app import GP51Link
from gp51link.core.config import Settings
from gp51link.reliability.types import ServiceLevel


@pytest.fixture
def config(tmp_path) -> Settings:
    # Nothing listens on port 1, so every remote call fails fast
    return Settings(
        GP51_BASE_URL="http://127.0.0.1:1",
        SUPABASE_URL="http://127.0.0.1:1",
        SUPABASE_SERVICE_KEY="service-role-key",
        OFFLINE_SESSION_DIR=str(tmp_path / "offline"),
        HEALTH_CHECK_INTERVAL=3600.0,
        MIN_REQUEST_INTERVAL=0.0,
    )


class TestConstruction:
    def test_rate_limiter_uses_settings(self, config: Settings) -> None:
        app = GP51Link(config, enable_http=False)

        assert app.rate_limiter.config.min_request_interval == 0.0
        assert app.rate_limiter.config.max_retries == config.MAX_RETRIES

    def test_gp51_service_registered(self, config: Settings) -> None:
        app = GP51Link(config, enable_http=False)

        assert app.degradation.get_level("gp51") == ServiceLevel.FULL

    def test_stats_before_start(self, config: Settings) -> None:
        app = GP51Link(config, enable_http=False)

        stats = app.get_stats()

        assert stats["running"] is False
        assert stats["rate_limiter"]["total_requests"] == 0
        assert stats["services"]["gp51"]["level"] == "full"
        assert stats["connection"] == {}
        assert not app.is_healthy()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, config: Settings) -> None:
        app = GP51Link(config, enable_http=False)

        await app.start()
        try:
            assert app.is_running
            assert app.monitor is not None
            assert app.monitor.is_monitoring
            assert app.tester is not None
            assert app.authenticator is not None
            assert "auth_level" in app.get_stats()
        finally:
            await app.stop()

        assert not app.is_running
        assert app.monitor is not None
        assert not app.monitor.is_monitoring

    @pytest.mark.asyncio
    async def test_start_without_supabase_fails(self, config: Settings) -> None:
        config.SUPABASE_URL = ""
        app = GP51Link(config, enable_http=False)

        with pytest.raises(ValueError):
            await app.start()

        assert not app.is_running

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self, config: Settings) -> None:
        app = GP51Link(config, enable_http=False)

        await app.stop()

        assert not app.is_running

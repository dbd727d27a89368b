"""Tests for FallbackAuthenticator ordering and degradation."""

from unittest.mock import AsyncMock

import pytest

from gp51link.auth.fallback import FallbackAuthenticator
from gp51link.auth.offline import OfflineSessionStore
from gp51link.auth.strategies import Authenticator
from gp51link.auth.types import AuthenticationLevel, AuthResult
from gp51link.exceptions import AuthenticationError, ErrorKind, GP51Error, SupabaseError
from gp51link.reliability.degradation import DegradationTracker
from gp51link.reliability.rate_limiter import RateLimiter
from gp51link.reliability.types import RateLimitConfig, ServiceLevel
from gp51link.session.manager import SessionManager
from gp51link.store.types import AuthUser

USER = AuthUser(id="user-1")


class StubAuthenticator(Authenticator):
    """Succeeds or raises as configured, recording each call."""

    def __init__(self, level: AuthenticationLevel, error: Exception | None = None) -> None:
        self.level = level
        self.name = f"stub-{level}"
        self.error = error
        self.calls = 0

    async def authenticate(self, username: str, password: str) -> AuthResult:
        self.calls += 1
        if self.error is not None:
            raise self.error

        return AuthResult(success=True, level=self.level, user=USER, access_token="jwt")


def chain(*failing_levels: AuthenticationLevel) -> list[StubAuthenticator]:
    return [
        StubAuthenticator(
            level,
            AuthenticationError(f"{level} unavailable") if level in failing_levels else None,
        )
        for level in (
            AuthenticationLevel.FULL,
            AuthenticationLevel.DEGRADED,
            AuthenticationLevel.MINIMAL,
            AuthenticationLevel.OFFLINE,
        )
    ]


@pytest.fixture
def tracker() -> DegradationTracker:
    return DegradationTracker()


class TestAuthenticateWithFallback:
    """Tests for strict ordering and short-circuiting."""

    @pytest.mark.asyncio
    async def test_full_success_skips_other_levels(self, tracker, offline_store) -> None:
        # Arrange
        strategies = chain()
        auth = FallbackAuthenticator(strategies, tracker, offline_store=offline_store)

        # Act
        result = await auth.authenticate_with_fallback("fleet_admin", "secret")

        # Assert
        assert result.success
        assert result.level == AuthenticationLevel.FULL
        assert [s.calls for s in strategies] == [1, 0, 0, 0]
        assert auth.get_current_level() == AuthenticationLevel.FULL
        assert tracker.get_level("gp51") == ServiceLevel.FULL
        assert offline_store.authenticate("fleet_admin", "secret") is not None

    @pytest.mark.asyncio
    async def test_falls_through_to_first_working_level(self, tracker) -> None:
        # Arrange
        strategies = chain(AuthenticationLevel.FULL, AuthenticationLevel.DEGRADED)
        auth = FallbackAuthenticator(strategies, tracker)

        # Act
        result = await auth.authenticate_with_fallback("fleet_admin", "secret")

        # Assert
        assert result.success
        assert result.level == AuthenticationLevel.MINIMAL
        assert [s.calls for s in strategies] == [1, 1, 1, 0]
        assert auth.get_current_level() == AuthenticationLevel.MINIMAL
        assert tracker.get_level("gp51") == ServiceLevel.MINIMAL

    @pytest.mark.asyncio
    async def test_unexpected_errors_fall_through(self, tracker) -> None:
        strategies = chain()
        strategies[0].error = SupabaseError("boom")
        auth = FallbackAuthenticator(strategies, tracker)

        result = await auth.authenticate_with_fallback("fleet_admin", "secret")

        assert result.level == AuthenticationLevel.DEGRADED

    @pytest.mark.asyncio
    async def test_all_levels_fail(self, tracker) -> None:
        # Arrange
        strategies = chain(*AuthenticationLevel)
        auth = FallbackAuthenticator(strategies, tracker)

        # Act
        result = await auth.authenticate_with_fallback("fleet_admin", "secret")

        # Assert
        assert not result.success
        assert result.level == AuthenticationLevel.OFFLINE
        assert result.error
        assert [s.calls for s in strategies] == [1, 1, 1, 1]
        assert auth.get_current_level() == AuthenticationLevel.OFFLINE
        assert tracker.get_level("gp51") == ServiceLevel.OFFLINE

    @pytest.mark.asyncio
    async def test_full_success_resets_degraded_service(self, tracker) -> None:
        tracker.register_service("gp51")
        tracker.degrade_service("gp51", ServiceLevel.MINIMAL)
        auth = FallbackAuthenticator(chain(), tracker)

        await auth.authenticate_with_fallback("fleet_admin", "secret")

        assert tracker.get_level("gp51") == ServiceLevel.FULL

    def test_requires_strategies(self, tracker) -> None:
        with pytest.raises(ValueError):
            FallbackAuthenticator([], tracker)

    def test_registers_gp51_service(self, tracker) -> None:
        FallbackAuthenticator(chain(), tracker)

        assert tracker.is_registered("gp51")


class TestOfflineSessions:
    def test_store_and_clear(self, tracker, offline_store) -> None:
        auth = FallbackAuthenticator(chain(), tracker, offline_store=offline_store)

        auth.store_offline_session("fleet_admin", "secret", USER, "jwt")
        assert offline_store.authenticate("fleet_admin", "secret") is not None

        auth.clear_offline_session("fleet_admin")
        assert offline_store.load("fleet_admin") is None

    def test_without_offline_store_is_noop(self, tracker) -> None:
        auth = FallbackAuthenticator(chain(), tracker)

        auth.store_offline_session("fleet_admin", "secret", USER, "jwt")
        auth.clear_offline_session("fleet_admin")


class TestCheckGP51Health:
    @pytest.mark.asyncio
    async def test_reports_connected(self, tracker, mock_store) -> None:
        mock_store.invoke_function.return_value = {"connected": True}
        auth = FallbackAuthenticator(chain(), tracker, store=mock_store)

        assert await auth.check_gp51_health() is True
        mock_store.invoke_function.assert_awaited_once_with(
            "settings-management", {"action": "get-gp51-status"}
        )

    @pytest.mark.asyncio
    async def test_function_failure_is_unhealthy(self, tracker, mock_store) -> None:
        mock_store.invoke_function.side_effect = SupabaseError("not found", status=404)
        auth = FallbackAuthenticator(chain(), tracker, store=mock_store)

        assert await auth.check_gp51_health() is False

    @pytest.mark.asyncio
    async def test_without_store_is_unhealthy(self, tracker) -> None:
        auth = FallbackAuthenticator(chain(), tracker)

        assert await auth.check_gp51_health() is False


class TestDefaultStrategies:
    def test_order(self, tracker, mock_client, mock_store, tmp_path) -> None:
        auth = FallbackAuthenticator.with_default_strategies(
            mock_client,
            mock_store,
            AsyncMock(),
            AsyncMock(),
            tracker,
            OfflineSessionStore(tmp_path),
        )

        assert [s.level for s in auth.strategies] == [
            AuthenticationLevel.FULL,
            AuthenticationLevel.DEGRADED,
            AuthenticationLevel.MINIMAL,
            AuthenticationLevel.OFFLINE,
        ]


class TestWrongPassword:
    """A wrong password must fail every tier, whatever is cached."""

    @pytest.mark.asyncio
    async def test_wrong_password_fails_all_levels(
        self, tracker, mock_client, mock_store, offline_store, valid_session
    ) -> None:
        # Arrange
        offline_store.store("fleet_admin", "secret", USER, "jwt")
        mock_client.login.side_effect = GP51Error("password error", kind=ErrorKind.REJECTED)
        mock_store.sign_in_with_password.side_effect = SupabaseError("invalid login", status=400)
        mock_store.find_cached_session.return_value = valid_session
        limiter = RateLimiter(RateLimitConfig(min_request_interval=0.0))
        auth = FallbackAuthenticator.with_default_strategies(
            mock_client,
            mock_store,
            AsyncMock(spec=SessionManager),
            limiter,
            tracker,
            offline_store,
        )

        # Act
        result = await auth.authenticate_with_fallback("fleet_admin", "WRONG-PASSWORD")

        # Assert
        assert not result.success
        assert result.level == AuthenticationLevel.OFFLINE
        assert result.token is None
        mock_client.login.assert_awaited_once()
        mock_store.find_cached_session.assert_not_awaited()
        assert not limiter.is_circuit_open

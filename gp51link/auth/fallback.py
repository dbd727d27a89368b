"""Multi-level authentication with graceful degradation."""

from collections.abc import Sequence

import structlog

from gp51link.auth.offline import OfflineSessionStore
from gp51link.auth.strategies import (
    Authenticator,
    CachedSessionAuthenticator,
    DirectGP51Authenticator,
    LocalPasswordAuthenticator,
    OfflineSessionAuthenticator,
)
from gp51link.auth.types import AuthenticationLevel, AuthResult
from gp51link.core.logging import Logger
from gp51link.exceptions import AuthenticationError, SupabaseError
from gp51link.gp51.client import GP51Client
from gp51link.monitoring.health import GP51_SERVICE
from gp51link.reliability.degradation import DegradationTracker
from gp51link.reliability.rate_limiter import RateLimiter
from gp51link.session.manager import SessionManager
from gp51link.store.supabase import SupabaseStore
from gp51link.store.types import AuthUser

logger: Logger = structlog.getLogger(__name__)

NO_METHOD_AVAILABLE = (
    "No valid authentication method available. System is operating in offline mode."
)


class FallbackAuthenticator:
    """
    Tries each strategy in order and stops at the first success.

    Order (best first): direct GP51 -> cached GP51 session -> local password
    -> offline session. Every failed tier lowers the gp51 service one level in
    the shared DegradationTracker before the next tier is tried.
    """

    __slots__ = ("_strategies", "_degradation", "_offline_store", "_store", "_current_level")

    def __init__(
        self,
        strategies: Sequence[Authenticator],
        degradation: DegradationTracker,
        offline_store: OfflineSessionStore | None = None,
        store: SupabaseStore | None = None,
    ) -> None:
        if not strategies:
            raise ValueError("At least one authentication strategy is required")

        self._strategies = list(strategies)
        self._degradation = degradation
        self._offline_store = offline_store
        self._store = store
        self._current_level = AuthenticationLevel.FULL

        if not degradation.is_registered(GP51_SERVICE):
            degradation.register_service(GP51_SERVICE)

    @classmethod
    def with_default_strategies(
        cls,
        client: GP51Client,
        store: SupabaseStore,
        sessions: SessionManager,
        rate_limiter: RateLimiter,
        degradation: DegradationTracker,
        offline_store: OfflineSessionStore,
    ) -> "FallbackAuthenticator":
        return cls(
            [
                DirectGP51Authenticator(client, store, sessions, rate_limiter),
                CachedSessionAuthenticator(store),
                LocalPasswordAuthenticator(store),
                OfflineSessionAuthenticator(offline_store),
            ],
            degradation,
            offline_store=offline_store,
            store=store,
        )

    @property
    def strategies(self) -> list[Authenticator]:
        return list(self._strategies)

    def get_current_level(self) -> AuthenticationLevel:
        return self._current_level

    async def authenticate_with_fallback(self, username: str, password: str) -> AuthResult:
        logger.info(f"Authenticating {username} with fallback strategy")
        last_error = NO_METHOD_AVAILABLE

        for strategy in self._strategies:
            try:
                result = await strategy.authenticate(username, password)

            except AuthenticationError as e:
                last_error = str(e)
                logger.warning(f"{strategy.name} authentication failed: {e}")

            except Exception as e:
                last_error = str(e)
                logger.exception(f"{strategy.name} authentication raised: {e}")

            else:
                self._on_success(strategy, username, password, result)
                return result

            self._degradation.degrade_service(GP51_SERVICE, strategy.level.step_down())

        self._current_level = AuthenticationLevel.OFFLINE
        logger.error(f"All authentication levels failed for {username}")
        return AuthResult(
            success=False,
            level=AuthenticationLevel.OFFLINE,
            error=last_error,
        )

    async def check_gp51_health(self) -> bool:
        """Ask the settings-management function whether GP51 is connected."""
        if self._store is None:
            return False

        try:
            data = await self._store.invoke_function(
                "settings-management", {"action": "get-gp51-status"}
            )
        except SupabaseError as e:
            logger.warning(f"GP51 status lookup failed: {e}")
            return False

        return bool(data.get("connected"))

    def store_offline_session(
        self,
        username: str,
        password: str,
        user: AuthUser | None,
        access_token: str | None,
    ) -> None:
        if self._offline_store is not None:
            self._offline_store.store(username, password, user, access_token)

    def clear_offline_session(self, username: str) -> None:
        if self._offline_store is not None:
            self._offline_store.clear(username)

    def _on_success(
        self, strategy: Authenticator, username: str, password: str, result: AuthResult
    ) -> None:
        self._current_level = strategy.level
        logger.info(f"Authenticated {username} at level {strategy.level} via {strategy.name}")

        if strategy.level == AuthenticationLevel.FULL:
            self._degradation.reset_service(GP51_SERVICE)

            # Keep a copy for offline use while GP51 and Supabase are unreachable
            if result.user is not None:
                self.store_offline_session(username, password, result.user, result.access_token)

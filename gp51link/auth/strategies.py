"""Authentication strategies, one per fallback level."""

from abc import ABC, abstractmethod

import structlog

from gp51link.auth.offline import OfflineSessionStore
from gp51link.auth.types import AuthenticationLevel, AuthResult, gp51_email
from gp51link.core.logging import Logger
from gp51link.exceptions import AuthenticationError, GP51Error, SupabaseError
from gp51link.gp51.client import GP51Client
from gp51link.reliability.rate_limiter import RateLimiter
from gp51link.session.manager import SessionManager, parse_token
from gp51link.store.supabase import SupabaseStore
from gp51link.store.types import AuthSession

logger: Logger = structlog.getLogger(__name__)


class Authenticator(ABC):
    """One authentication tier. Raises AuthenticationError when it cannot authenticate."""

    level: AuthenticationLevel
    name: str

    @abstractmethod
    async def authenticate(self, username: str, password: str) -> AuthResult: ...


class DirectGP51Authenticator(Authenticator):
    """GP51 login, then Supabase sign-in (or sign-up for first-time users)."""

    level = AuthenticationLevel.FULL
    name = "gp51-direct"

    def __init__(
        self,
        client: GP51Client,
        store: SupabaseStore,
        sessions: SessionManager,
        rate_limiter: RateLimiter,
    ) -> None:
        self._client = client
        self._store = store
        self._sessions = sessions
        self._rate_limiter = rate_limiter

    async def authenticate(self, username: str, password: str) -> AuthResult:
        try:
            token = await self._rate_limiter.execute_with_retry(
                lambda: self._client.login(username, password),
                "gp51 login",
            )
        except GP51Error as e:
            raise AuthenticationError(f"GP51 authentication failed: {e}") from e

        auth = await self._sign_in_or_up(username, password)
        user_id = auth.user.id if auth.user else None

        try:
            await self._sessions.store_session(username, token, envio_user_id=user_id)
        except SupabaseError as e:
            logger.warning(f"Could not store GP51 session for {username}: {e}")

        return AuthResult(
            success=True,
            level=self.level,
            user=auth.user,
            token=token,
            access_token=auth.access_token,
        )

    async def _sign_in_or_up(self, username: str, password: str) -> AuthSession:
        email = gp51_email(username)

        try:
            return await self._store.sign_in_with_password(email, password)
        except SupabaseError:
            logger.info(f"No Supabase account for {username}, creating one")

        try:
            return await self._store.sign_up(
                email,
                password,
                {"full_name": username, "gp51_username": username},
            )
        except SupabaseError as e:
            raise AuthenticationError("Failed to create user account") from e


class CachedSessionAuthenticator(Authenticator):
    """Reuse a non-expired GP51 session stored for this user.

    The password is checked against Supabase first, so a stored GP51 token
    is only handed to someone who can sign in as that user.
    """

    level = AuthenticationLevel.DEGRADED
    name = "gp51-cached-session"

    def __init__(self, store: SupabaseStore) -> None:
        self._store = store

    async def authenticate(self, username: str, password: str) -> AuthResult:
        try:
            auth = await self._store.sign_in_with_password(gp51_email(username), password)
        except SupabaseError as e:
            raise AuthenticationError("Supabase authentication failed") from e

        try:
            session = await self._store.find_cached_session(username)
        except SupabaseError as e:
            raise AuthenticationError(f"Cached session lookup failed: {e}") from e

        if session is None or not session.is_valid:
            raise AuthenticationError("No valid cached GP51 session found")

        check = parse_token(session.gp51_token)
        if not check.is_valid:
            raise AuthenticationError(f"Cached GP51 session unusable: {check.error}")

        return AuthResult(
            success=True,
            level=self.level,
            user=auth.user,
            token=check.token,
            access_token=auth.access_token,
        )


class LocalPasswordAuthenticator(Authenticator):
    """Supabase password sign-in without GP51."""

    level = AuthenticationLevel.MINIMAL
    name = "local-password"

    def __init__(self, store: SupabaseStore) -> None:
        self._store = store

    async def authenticate(self, username: str, password: str) -> AuthResult:
        try:
            auth = await self._store.sign_in_with_password(gp51_email(username), password)
        except SupabaseError as e:
            raise AuthenticationError("Supabase authentication failed") from e

        return AuthResult(
            success=True,
            level=self.level,
            user=auth.user,
            access_token=auth.access_token,
        )


class OfflineSessionAuthenticator(Authenticator):
    """Last resort: a locally cached session from an earlier login with the same password."""

    level = AuthenticationLevel.OFFLINE
    name = "offline-session"

    def __init__(self, offline_store: OfflineSessionStore) -> None:
        self._offline_store = offline_store

    async def authenticate(self, username: str, password: str) -> AuthResult:
        session = self._offline_store.authenticate(username, password)
        if session is None:
            raise AuthenticationError(
                "No valid authentication method available. "
                "System is operating in offline mode."
            )

        return AuthResult(
            success=True,
            level=self.level,
            user=session.user,
            access_token=session.access_token,
        )

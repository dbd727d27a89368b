"""File-backed cache of offline sessions, one JSON file per user."""

import re
from datetime import timedelta
from pathlib import Path

import msgspec
import structlog
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from gp51link.auth.types import OFFLINE_SESSION_TTL, OfflineSession
from gp51link.core.logging import Logger
from gp51link.store.types import AuthUser, utc_now

logger: Logger = structlog.getLogger(__name__)

_decoder = msgspec.json.Decoder(OfflineSession)
_unsafe_chars = re.compile(r"[^A-Za-z0-9_.@-]")


class OfflineSessionStore:
    """
    Sessions saved after a full-level login, for use while GP51 and Supabase
    are both unreachable.

    Files live on the server, so each one holds an argon2id hash of the
    password and a session is only returned to a caller who knows it.
    """

    __slots__ = ("_directory", "_hasher")

    def __init__(self, directory: str | Path, hasher: PasswordHasher | None = None) -> None:
        self._directory = Path(directory)
        self._hasher = hasher or PasswordHasher()

    def store(
        self,
        username: str,
        password: str,
        user: AuthUser | None,
        access_token: str | None,
        ttl: timedelta = OFFLINE_SESSION_TTL,
    ) -> OfflineSession:
        session = OfflineSession(
            username=username,
            password_hash=self._hasher.hash(password),
            user=user,
            access_token=access_token,
            expires_at=utc_now() + ttl,
        )

        self._directory.mkdir(parents=True, exist_ok=True)
        self._path(username).write_bytes(msgspec.json.encode(session))
        logger.debug(f"Stored offline session for {username}")
        return session

    def load(self, username: str) -> OfflineSession | None:
        """Stored session for username, or None if missing, expired or corrupt."""
        path = self._path(username)

        try:
            session = _decoder.decode(path.read_bytes())
        except FileNotFoundError:
            return None
        except msgspec.DecodeError:
            logger.warning(f"Invalid offline session data for {username}")
            return None

        if not session.is_valid:
            logger.info(f"Offline session for {username} expired")
            return None

        return session

    def authenticate(self, username: str, password: str) -> OfflineSession | None:
        """Stored session for username if password matches the one it was saved with."""
        session = self.load(username)
        if session is None:
            return None

        try:
            self._hasher.verify(session.password_hash, password)
        except (VerificationError, InvalidHashError):
            logger.warning(f"Offline session password mismatch for {username}")
            return None

        return session

    def clear(self, username: str) -> None:
        self._path(username).unlink(missing_ok=True)

    def _path(self, username: str) -> Path:
        return self._directory / f"offline_session_{_unsafe_chars.sub('_', username)}.json"

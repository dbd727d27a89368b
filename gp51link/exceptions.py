"""Exception types shared across gp51link."""

from enum import StrEnum
from typing import Final


class ErrorKind(StrEnum):
    """Structured failure category assigned by the HTTP layer."""

    RATE_LIMITED = "rate_limited"
    AUTH_EXPIRED = "auth_expired"
    REJECTED = "rejected"  # credentials refused at login
    NETWORK = "network"
    UNKNOWN = "unknown"


# Repeating the same request can only help for these
RETRYABLE_KINDS: Final[frozenset[ErrorKind]] = frozenset(
    {ErrorKind.RATE_LIMITED, ErrorKind.NETWORK, ErrorKind.UNKNOWN}
)


class GP51Error(Exception):
    """Failure talking to the GP51 web API."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        status: int | None = None,
        cause: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.cause = cause

    @property
    def is_rate_limited(self) -> bool:
        return self.kind == ErrorKind.RATE_LIMITED

    @property
    def is_auth_error(self) -> bool:
        return self.kind in (ErrorKind.AUTH_EXPIRED, ErrorKind.REJECTED)


class SupabaseError(Exception):
    """Failure talking to the Supabase REST, auth or functions endpoints."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class AuthenticationError(Exception):
    """A single authentication strategy could not authenticate the user."""


class SessionUnavailable(Exception):
    """No usable GP51 session exists and none could be refreshed."""


def error_kind_of(error: BaseException) -> ErrorKind:
    """Return the ErrorKind of an error, UNKNOWN for anything not from GP51."""
    if isinstance(error, GP51Error):
        return error.kind

    return ErrorKind.UNKNOWN


def is_retryable(error: BaseException) -> bool:
    return error_kind_of(error) in RETRYABLE_KINDS

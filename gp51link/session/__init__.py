"""GP51 session lifecycle."""

from gp51link.session.manager import (
    SESSION_TTL,
    SessionHealthReport,
    SessionManager,
    TokenCheck,
    parse_token,
)

__all__ = [
    "SESSION_TTL",
    "SessionHealthReport",
    "SessionManager",
    "TokenCheck",
    "parse_token",
]

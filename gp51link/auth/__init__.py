"""Fallback authentication against GP51 and Supabase."""

from gp51link.auth.fallback import FallbackAuthenticator
from gp51link.auth.offline import OfflineSessionStore
from gp51link.auth.strategies import (
    Authenticator,
    CachedSessionAuthenticator,
    DirectGP51Authenticator,
    LocalPasswordAuthenticator,
    OfflineSessionAuthenticator,
)
from gp51link.auth.types import AuthenticationLevel, AuthResult, OfflineSession

__all__ = [
    "FallbackAuthenticator",
    "OfflineSessionStore",
    "Authenticator",
    "CachedSessionAuthenticator",
    "DirectGP51Authenticator",
    "LocalPasswordAuthenticator",
    "OfflineSessionAuthenticator",
    "AuthenticationLevel",
    "AuthResult",
    "OfflineSession",
]

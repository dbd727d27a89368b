"""Type definitions for connection health monitoring and testing."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Final

from gp51link.store.types import utc_now

DEFAULT_CHECK_INTERVAL: Final[float] = 60.0
SLOW_RESPONSE_THRESHOLD_MS: Final[int] = 2000  # slower than this is "degraded"
RESULT_CACHE_TTL: Final[float] = 30.0  # seconds a connection test result is reused
MAX_CONSECUTIVE_FAILURES: Final[int] = 3  # failed checks in a row before health is critical


class HealthState(StrEnum):
    CONNECTED = "connected"
    CONNECTING = "connecting"
    DEGRADED = "degraded"
    DISCONNECTED = "disconnected"
    AUTH_ERROR = "auth_error"


class HealthRating(StrEnum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


class ReportSummary(StrEnum):
    HEALTHY = "Healthy"
    DEGRADED = "Degraded"
    CRITICAL = "Critical"


@dataclass(slots=True, frozen=True)
class SessionInfo:
    username: str
    expires_at: datetime
    is_valid: bool


@dataclass(slots=True, frozen=True)
class ConnectionHealthStatus:
    """Result of one health check, broadcast to subscribers"""

    status: HealthState
    last_check: datetime | None = None
    latency: int | None = None  # milliseconds
    error_message: str | None = None
    session_info: SessionInfo | None = None
    consecutive_failures: int = 0
    last_successful_check: datetime | None = None

    @property
    def is_connected(self) -> bool:
        return self.status in (HealthState.CONNECTED, HealthState.DEGRADED)


HealthCallback = Callable[[ConnectionHealthStatus], None]


@dataclass(slots=True, frozen=True)
class ConnectionHealth:
    """Operator-facing reading of the latest check"""

    rating: HealthRating
    message: str
    recommendations: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RealConnectionResult:
    """Outcome of the session / API / data-flow pipeline"""

    session_valid: bool = False
    api_reachable: bool = False
    data_flowing: bool = False
    latency: int = 0  # milliseconds, whole pipeline
    error_message: str | None = None
    device_count: int = 0
    checked_at: datetime = field(default_factory=utc_now)

    @property
    def is_healthy(self) -> bool:
        return self.session_valid and self.api_reachable and self.data_flowing


@dataclass(slots=True)
class ConnectionReport:
    summary: ReportSummary
    details: str
    suggestions: list[str]
    result: RealConnectionResult

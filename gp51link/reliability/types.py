"""Type definitions for rate limiting and service degradation."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Final, Generic, TypeVar

if TYPE_CHECKING:
    from gp51link.core.config import Settings

ItemT = TypeVar("ItemT")
ResultT = TypeVar("ResultT")

Operation = Callable[[], Awaitable[ResultT]]

# Fixed cool-down once the circuit breaker opens
CIRCUIT_COOLDOWN: Final[float] = 60.0


class ServiceLevel(StrEnum):
    """Degradation level, best first"""

    FULL = "full"
    DEGRADED = "degraded"
    MINIMAL = "minimal"
    OFFLINE = "offline"

    def step_down(self) -> "ServiceLevel":
        """Next level down; OFFLINE stays OFFLINE."""
        index = SERVICE_LEVEL_ORDER.index(self)
        return SERVICE_LEVEL_ORDER[min(index + 1, len(SERVICE_LEVEL_ORDER) - 1)]

    def step_up(self) -> "ServiceLevel":
        """Next level up; FULL stays FULL."""
        index = SERVICE_LEVEL_ORDER.index(self)
        return SERVICE_LEVEL_ORDER[max(index - 1, 0)]


SERVICE_LEVEL_ORDER: Final[tuple[ServiceLevel, ...]] = (
    ServiceLevel.FULL,
    ServiceLevel.DEGRADED,
    ServiceLevel.MINIMAL,
    ServiceLevel.OFFLINE,
)


@dataclass(slots=True)
class RateLimitConfig:
    min_request_interval: float = 1.0  # seconds between outbound calls
    max_retries: int = 3  # total attempts per operation
    base_delay: float = 3.0
    backoff_multiplier: float = 1.5
    max_delay: float = 30.0
    circuit_breaker_threshold: int = 5  # consecutive failures
    batch_size: int = 5
    batch_delay: float = 2.0  # pause between batches

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.circuit_breaker_threshold < 1:
            raise ValueError("circuit_breaker_threshold must be at least 1")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RateLimitConfig":
        return cls(
            min_request_interval=settings.MIN_REQUEST_INTERVAL,
            max_retries=settings.MAX_RETRIES,
            base_delay=settings.BASE_DELAY,
            backoff_multiplier=settings.BACKOFF_MULTIPLIER,
            max_delay=settings.MAX_DELAY,
            circuit_breaker_threshold=settings.CIRCUIT_BREAKER_THRESHOLD,
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay after failed attempt number `attempt` (0-based)."""
        return min(self.base_delay * self.backoff_multiplier**attempt, self.max_delay)


@dataclass(slots=True)
class BatchError(Generic[ItemT]):
    item: ItemT
    error: Exception


@dataclass(slots=True)
class BatchResult(Generic[ItemT, ResultT]):
    """Outcome of process_batch: successes and failures, never raised"""

    results: list[ResultT] = field(default_factory=list)
    errors: list[BatchError[ItemT]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results) + len(self.errors)


@dataclass(slots=True)
class ServiceStatus:
    name: str
    level: ServiceLevel
    is_healthy: bool
    consecutive_failures: int
    fallback_active: bool
    last_error: str | None = None
    last_success_time: float | None = None  # unix seconds


@dataclass(slots=True)
class DegradationFallbacks(Generic[ResultT]):
    degraded: Operation[ResultT] | None = None
    minimal: Operation[ResultT] | None = None
    offline: Callable[[], ResultT] | None = None

    def for_level(self, level: ServiceLevel) -> Callable[[], Any] | None:
        match level:
            case ServiceLevel.DEGRADED:
                return self.degraded
            case ServiceLevel.MINIMAL:
                return self.minimal
            case ServiceLevel.OFFLINE:
                return self.offline
            case _:
                return None

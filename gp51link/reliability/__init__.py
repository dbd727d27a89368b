"""Rate limiting, circuit breaking and degradation tracking."""

from gp51link.reliability.degradation import DegradationTracker
from gp51link.reliability.rate_limiter import RateLimiter
from gp51link.reliability.stats import RateLimitStats
from gp51link.reliability.types import (
    CIRCUIT_COOLDOWN,
    BatchError,
    BatchResult,
    DegradationFallbacks,
    RateLimitConfig,
    ServiceLevel,
    ServiceStatus,
)

__all__ = [
    "DegradationTracker",
    "RateLimiter",
    "RateLimitStats",
    "CIRCUIT_COOLDOWN",
    "BatchError",
    "BatchResult",
    "DegradationFallbacks",
    "RateLimitConfig",
    "ServiceLevel",
    "ServiceStatus",
]

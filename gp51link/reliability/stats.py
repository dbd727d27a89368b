import time
from dataclasses import dataclass, field

from gp51link.reliability.types import CIRCUIT_COOLDOWN


@dataclass(slots=True)
class RateLimitStats:
    """Outbound GP51 call counters, process lifetime only"""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rate_limited_requests: int = 0
    circuit_open: bool = False
    consecutive_failures: int = 0
    circuit_opened_at: float = 0.0  # monotonic time
    created_at: float = field(default_factory=time.monotonic)

    @property
    def success_rate(self) -> float:
        """Fraction of attempts that succeeded"""
        if self.total_requests > 0:
            return self.successful_requests / self.total_requests

        return 0.0

    @property
    def circuit_remaining(self) -> float:
        """Seconds of cool-down left; 0 when closed or elapsed"""
        if not self.circuit_open:
            return 0.0

        return max(0.0, CIRCUIT_COOLDOWN - (time.monotonic() - self.circuit_opened_at))

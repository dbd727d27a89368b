"""Connection health monitoring and end-to-end connection testing."""

from gp51link.monitoring.health import ConnectionHealthMonitor, assess_health
from gp51link.monitoring.tester import RealConnectionTester
from gp51link.monitoring.types import (
    ConnectionHealth,
    ConnectionHealthStatus,
    ConnectionReport,
    HealthRating,
    HealthState,
    RealConnectionResult,
    ReportSummary,
    SessionInfo,
)

__all__ = [
    "ConnectionHealthMonitor",
    "assess_health",
    "RealConnectionTester",
    "ConnectionHealth",
    "ConnectionHealthStatus",
    "ConnectionReport",
    "HealthRating",
    "HealthState",
    "RealConnectionResult",
    "ReportSummary",
    "SessionInfo",
]

"""Prometheus metrics collector for gp51link application stats.

Metrics are rebuilt from app.get_stats() on every scrape, so counters
restart from zero together with the process.

Example PromQL queries:
- GP51 success rate: gp51link_rate_limiter_success_rate
- Services not at full capability: gp51link_service_level{level!="full"} == 1
"""

from typing import TYPE_CHECKING, Any

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

from gp51link.monitoring.types import HealthState
from gp51link.reliability.types import SERVICE_LEVEL_ORDER

if TYPE_CHECKING:
    from gp51link.app import GP51Link


class MetricsCollector:
    """
    Collects application statistics and exposes them as Prometheus metrics.

    Generates fresh metrics on each collection by calling app.get_stats()
    and transforming the results into Prometheus format.
    """

    def __init__(self, app: "GP51Link") -> None:
        self._app = app

    def collect_metrics(self) -> bytes:
        """
        Collect current stats and return Prometheus text format.

        Returns:
            Prometheus text exposition format bytes
        """
        registry = CollectorRegistry()
        stats = self._app.get_stats()

        self._collect_application_metrics(registry, stats)
        self._collect_rate_limiter_metrics(registry, stats)
        self._collect_service_metrics(registry, stats)
        self._collect_connection_metrics(registry, stats)

        return generate_latest(registry)

    def _collect_application_metrics(
        self, registry: CollectorRegistry, stats: dict[str, Any]
    ) -> None:
        running = Gauge(
            "gp51link_application_running",
            "Whether the application is running (1) or stopped (0)",
            registry=registry,
        )
        running.set(1 if stats.get("running") else 0)

    def _collect_rate_limiter_metrics(
        self, registry: CollectorRegistry, stats: dict[str, Any]
    ) -> None:
        """Collect GP51 request counters and circuit breaker state."""
        limiter_stats = stats.get("rate_limiter", {})
        if not limiter_stats:
            return

        requests = Counter(
            "gp51link_gp51_requests",
            "GP51 request attempts by outcome",
            ["outcome"],
            registry=registry,
        )
        requests.labels(outcome="success").inc(limiter_stats.get("successful_requests", 0))
        requests.labels(outcome="failure").inc(limiter_stats.get("failed_requests", 0))
        requests.labels(outcome="rate_limited").inc(
            limiter_stats.get("rate_limited_requests", 0)
        )

        success_rate = Gauge(
            "gp51link_rate_limiter_success_rate",
            "Fraction of GP51 request attempts that succeeded",
            registry=registry,
        )
        success_rate.set(limiter_stats.get("success_rate", 0.0))

        consecutive = Gauge(
            "gp51link_rate_limiter_consecutive_failures",
            "Consecutive failed GP51 request attempts",
            registry=registry,
        )
        consecutive.set(limiter_stats.get("consecutive_failures", 0))

        circuit_open = Gauge(
            "gp51link_circuit_breaker_open",
            "Whether the GP51 circuit breaker is open (1) or closed (0)",
            registry=registry,
        )
        circuit_open.set(1 if limiter_stats.get("circuit_open") else 0)

        remaining = Gauge(
            "gp51link_circuit_breaker_remaining_seconds",
            "Seconds left before the open circuit allows a new attempt",
            registry=registry,
        )
        remaining.set(limiter_stats.get("circuit_remaining", 0.0))

    def _collect_service_metrics(
        self, registry: CollectorRegistry, stats: dict[str, Any]
    ) -> None:
        """Collect per-service degradation level with service labels."""
        services = stats.get("services", {})
        if not services:
            return

        level = Gauge(
            "gp51link_service_level",
            "Current capability level of a service (1 for the active level)",
            ["service", "level"],
            registry=registry,
        )
        failures = Gauge(
            "gp51link_service_consecutive_failures",
            "Consecutive failures reported for a service",
            ["service"],
            registry=registry,
        )

        for name, service in services.items():
            current = service.get("level")
            for candidate in SERVICE_LEVEL_ORDER:
                level.labels(service=name, level=str(candidate)).set(
                    1 if current == candidate else 0
                )
            failures.labels(service=name).set(service.get("consecutive_failures", 0))

    def _collect_connection_metrics(
        self, registry: CollectorRegistry, stats: dict[str, Any]
    ) -> None:
        """Collect the latest GP51 health check outcome."""
        connection = stats.get("connection", {})
        if not connection:
            return

        state = Gauge(
            "gp51link_connection_status",
            "Latest GP51 health check status (1 for the current status)",
            ["status"],
            registry=registry,
        )
        current = connection.get("status")
        for candidate in HealthState:
            state.labels(status=str(candidate)).set(1 if current == candidate else 0)

        latency = connection.get("latency_ms")
        if latency is not None:
            latency_gauge = Gauge(
                "gp51link_connection_latency_milliseconds",
                "Round-trip time of the latest GP51 health check",
                registry=registry,
            )
            latency_gauge.set(latency)

        failures = Gauge(
            "gp51link_connection_consecutive_failures",
            "GP51 health checks failed in a row",
            registry=registry,
        )
        failures.set(connection.get("consecutive_failures", 0))

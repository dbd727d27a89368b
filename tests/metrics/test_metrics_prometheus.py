"""Tests for Prometheus metrics collection."""

import pytest
from prometheus_client.parser import text_string_to_metric_families

from gp51link.metrics.prometheus import MetricsCollector


@pytest.fixture
def mock_stats() -> dict:
    """Mock stats dictionary matching GP51Link.get_stats() structure."""
    return {
        "running": True,
        "rate_limiter": {
            "total_requests": 12,
            "successful_requests": 8,
            "failed_requests": 4,
            "rate_limited_requests": 2,
            "consecutive_failures": 1,
            "circuit_open": False,
            "circuit_remaining": 0.0,
            "success_rate": 8 / 12,
        },
        "services": {
            "gp51": {
                "level": "degraded",
                "is_healthy": False,
                "consecutive_failures": 1,
                "fallback_active": True,
                "last_error": "timed out",
            },
        },
        "connection": {
            "status": "connected",
            "latency_ms": 240,
            "last_check": "2026-01-01T00:00:00+00:00",
            "error_message": None,
            "consecutive_failures": 0,
            "last_successful_check": "2026-01-01T00:00:00+00:00",
            "health": "healthy",
            "recommendations": [],
            "monitoring": True,
        },
    }


class MockApp:
    def __init__(self, stats: dict) -> None:
        self._stats = stats

    def get_stats(self) -> dict:
        return self._stats


def collect(stats: dict) -> str:
    return MetricsCollector(MockApp(stats)).collect_metrics().decode("utf-8")


class TestMetricsCollector:
    """Test MetricsCollector class."""

    def test_collect_metrics_returns_bytes(self, mock_stats):
        result = MetricsCollector(MockApp(mock_stats)).collect_metrics()

        assert isinstance(result, bytes)
        assert len(result) > 0

    def test_metrics_are_valid_prometheus_format(self, mock_stats):
        families = list(text_string_to_metric_families(collect(mock_stats)))

        # Note: prometheus_client parser strips _total suffix from counters
        metric_names = {family.name for family in families}
        assert "gp51link_application_running" in metric_names
        assert "gp51link_gp51_requests" in metric_names
        assert "gp51link_circuit_breaker_open" in metric_names
        assert "gp51link_service_level" in metric_names
        assert "gp51link_connection_status" in metric_names

    def test_application_running_metric(self, mock_stats):
        assert "gp51link_application_running 1.0" in collect(mock_stats)

    def test_request_counters(self, mock_stats):
        metrics_text = collect(mock_stats)

        assert 'gp51link_gp51_requests_total{outcome="success"} 8.0' in metrics_text
        assert 'gp51link_gp51_requests_total{outcome="failure"} 4.0' in metrics_text
        assert 'gp51link_gp51_requests_total{outcome="rate_limited"} 2.0' in metrics_text

    def test_circuit_breaker_closed(self, mock_stats):
        assert "gp51link_circuit_breaker_open 0.0" in collect(mock_stats)

    def test_service_level_one_hot(self, mock_stats):
        metrics_text = collect(mock_stats)

        assert 'gp51link_service_level{service="gp51",level="degraded"} 1.0' in metrics_text
        assert 'gp51link_service_level{service="gp51",level="full"} 0.0' in metrics_text

    def test_connection_metrics(self, mock_stats):
        metrics_text = collect(mock_stats)

        assert 'gp51link_connection_status{status="connected"} 1.0' in metrics_text
        assert 'gp51link_connection_status{status="auth_error"} 0.0' in metrics_text
        assert "gp51link_connection_latency_milliseconds 240.0" in metrics_text
        assert "gp51link_connection_consecutive_failures 0.0" in metrics_text

    def test_missing_sections_are_skipped(self):
        metrics_text = collect({"running": False})

        assert "gp51link_application_running 0.0" in metrics_text
        assert "gp51link_gp51_requests" not in metrics_text
        assert "gp51link_connection_status" not in metrics_text

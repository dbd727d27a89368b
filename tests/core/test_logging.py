"""Tests for per-check correlation context."""

import structlog

from gp51link.core.logging import bind_check_context, clear_check_context


class TestCheckContext:
    def test_bind_sets_check_and_correlation_id(self) -> None:
        correlation_id = bind_check_context("health")

        try:
            context = structlog.contextvars.get_contextvars()
            assert context["check"] == "health"
            assert context["correlation_id"] == correlation_id
        finally:
            clear_check_context()

    def test_each_check_gets_a_new_id(self) -> None:
        first = bind_check_context("health")
        second = bind_check_context("connection")
        clear_check_context()

        assert first != second

    def test_clear_removes_check_keys(self) -> None:
        bind_check_context("health")

        clear_check_context()

        context = structlog.contextvars.get_contextvars()
        assert "check" not in context
        assert "correlation_id" not in context

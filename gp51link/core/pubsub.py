"""Replay-one status broadcasting."""

from collections.abc import Callable
from typing import Generic, TypeVar

import structlog

from gp51link.core.logging import Logger

logger: Logger = structlog.getLogger(__name__)

EventT = TypeVar("EventT")

StatusCallback = Callable[[EventT], None]
Unsubscribe = Callable[[], None]


class StatusBroadcaster(Generic[EventT]):
    """
    Delivers typed status events to subscribers synchronously.

    A new subscriber immediately receives the latest event (if any), then
    every later one. A subscriber that raises is logged and skipped; the
    others still receive the event.
    """

    __slots__ = ("_name", "_subscribers", "_latest")

    def __init__(self, name: str, initial: EventT | None = None) -> None:
        self._name = name
        self._subscribers: list[StatusCallback[EventT]] = []
        self._latest: EventT | None = initial

    @property
    def latest(self) -> EventT | None:
        return self._latest

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: StatusCallback[EventT]) -> Unsubscribe:
        self._subscribers.append(callback)

        if self._latest is not None:
            self._deliver(callback, self._latest)

        def unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass  # already unsubscribed

        return unsubscribe

    def publish(self, event: EventT) -> None:
        self._latest = event

        # Copy so callbacks may unsubscribe while being notified
        for callback in list(self._subscribers):
            self._deliver(callback, event)

    def _deliver(self, callback: StatusCallback[EventT], event: EventT) -> None:
        try:
            callback(event)
        except Exception as e:
            logger.exception(f"{self._name} subscriber raised: {e}")

"""Per-service degradation levels shared between components."""

import time
from dataclasses import dataclass, field
from typing import Any, Final

import structlog

from gp51link.core.logging import Logger
from gp51link.core.pubsub import StatusBroadcaster, StatusCallback, Unsubscribe
from gp51link.reliability.types import (
    SERVICE_LEVEL_ORDER,
    DegradationFallbacks,
    Operation,
    ResultT,
    ServiceLevel,
    ServiceStatus,
)

logger: Logger = structlog.getLogger(__name__)

DEFAULT_CACHE_TTL: Final[float] = 300.0

# Consecutive failures that push a service one level down from the given level
AUTO_DEGRADE_THRESHOLDS: Final[dict[ServiceLevel, int]] = {
    ServiceLevel.FULL: 3,
    ServiceLevel.DEGRADED: 5,
    ServiceLevel.MINIMAL: 10,
}


@dataclass(slots=True)
class _ServiceState:
    name: str
    level: ServiceLevel = ServiceLevel.FULL
    allowed_levels: tuple[ServiceLevel, ...] = SERVICE_LEVEL_ORDER
    auto_recovery: bool = True
    recovery_threshold: int = 3
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    last_error: str | None = None
    last_success_time: float | None = None
    last_updated: float = field(default_factory=time.time)


@dataclass(slots=True)
class _CacheEntry:
    data: Any
    stored_at: float
    ttl: float


class DegradationTracker:
    """
    Tracks which capability level each named service currently runs at.

    Components report successes and failures; the tracker steps levels
    down after repeated failures and back up after repeated successes, and
    broadcasts every change to subscribers of that service.
    """

    __slots__ = ("_services", "_channels", "_cache")

    def __init__(self) -> None:
        self._services: dict[str, _ServiceState] = {}
        self._channels: dict[str, StatusBroadcaster[ServiceStatus]] = {}
        self._cache: dict[str, _CacheEntry] = {}

    def register_service(
        self,
        name: str,
        allowed_levels: tuple[ServiceLevel, ...] = SERVICE_LEVEL_ORDER,
        auto_recovery: bool = True,
        recovery_threshold: int = 3,
    ) -> None:
        self._services[name] = _ServiceState(
            name=name,
            allowed_levels=allowed_levels,
            auto_recovery=auto_recovery,
            recovery_threshold=recovery_threshold,
        )
        logger.info(f"Registered service for degradation tracking: {name}")
        self._notify(name)

    def is_registered(self, name: str) -> bool:
        return name in self._services

    def degrade_service(self, name: str, level: ServiceLevel) -> None:
        state = self._services.get(name)
        if state is None or level not in state.allowed_levels:
            logger.warning(f"Cannot degrade service {name} to {level}")
            return

        previous = state.level
        state.level = level
        state.consecutive_successes = 0
        state.last_updated = time.time()

        logger.warning(f"Service {name} degraded from {previous} to {level}")
        self._notify(name)

    def recover_service(self, name: str) -> None:
        """Move one level up towards FULL."""
        state = self._services.get(name)
        if state is None or state.level == ServiceLevel.FULL:
            return

        previous = state.level
        state.level = previous.step_up()
        state.last_updated = time.time()

        logger.info(f"Service {name} recovered from {previous} to {state.level}")
        self._notify(name)

    def reset_service(self, name: str) -> None:
        state = self._services.get(name)
        if state is None:
            return

        state.level = ServiceLevel.FULL
        state.consecutive_failures = 0
        state.consecutive_successes = 0
        state.last_error = None
        state.last_success_time = time.time()
        state.last_updated = time.time()

        logger.info(f"Service {name} reset to full operation")
        self._notify(name)

    def force_service_level(self, name: str, level: ServiceLevel) -> None:
        state = self._services.get(name)
        if state is None or level not in state.allowed_levels:
            return

        state.level = level
        state.last_updated = time.time()
        logger.info(f"Service {name} manually set to {level}")
        self._notify(name)

    def record_success(self, name: str) -> None:
        state = self._services.get(name)
        if state is None:
            return

        state.consecutive_failures = 0
        state.consecutive_successes += 1
        state.last_success_time = time.time()

        if (
            state.auto_recovery
            and state.level != ServiceLevel.FULL
            and state.consecutive_successes >= state.recovery_threshold
        ):
            state.consecutive_successes = 0
            self.recover_service(name)
            return

        self._notify(name)

    def record_failure(self, name: str, error: BaseException | str) -> None:
        state = self._services.get(name)
        if state is None:
            return

        state.consecutive_failures += 1
        state.consecutive_successes = 0
        state.last_error = str(error)
        state.last_updated = time.time()

        threshold = AUTO_DEGRADE_THRESHOLDS.get(state.level)
        if threshold is not None and state.consecutive_failures >= threshold:
            self.degrade_service(name, state.level.step_down())
            return

        self._notify(name)

    def get_level(self, name: str) -> ServiceLevel | None:
        state = self._services.get(name)
        return state.level if state else None

    def get_service_status(self, name: str) -> ServiceStatus | None:
        state = self._services.get(name)
        if state is None:
            return None

        return ServiceStatus(
            name=name,
            level=state.level,
            is_healthy=(
                state.level == ServiceLevel.FULL and state.consecutive_failures == 0
            ),
            consecutive_failures=state.consecutive_failures,
            fallback_active=state.level != ServiceLevel.FULL,
            last_error=state.last_error,
            last_success_time=state.last_success_time,
        )

    def get_all_service_statuses(self) -> list[ServiceStatus]:
        return [
            status
            for name in self._services
            if (status := self.get_service_status(name)) is not None
        ]

    def subscribe(self, name: str, callback: StatusCallback[ServiceStatus]) -> Unsubscribe:
        return self._channel(name).subscribe(callback)

    # Fallback data cache -------------------------------------------------

    def set_cached_data(
        self, name: str, key: str, data: Any, ttl: float = DEFAULT_CACHE_TTL
    ) -> None:
        self._cache[f"{name}:{key}"] = _CacheEntry(
            data=data, stored_at=time.monotonic(), ttl=ttl
        )

    def get_cached_data(self, name: str, key: str) -> Any | None:
        cache_key = f"{name}:{key}"
        entry = self._cache.get(cache_key)
        if entry is None:
            return None

        if time.monotonic() - entry.stored_at > entry.ttl:
            del self._cache[cache_key]
            return None

        return entry.data

    # ---------------------------------------------------------------------

    async def execute_with_degradation(
        self,
        name: str,
        operation: Operation[ResultT],
        fallbacks: DegradationFallbacks[ResultT] | None = None,
    ) -> ResultT:
        """
        Run `operation`, or the fallback matching the service's level.

        When a fallback fails the service drops one more level and the next
        fallback is tried; with none left the original error is raised.

        Raises:
            KeyError: service not registered
        """
        state = self._services.get(name)
        if state is None:
            raise KeyError(f"Service {name} not registered for degradation tracking")

        fallbacks = fallbacks or DegradationFallbacks()

        if state.level == ServiceLevel.OFFLINE:
            if fallbacks.offline is None:
                raise RuntimeError(f"Service {name} is offline and has no offline fallback")
            logger.info(f"Service {name} offline, using offline fallback")
            return fallbacks.offline()

        try:
            result = await operation()
        except Exception as e:
            logger.error(f"Service {name} operation failed: {e}")
            self.record_failure(name, e)
            return await self._run_fallbacks(name, fallbacks, e)

        self.record_success(name)
        return result

    async def _run_fallbacks(
        self,
        name: str,
        fallbacks: DegradationFallbacks[ResultT],
        original_error: Exception,
    ) -> ResultT:
        state = self._services[name]

        while state.level != ServiceLevel.FULL:
            fallback = fallbacks.for_level(state.level)

            if state.level == ServiceLevel.OFFLINE:
                if fallback is None:
                    break
                logger.info(f"Using offline mode for service {name}")
                return fallback()

            if fallback is not None:
                logger.info(f"Using {state.level} mode for service {name}")
                try:
                    return await fallback()
                except Exception as e:
                    logger.error(f"{state.level} mode failed for {name}: {e}")

            previous = state.level
            self.degrade_service(name, previous.step_down())
            if state.level == previous:
                break

        raise original_error

    def _channel(self, name: str) -> StatusBroadcaster[ServiceStatus]:
        channel = self._channels.get(name)
        if channel is None:
            channel = StatusBroadcaster(f"degradation:{name}", self.get_service_status(name))
            self._channels[name] = channel

        return channel

    def _notify(self, name: str) -> None:
        status = self.get_service_status(name)
        if status is not None:
            self._channel(name).publish(status)

"""Throttling, retry with backoff and circuit breaking for GP51 calls."""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import replace

import structlog

from gp51link.core.logging import Logger
from gp51link.exceptions import ErrorKind, error_kind_of, is_retryable
from gp51link.reliability.stats import RateLimitStats
from gp51link.reliability.types import (
    CIRCUIT_COOLDOWN,
    BatchError,
    BatchResult,
    ItemT,
    Operation,
    RateLimitConfig,
    ResultT,
)

logger: Logger = structlog.getLogger(__name__)


class RateLimiter:
    """
    Owns the outbound call budget for one GP51 account.

    - Calls are spaced at least `min_request_interval` apart
    - Retryable failures are retried with exponential backoff; rejected
      credentials and expired tokens are raised at once
    - `circuit_breaker_threshold` consecutive failures open the circuit, after
      which every call waits out a fixed 60s cool-down. The first success
      closes it again; a failure re-arms the cool-down.

    State is per instance and not shared across processes.
    """

    __slots__ = ("_config", "_stats", "_last_request_time", "_lock")

    def __init__(self, config: RateLimitConfig | None = None) -> None:
        self._config = config or RateLimitConfig()
        self._stats = RateLimitStats()
        self._last_request_time: float | None = None
        self._lock = asyncio.Lock()

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    @property
    def is_circuit_open(self) -> bool:
        return self._stats.circuit_open

    def get_stats(self) -> RateLimitStats:
        """Snapshot of the counters; mutating it does not affect the limiter."""
        return replace(self._stats)

    def reset_stats(self) -> None:
        self._stats = RateLimitStats()
        logger.info("Rate limiter stats reset, circuit closed")

    async def wait_for_rate_limit(self) -> None:
        """Suspend until the circuit has cooled down and the interval has passed."""
        async with self._lock:
            remaining = self._stats.circuit_remaining
            if remaining > 0:
                logger.warning(
                    f"Circuit breaker open, delaying GP51 call {remaining:.1f}s"
                )
                await asyncio.sleep(remaining)

            if self._last_request_time is not None:
                elapsed = time.monotonic() - self._last_request_time
                wait = self._config.min_request_interval - elapsed
                if wait > 0:
                    await asyncio.sleep(wait)

            self._last_request_time = time.monotonic()

    async def execute_with_retry(
        self,
        operation: Operation[ResultT],
        operation_name: str = "operation",
        retryable: Callable[[Exception], bool] = is_retryable,
    ) -> ResultT:
        """
        Run `operation` up to `max_retries` times.

        Errors for which `retryable` is false are raised at once and do not
        count toward the circuit breaker.

        Raises:
            Exception: a non-retryable error, or the last error once all
                attempts failed
        """
        max_retries = self._config.max_retries
        attempt = 0

        while True:
            attempt += 1
            await self.wait_for_rate_limit()
            self._stats.total_requests += 1

            try:
                result = await operation()

            except Exception as e:
                if not retryable(e):
                    self._stats.failed_requests += 1
                    logger.warning(f"{operation_name} failed, not retrying: {e}")
                    raise

                self._record_failure(e, operation_name)

                if attempt >= max_retries:
                    logger.error(f"{operation_name} failed after {max_retries} attempts: {e}")
                    raise

                delay = self._config.backoff_delay(attempt - 1)
                logger.warning(
                    f"{operation_name} failed (attempt {attempt}/{max_retries}), "
                    f"retrying in {delay:.1f}s: {e}"
                )
                await asyncio.sleep(delay)
                continue

            self._record_success(operation_name)
            return result

    async def process_batch(
        self,
        items: Sequence[ItemT],
        processor: Callable[[ItemT], Awaitable[ResultT]],
        operation_name: str = "batch",
        batch_size: int | None = None,
    ) -> BatchResult[ItemT, ResultT]:
        """
        Apply `processor` to every item, `batch_size` items at a time.

        Per-item failures are collected in `errors`; the batch never aborts.
        """
        size = batch_size or self._config.batch_size
        outcome: BatchResult[ItemT, ResultT] = BatchResult()
        total_batches = (len(items) + size - 1) // size

        for batch_index, start in enumerate(range(0, len(items), size)):
            batch = items[start : start + size]

            results = await asyncio.gather(
                *(
                    self.execute_with_retry(
                        _bind(processor, item),
                        f"{operation_name}[{start + offset}]",
                    )
                    for offset, item in enumerate(batch)
                ),
                return_exceptions=True,
            )

            for item, result in zip(batch, results):
                if isinstance(result, Exception):
                    outcome.errors.append(BatchError(item=item, error=result))
                elif isinstance(result, BaseException):
                    raise result
                else:
                    outcome.results.append(result)

            logger.debug(
                f"{operation_name}: batch {batch_index + 1}/{total_batches} done, "
                f"{len(outcome.results)} ok, {len(outcome.errors)} failed"
            )

            if batch_index < total_batches - 1 and self._config.batch_delay > 0:
                await asyncio.sleep(self._config.batch_delay)

        if outcome.errors:
            logger.warning(
                f"{operation_name}: {len(outcome.errors)}/{outcome.total} items failed"
            )

        return outcome

    def _record_success(self, operation_name: str) -> None:
        self._stats.successful_requests += 1
        self._stats.consecutive_failures = 0

        if self._stats.circuit_open:
            self._stats.circuit_open = False
            self._stats.circuit_opened_at = 0.0
            logger.info(f"Circuit breaker closed after successful {operation_name}")

    def _record_failure(self, error: Exception, operation_name: str) -> None:
        self._stats.failed_requests += 1
        self._stats.consecutive_failures += 1

        if error_kind_of(error) == ErrorKind.RATE_LIMITED:
            self._stats.rate_limited_requests += 1
            logger.warning(f"GP51 rate limit hit during {operation_name}")

        if self._stats.consecutive_failures >= self._config.circuit_breaker_threshold:
            if not self._stats.circuit_open:
                logger.error(
                    f"Circuit breaker opened after "
                    f"{self._stats.consecutive_failures} consecutive failures, "
                    f"cooling down {CIRCUIT_COOLDOWN:.0f}s"
                )
            self._stats.circuit_open = True
            self._stats.circuit_opened_at = time.monotonic()


def _bind(
    processor: Callable[[ItemT], Awaitable[ResultT]], item: ItemT
) -> Operation[ResultT]:
    async def run() -> ResultT:
        return await processor(item)

    return run

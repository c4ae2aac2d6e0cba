"""Admission control for the browser stage.

Two pieces, both plain instances injected into the pipeline:
- CircuitBreaker: counts consecutive task failures and fails fast while open
- AdmissionController: FIFO queue drained by a fixed pool of worker coroutines,
  so at most ``max_concurrency`` browser tasks run at once

The breaker has no dedicated half-open state. Once the cooldown has elapsed
the breaker reports closed again and the next admitted task acts as the
probe: a success resets the failure count, a failure reopens the breaker
with a fresh ``opened_at`` because the count is still at or above the
threshold.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from models.models import AdmissionStats
from utils.exceptions import CircuitOpenError
from utils.logging import get_logger

logger = get_logger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]


class CircuitBreaker:
    """Consecutive-failure circuit breaker with an implicit half-open probe."""

    def __init__(
        self,
        threshold: int = 8,
        cooldown: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be at least 1")
        self.threshold = threshold
        self.cooldown = cooldown
        self._clock = clock
        self.consecutive_failures = 0
        self.opened_at: float | None = None

    @property
    def state(self) -> str:
        if self.opened_at is None:
            return "closed"
        if self._clock() - self.opened_at >= self.cooldown:
            return "closed"
        return "open"

    def allow(self) -> bool:
        """Whether a new request may be admitted.

        Clears ``opened_at`` once the cooldown has elapsed but keeps the
        failure count, so the next failure reopens immediately.
        """
        if self.opened_at is None:
            return True
        if self._clock() - self.opened_at >= self.cooldown:
            logger.info(
                f"Circuit breaker cooldown elapsed after {self.cooldown}s, admitting probe request"
            )
            self.opened_at = None
            return True
        return False

    def record_success(self) -> None:
        if self.consecutive_failures:
            logger.debug(f"Circuit breaker reset after {self.consecutive_failures} failures")
        self.consecutive_failures = 0
        self.opened_at = None

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        if self.consecutive_failures >= self.threshold:
            self.opened_at = self._clock()
            logger.warning(
                f"Circuit breaker opened after {self.consecutive_failures} consecutive failures "
                f"(cooldown {self.cooldown}s)"
            )


class AdmissionController:
    """Bounded-concurrency FIFO gate in front of the browser stage.

    Usage:
        controller = AdmissionController(max_concurrency=2, breaker=CircuitBreaker())
        url = await controller.submit(lambda: extract(link))

    Workers are started on the first submit of each event loop. A caller
    that stops waiting (timeout, cancellation) does not cancel a task that
    already started; its result is discarded. Tasks still queued for an
    abandoned submission are skipped.
    """

    def __init__(self, max_concurrency: int = 2, breaker: CircuitBreaker | None = None) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency
        self.breaker = breaker or CircuitBreaker()
        self.active_count = 0
        self._queue: asyncio.Queue | None = None
        self._workers: list[asyncio.Task] = []
        self._loop: asyncio.AbstractEventLoop | None = None

    def _ensure_workers(self) -> asyncio.Queue:
        loop = asyncio.get_running_loop()
        if self._loop is not loop or self._queue is None:
            self._loop = loop
            self._queue = asyncio.Queue()
            self.active_count = 0
            self._workers = [
                loop.create_task(self._worker(index), name=f"admission-worker-{index}")
                for index in range(self.max_concurrency)
            ]
            logger.debug(f"Started {self.max_concurrency} admission workers")
        return self._queue

    async def submit(self, task_factory: TaskFactory) -> Any:
        """Run ``task_factory()`` once a slot is free and return its result.

        Raises:
            CircuitOpenError: The breaker is open; nothing was queued or run
            Exception: Whatever the task raised
        """
        if not self.breaker.allow():
            raise CircuitOpenError()

        queue = self._ensure_workers()
        future = asyncio.get_running_loop().create_future()
        queue.put_nowait((task_factory, future))
        return await future

    async def _worker(self, index: int) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            task_factory, future = await queue.get()
            try:
                if future.done():
                    continue
                await self._run(task_factory, future)
            finally:
                queue.task_done()

    async def _run(self, task_factory: TaskFactory, future: asyncio.Future) -> None:
        self.active_count += 1
        try:
            result = await task_factory()
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
            raise
        except Exception as exc:
            self.breaker.record_failure()
            logger.debug(f"Admitted task failed: {exc!r}")
            if not future.done():
                future.set_exception(exc)
        else:
            self.breaker.record_success()
            if not future.done():
                future.set_result(result)
        finally:
            self.active_count -= 1

    @property
    def queued(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def stats(self) -> AdmissionStats:
        return AdmissionStats(
            state=self.breaker.state,
            active_count=self.active_count,
            queued=self.queued,
            max_concurrency=self.max_concurrency,
            consecutive_failures=self.breaker.consecutive_failures,
            opened_at=self.breaker.opened_at,
        )

    async def close(self) -> None:
        """Cancel the worker pool; pending submissions are cancelled too."""
        workers, self._workers = self._workers, []
        for worker in workers:
            worker.cancel()
        if workers and self._loop is asyncio.get_running_loop():
            await asyncio.gather(*workers, return_exceptions=True)
        if self._queue is not None:
            while not self._queue.empty():
                _, future = self._queue.get_nowait()
                if not future.done():
                    future.cancel()
        self._queue = None
        self._loop = None
        self.active_count = 0

"""Concurrency limiter with a bounded FIFO wait queue.

At most ``max_concurrent`` jobs execute at once. Further jobs wait in a
FIFO queue until a slot frees up or their queue timeout expires. Only
waiting is timed; an admitted job runs until it finishes.

All bookkeeping happens on the event loop thread. Capacity is checked
and taken without an intervening ``await``, so no other request can
slip in between the check and the increment.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from claudegate.domain.models import ConcurrencyStatus, QueueEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_CONCURRENT = 5
DEFAULT_QUEUE_TIMEOUT = 120.0


@dataclass(eq=False)
class _QueuedJob:
    """A job waiting for a slot. Owned by the limiter until promoted."""

    execute: Callable[[], Awaitable[Any]]
    future: asyncio.Future[Any]
    timeout: float
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))
    enqueued_at: float = field(default_factory=time.monotonic)
    timer: asyncio.TimerHandle | None = None
    task: asyncio.Task[Any] | None = None


class ConcurrencyLimiter:
    """Bounds the number of simultaneously executing jobs.

    Example usage::

        limiter = ConcurrencyLimiter(max_concurrent=2, default_timeout=30)
        result = await limiter.run(lambda: do_work())
        limiter.get_status()  # ConcurrencyStatus(active=0, max=2, ...)

    Args:
        max_concurrent: Number of jobs allowed to execute at once.
        default_timeout: Seconds a job may wait in the queue before it is
            rejected with :class:`QueueTimeoutError`.
    """

    def __init__(
        self,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        default_timeout: float = DEFAULT_QUEUE_TIMEOUT,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if default_timeout <= 0:
            raise ValueError("default_timeout must be positive")
        self._max_concurrent = max_concurrent
        self._default_timeout = default_timeout
        self._active = 0
        self._queue: deque[_QueuedJob] = deque()
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def active(self) -> int:
        return self._active

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def default_timeout(self) -> float:
        return self._default_timeout

    async def run(
        self,
        execute: Callable[[], Awaitable[T]],
        timeout: float | None = None,
    ) -> T:
        """Run ``execute`` under the concurrency limit.

        Args:
            execute: Zero-argument callable returning an awaitable.
            timeout: Queue timeout in seconds for this job. Defaults to
                the limiter's ``default_timeout``.

        Returns:
            Whatever ``execute`` returns.

        Raises:
            QueueTimeoutError: The job was still queued when the timeout
                elapsed.
            LimiterShutdownError: The limiter was cleared while the job
                was queued.
        """
        if self._active < self._max_concurrent and not self._queue:
            return await self._execute_direct(execute)
        return await self._enqueue(
            execute, self._default_timeout if timeout is None else timeout
        )

    async def _execute_direct(self, execute: Callable[[], Awaitable[T]]) -> T:
        self._active += 1
        try:
            return await execute()
        finally:
            self._active -= 1
            self._process_next()

    async def _enqueue(self, execute: Callable[[], Awaitable[T]], timeout: float) -> T:
        loop = asyncio.get_running_loop()
        job = _QueuedJob(execute=execute, future=loop.create_future(), timeout=timeout)
        job.timer = loop.call_later(timeout, self._expire, job)
        self._queue.append(job)
        logger.info(
            "Job queued (active=%d/%d, queued=%d, timeout=%gs)",
            self._active, self._max_concurrent, len(self._queue), timeout,
        )

        try:
            return await job.future
        except asyncio.CancelledError:
            # Caller went away: drop the waiting entry or stop the running job
            if job.task is not None:
                job.task.cancel()
            else:
                self._discard(job)
            raise

    def _expire(self, job: _QueuedJob) -> None:
        """Timer callback: reject a job that is still waiting."""
        try:
            self._queue.remove(job)
        except ValueError:
            return
        if not job.future.done():
            job.future.set_exception(QueueTimeoutError(job.timeout))
        logger.warning(
            "Queued job expired after %gs (queued=%d)", job.timeout, len(self._queue)
        )

    def _discard(self, job: _QueuedJob) -> None:
        if job.timer is not None:
            job.timer.cancel()
        try:
            self._queue.remove(job)
        except ValueError:
            pass

    def _process_next(self) -> None:
        """Promote queued jobs while slots are free."""
        while self._queue and self._active < self._max_concurrent:
            job = self._queue.popleft()
            if job.timer is not None:
                job.timer.cancel()
            if job.future.done():
                continue

            self._active += 1
            waited = time.monotonic() - job.enqueued_at
            logger.debug("Promoting queued job after %.3fs", waited)
            task = job.future.get_loop().create_task(_call(job.execute))
            job.task = task
            self._tasks.add(task)
            task.add_done_callback(lambda t, j=job: self._on_queued_done(j, t))

    def _on_queued_done(self, job: _QueuedJob, task: asyncio.Task[Any]) -> None:
        # Runs even if the task was cancelled before it started
        self._tasks.discard(task)
        self._active -= 1

        if task.cancelled():
            if not job.future.done():
                job.future.cancel()
        else:
            exc = task.exception()
            if not job.future.done():
                if exc is not None:
                    job.future.set_exception(exc)
                else:
                    job.future.set_result(task.result())

        self._process_next()

    def get_status(self) -> ConcurrencyStatus:
        return ConcurrencyStatus(
            active=self._active,
            max=self._max_concurrent,
            available=max(0, self._max_concurrent - self._active),
            queued=len(self._queue),
        )

    def get_queue_info(self) -> list[QueueEntry]:
        """Describe each waiting job, oldest first."""
        now = time.monotonic()
        return [
            QueueEntry(
                timestamp=job.timestamp,
                waiting_ms=int((now - job.enqueued_at) * 1000),
            )
            for job in self._queue
        ]

    def set_max_concurrent(self, max_concurrent: int) -> None:
        """Change capacity. Running jobs are never preempted."""
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._max_concurrent = max_concurrent
        logger.info("Max concurrency set to %d", max_concurrent)
        self._process_next()

    def set_default_timeout(self, timeout: float) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self._default_timeout = timeout

    def clear(self) -> None:
        """Reject every waiting job. Running jobs are left alone."""
        rejected = 0
        while self._queue:
            job = self._queue.popleft()
            if job.timer is not None:
                job.timer.cancel()
            if not job.future.done():
                job.future.set_exception(LimiterShutdownError())
                rejected += 1
        if rejected:
            logger.info("Rejected %d queued job(s) on shutdown", rejected)


async def _call(execute: Callable[[], Awaitable[T]]) -> T:
    return await execute()


class ConcurrencyError(Exception):
    """Raised when a job cannot be admitted by the limiter."""


class QueueTimeoutError(ConcurrencyError):
    """Raised when a job waits in the queue longer than its timeout."""

    def __init__(self, timeout: float) -> None:
        super().__init__(
            f"Request timed out after waiting {timeout:g}s in the queue, please retry later"
        )
        self.timeout = timeout


class LimiterShutdownError(ConcurrencyError):
    """Raised for jobs still queued when the limiter is cleared."""

    def __init__(self) -> None:
        super().__init__("Server is shutting down")

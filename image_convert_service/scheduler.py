"""Bounded, order-preserving execution of per-file conversion jobs."""

import asyncio
import logging
from typing import Any, Callable, Sequence, TypeVar

from .direct import run_blocking
from .errors import ConversionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

InFlightHook = Callable[[int], Any]


def _retrieve_outcome(task: asyncio.Future) -> None:
    # Later failures of an already failed batch are expected; consume them quietly.
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Discarding later failure in aborted batch: %r", task.exception())


class ConversionScheduler:
    """
    Run blocking jobs with at most ``limit`` executing at once.

    Jobs wait for a slot in submission order. A slot is only given back when
    the worker thread running the job returns, so the bound holds even when
    a caller stops waiting because of the deadline. Native codecs allocate
    outside the Python heap, which is why the default bound is a single job.

    Args:
        limit: Maximum number of jobs executing simultaneously
        timeout: Optional per-job deadline in seconds
        on_start: Called with the in-flight count after a job starts
        on_finish: Called with the in-flight count after a job ends
    """

    def __init__(
        self,
        limit: int = 1,
        timeout: float | None = None,
        on_start: InFlightHook | None = None,
        on_finish: InFlightHook | None = None,
    ):
        if limit < 1:
            raise ValueError("Concurrency limit must be at least 1")
        self.limit = limit
        self.timeout = timeout
        self.on_start = on_start
        self.on_finish = on_finish
        self.in_flight = 0
        self._semaphore: asyncio.Semaphore | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def _limiter(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._loop is not loop:
            self._semaphore = asyncio.Semaphore(self.limit)
            self._loop = loop
        return self._semaphore

    def _job_finished(
        self, limiter: asyncio.Semaphore, aborted: asyncio.Event, future: asyncio.Future
    ) -> None:
        # Mark the batch aborted before the slot is handed to the next waiter.
        if future.cancelled() or future.exception() is not None:
            aborted.set()
        self.in_flight -= 1
        limiter.release()
        if self.on_finish:
            self.on_finish(self.in_flight)

    async def _run_one(self, index: int, job: Callable[[], T], aborted: asyncio.Event) -> T | None:
        limiter = self._limiter()
        await limiter.acquire()
        if aborted.is_set():
            limiter.release()
            logger.debug("Skipping conversion job %d, batch already failed", index)
            return None

        self.in_flight += 1
        if self.on_start:
            self.on_start(self.in_flight)
        future = asyncio.ensure_future(run_blocking(job))
        future.add_done_callback(lambda done: self._job_finished(limiter, aborted, done))

        if self.timeout is None:
            return await asyncio.shield(future)
        try:
            return await asyncio.wait_for(asyncio.shield(future), self.timeout)
        except asyncio.TimeoutError as exc:
            raise ConversionError(
                f"Conversion job {index} exceeded the {self.timeout}s deadline"
            ) from exc

    async def run_all(self, jobs: Sequence[Callable[[], T]]) -> list[T]:
        """
        Run every job and return results in submission order.

        The first failure is raised for the whole batch. Jobs still waiting
        for a slot at that point are skipped; jobs already running finish on
        their own.
        """
        aborted = asyncio.Event()

        async def guarded(index: int, job: Callable[[], T]) -> T | None:
            try:
                return await self._run_one(index, job, aborted)
            except BaseException:
                aborted.set()
                raise

        tasks = [asyncio.ensure_future(guarded(i, job)) for i, job in enumerate(jobs)]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.add_done_callback(_retrieve_outcome)
            raise

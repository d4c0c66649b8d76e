"""Tests for the bounded conversion scheduler."""

import asyncio
import gc
import threading
import time
from functools import partial

import pytest

from image_convert_service import ConversionError, ConversionScheduler


class InFlightCounter:
    """Thread-safe counter recording the peak number of concurrent jobs."""

    def __init__(self):
        self.current = 0
        self.peak = 0
        self.lock = threading.Lock()

    def job(self, value, delay=0.02):
        with self.lock:
            self.current += 1
            self.peak = max(self.peak, self.current)
        try:
            time.sleep(delay)
            return value
        finally:
            with self.lock:
                self.current -= 1


def test_limit_must_be_positive():
    with pytest.raises(ValueError):
        ConversionScheduler(limit=0)


@pytest.mark.parametrize("limit", [1, 2, 3])
def test_never_exceeds_limit(limit):
    counter = InFlightCounter()
    observed = []
    scheduler = ConversionScheduler(limit=limit, on_start=observed.append)

    jobs = [partial(counter.job, i) for i in range(8)]
    results = asyncio.run(scheduler.run_all(jobs))

    assert results == list(range(8))
    assert counter.peak <= limit
    assert max(observed) <= limit
    assert scheduler.in_flight == 0


def test_results_follow_submission_order():
    counter = InFlightCounter()
    scheduler = ConversionScheduler(limit=4)
    delays = [0.08, 0.01, 0.05, 0.0]

    jobs = [partial(counter.job, i, delay) for i, delay in enumerate(delays)]
    results = asyncio.run(scheduler.run_all(jobs))

    assert results == [0, 1, 2, 3]


def test_jobs_start_in_fifo_order():
    started = []
    scheduler = ConversionScheduler(limit=1)

    def job(index):
        started.append(index)
        return index

    asyncio.run(scheduler.run_all([partial(job, i) for i in range(5)]))

    assert started == [0, 1, 2, 3, 4]


def test_first_failure_aborts_batch_and_skips_queued_jobs():
    ran = []
    scheduler = ConversionScheduler(limit=1)

    def failing():
        ran.append("fail")
        raise ConversionError("decode failed")

    def ok(index):
        ran.append(index)
        return index

    async def run():
        with pytest.raises(ConversionError):
            await scheduler.run_all([failing, partial(ok, 1), partial(ok, 2)])
        # Let the queued tasks observe the abort.
        await asyncio.sleep(0.05)

    asyncio.run(run())

    assert ran == ["fail"]


def test_failure_after_successes_returns_no_partial_results():
    scheduler = ConversionScheduler(limit=2)

    def ok():
        return b"data"

    def failing():
        raise ConversionError("encode failed")

    with pytest.raises(ConversionError):
        asyncio.run(scheduler.run_all([ok, ok, failing]))


def test_later_failures_in_aborted_batch_are_not_reported_as_unretrieved():
    reported = []
    scheduler = ConversionScheduler(limit=2)

    def failing(delay):
        time.sleep(delay)
        raise ConversionError("decode failed")

    async def run():
        asyncio.get_running_loop().set_exception_handler(lambda loop, context: reported.append(context))
        with pytest.raises(ConversionError):
            await scheduler.run_all([partial(failing, 0.0), partial(failing, 0.05)])
        await asyncio.sleep(0.15)
        gc.collect()
        await asyncio.sleep(0)

    asyncio.run(run())
    gc.collect()

    assert reported == []


def test_deadline_raises_conversion_error_and_holds_slot():
    finished = threading.Event()
    scheduler = ConversionScheduler(limit=1, timeout=0.05)

    def slow():
        time.sleep(0.3)
        finished.set()
        return "late"

    async def run():
        with pytest.raises(ConversionError):
            await scheduler.run_all([slow])
        assert scheduler.in_flight == 1
        while not finished.is_set():
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.05)
        assert scheduler.in_flight == 0

    asyncio.run(run())


def test_finish_hook_reports_remaining_jobs():
    finished = []
    scheduler = ConversionScheduler(limit=1, on_finish=finished.append)

    asyncio.run(scheduler.run_all([lambda: 1, lambda: 2]))

    assert finished == [0, 0]


def test_scheduler_reused_across_event_loops():
    scheduler = ConversionScheduler(limit=1)

    assert asyncio.run(scheduler.run_all([lambda: "a"])) == ["a"]
    assert asyncio.run(scheduler.run_all([lambda: "b"])) == ["b"]

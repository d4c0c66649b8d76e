"""Periodic resource-usage sampling into a bounded, time-pruned buffer."""

import asyncio
import json
import logging
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import psutil

logger = logging.getLogger(__name__)

MB = 1024 * 1024


@dataclass
class ResourceSample:
    """Point-in-time memory and CPU figures for this process."""

    timestamp: datetime
    rss_mb: float
    vms_mb: float
    free_mb: float
    total_mb: float
    usage_percent: float
    cpu_user_seconds: float
    cpu_system_seconds: float

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


def take_sample() -> ResourceSample:
    process = psutil.Process()
    memory = process.memory_info()
    system = psutil.virtual_memory()
    cpu = process.cpu_times()
    return ResourceSample(
        timestamp=datetime.now(timezone.utc),
        rss_mb=round(memory.rss / MB, 2),
        vms_mb=round(memory.vms / MB, 2),
        free_mb=round(system.available / MB, 2),
        total_mb=round(system.total / MB, 2),
        usage_percent=round((1 - system.available / system.total) * 100, 1),
        cpu_user_seconds=round(cpu.user, 2),
        cpu_system_seconds=round(cpu.system, 2),
    )


class ResourceLogBuffer:
    """
    Ring buffer of samples bounded by count and by age.

    Appenders may run on any thread; all access goes through one lock.
    """

    def __init__(self, duration_seconds: float = 60.0, max_entries: int = 720):
        self.duration = timedelta(seconds=duration_seconds)
        self._entries: deque[ResourceSample] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def _prune(self, now: datetime) -> None:
        cutoff = now - self.duration
        while self._entries and self._entries[0].timestamp <= cutoff:
            self._entries.popleft()

    def append(self, sample: ResourceSample) -> None:
        with self._lock:
            self._entries.append(sample)
            self._prune(sample.timestamp)

    def snapshot(self, now: datetime | None = None) -> list[ResourceSample]:
        with self._lock:
            self._prune(now or datetime.now(timezone.utc))
            return list(self._entries)

    def drain(self) -> list[ResourceSample]:
        with self._lock:
            entries = list(self._entries)
            self._entries.clear()
            return entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class ResourceSampler:
    """Background task appending a sample to ``buffer`` every ``interval`` seconds."""

    def __init__(self, buffer: ResourceLogBuffer, interval: float = 5.0, sampler=take_sample):
        self.buffer = buffer
        self.interval = interval
        self.sampler = sampler
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while True:
            sample = self.sampler()
            self.buffer.append(sample)
            logger.debug("Resource sample: %s", sample.to_dict())
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info("Resource sampler started (interval %.1fs)", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        dropped = self.buffer.drain()
        logger.info("Resource sampler stopped, %d samples discarded", len(dropped))


def log_file_name(now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).isoformat().replace(":", "-").replace(".", "-")
    return f"resource-logs-{stamp}.txt"


def write_log_file(buffer: ResourceLogBuffer, path: Path, delay: float = 0.0) -> Path:
    """
    Dump the buffer to ``path`` after ``delay`` seconds.

    The delay lets the dump include how memory settles after a burst.
    """
    if delay > 0:
        time.sleep(delay)
    path.parent.mkdir(parents=True, exist_ok=True)
    content = "\n\n".join(json.dumps(sample.to_dict(), indent=2) for sample in buffer.snapshot())
    path.write_text(content, encoding="utf-8")
    logger.info("Saved resource log to %s", path)
    return path

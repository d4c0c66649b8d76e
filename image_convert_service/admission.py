"""Memory-based admission control."""

import logging
from typing import Callable

import psutil

from .errors import ResourceExhausted

logger = logging.getLogger(__name__)

MemoryProbe = Callable[[], int]


def process_rss() -> int:
    """Return the resident set size of the current process in bytes."""
    return psutil.Process().memory_info().rss


class AdmissionController:
    """
    Reject new work while the process is above its memory budget.

    Args:
        max_memory_bytes: Budget compared against the probe reading
        probe: Callable returning current memory usage in bytes
    """

    def __init__(self, max_memory_bytes: int, probe: MemoryProbe | None = None):
        self.max_memory_bytes = max_memory_bytes
        self.probe = probe or process_rss

    def check(self) -> None:
        """Raise ResourceExhausted when usage exceeds the budget."""
        used = self.probe()
        if used > self.max_memory_bytes:
            logger.warning(
                "Rejecting request: memory usage %.1f MB exceeds budget %.1f MB",
                used / 1024 / 1024,
                self.max_memory_bytes / 1024 / 1024,
            )
            raise ResourceExhausted("Server is busy. Please try again later.")

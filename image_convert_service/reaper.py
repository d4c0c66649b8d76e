"""Guaranteed release of image handles and large buffers."""

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Closable(Protocol):
    def close(self) -> Any: ...


class Discardable(Protocol):
    def discard(self) -> None: ...


class ResourceReaper:
    """
    Track decoder/encoder handles and buffers for one conversion.

    Use as a context manager; on exit every tracked handle is closed in
    reverse order and every tracked buffer is discarded, whether the block
    succeeded or raised. Close failures are logged and never mask the
    original outcome.
    """

    def __init__(self):
        self._handles: list[Closable] = []
        self._buffers: list[Discardable] = []

    def track(self, handle):
        """Register a closable handle and return it unchanged."""
        self._handles.append(handle)
        return handle

    def track_buffer(self, owner):
        """Register an object whose buffer is dropped via ``discard()``."""
        self._buffers.append(owner)
        return owner

    @property
    def tracked(self) -> int:
        return len(self._handles)

    def release(self) -> None:
        while self._handles:
            handle = self._handles.pop()
            try:
                handle.close()
            except Exception:
                logger.exception("Failed to close image handle %r", handle)
        while self._buffers:
            self._buffers.pop().discard()

    def __enter__(self) -> "ResourceReaper":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

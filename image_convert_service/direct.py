"""Helpers for running codec work and returning binary payloads."""

import asyncio
from typing import Any, Callable

from fastapi import Response


async def run_blocking(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """
    Run a blocking function in a thread pool to avoid blocking the event loop.
    """

    return await asyncio.to_thread(func, *args, **kwargs)


def render_bytes(
    payload: bytes | bytearray | memoryview,
    media_type: str,
    headers: dict[str, str] | None = None,
) -> Response:
    """
    Shortcut for returning binary payloads from stateless actions.
    """

    return Response(content=bytes(payload), media_type=media_type, headers=headers)


__all__ = ["run_blocking", "render_bytes"]

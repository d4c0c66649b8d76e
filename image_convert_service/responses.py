"""Package conversion results as a single file or a streamed ZIP archive."""

import re
import zipfile
from typing import Iterator, Sequence
from urllib.parse import quote

from fastapi import Response
from fastapi.responses import StreamingResponse

from .direct import render_bytes
from .pipeline import ConversionResult

ARCHIVE_NAME = "converted_images.zip"

_EXTENSION = re.compile(r"\.[^/.]+$")


def media_type_for(target_format: str) -> str:
    return f"image/{'jpeg' if target_format == 'jpg' else target_format}"


def output_stem(original_name: str) -> str:
    """Basename of an uploaded file name without directories or its last extension."""
    name = re.split(r"[/\\]", original_name)[-1]
    return _EXTENSION.sub("", name) or "image"


def entry_names(original_names: Sequence[str], target_format: str) -> list[str]:
    """
    Archive entry names for the given uploads, in input order.

    Every entry is ``<stem>.<format>``. When a name is already taken, the
    later upload gets ``-1``, ``-2``, ... appended to its stem, so
    ``a.png`` and ``a.jpg`` converted to webp become ``a.webp`` and
    ``a-1.webp``.
    """
    used: set[str] = set()
    names = []
    for original in original_names:
        stem = output_stem(original)
        candidate = f"{stem}.{target_format}"
        suffix = 0
        while candidate in used:
            suffix += 1
            candidate = f"{stem}-{suffix}.{target_format}"
        used.add(candidate)
        names.append(candidate)
    return names


class _ChunkSink:
    """Write-only, unseekable target that hands out what was written so far."""

    def __init__(self):
        self._chunks: list[bytes] = []

    def write(self, data) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


def iter_zip(
    results: Sequence[ConversionResult],
    target_format: str,
    compression_level: int,
) -> Iterator[bytes]:
    """
    Yield a ZIP archive of ``results`` one entry at a time.

    Each result buffer is discarded as soon as its entry has been written.
    """
    names = entry_names([result.original_name for result in results], target_format)
    sink = _ChunkSink()
    with zipfile.ZipFile(
        sink, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=compression_level
    ) as archive:
        for name, result in zip(names, results):
            archive.writestr(name, result.data)
            result.discard()
            yield sink.drain()
    yield sink.drain()


def single_file_response(result: ConversionResult, target_format: str) -> Response:
    filename = f"{quote(output_stem(result.original_name), safe='')}.{target_format}"
    data = result.data
    result.discard()
    return render_bytes(
        data,
        media_type_for(target_format),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def archive_response(
    results: Sequence[ConversionResult],
    target_format: str,
    compression_level: int = 3,
) -> StreamingResponse:
    return StreamingResponse(
        iter_zip(results, target_format, compression_level),
        media_type="application/zip",
        headers={"Content-Disposition": f"attachment; filename={ARCHIVE_NAME}"},
    )


def package_results(
    results: Sequence[ConversionResult],
    target_format: str,
    compression_level: int = 3,
) -> Response:
    """Return a single image response for one result, a streamed ZIP otherwise."""
    if len(results) == 1:
        return single_file_response(results[0], target_format)
    return archive_response(results, target_format, compression_level)

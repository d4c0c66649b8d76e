"""Parse and validate multipart conversion requests."""

from dataclasses import dataclass, field

from starlette.datastructures import FormData, UploadFile

from .config import Settings
from .errors import InputError


@dataclass
class InputFile:
    """An uploaded image held in memory for the length of its conversion."""

    name: str
    data: bytes
    size: int

    def discard(self) -> None:
        """Drop the buffer so it can be reclaimed before the request ends."""
        self.data = b""


@dataclass
class ConversionRequest:
    """Validated conversion parameters and the files to convert, in upload order."""

    format: str
    files: list[InputFile] = field(default_factory=list)
    quality: int | None = None
    width: int | None = None
    height: int | None = None

    @property
    def resize(self) -> tuple[int, int] | None:
        if self.width and self.height:
            return self.width, self.height
        return None


def _text_field(form: FormData, name: str) -> str | None:
    value = form.get(name)
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def _parse_quality(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        quality = int(float(raw))
    except (ValueError, OverflowError):
        raise InputError("Quality must be an integer between 0 and 100")
    if not 0 <= quality <= 100:
        raise InputError("Quality must be an integer between 0 and 100")
    return quality


def _parse_dimension(raw: str | None) -> int | None:
    """Positive pixel count, or None when absent or 0 (no explicit resize)."""
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise InputError("Width and height must be positive integers")
    if value < 0:
        raise InputError("Width and height must be positive integers")
    return value or None


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    position = upload.file.tell()
    upload.file.seek(0, 2)
    size = upload.file.tell()
    upload.file.seek(position)
    return size


async def parse_conversion_request(form: FormData, settings: Settings) -> ConversionRequest:
    """
    Build a ConversionRequest from a parsed multipart form.

    Checks run in a fixed order and the first violation is raised as
    InputError: format, at least one file, file count, per-file size, then
    quality and dimensions. File bytes are only read once every check passed.
    """

    target_format = _text_field(form, "format")
    if not target_format:
        raise InputError("Format is required")

    uploads = [value for _, value in form.multi_items() if isinstance(value, UploadFile)]
    if not uploads:
        raise InputError("No files uploaded")

    if len(uploads) > settings.max_files:
        raise InputError(f"Maximum {settings.max_files} files allowed at once")

    sizes = [_upload_size(upload) for upload in uploads]
    if any(size > settings.max_file_size_bytes for size in sizes):
        raise InputError(f"File size exceeds {settings.max_file_size_mb}MB")

    quality = _parse_quality(_text_field(form, "quality"))
    width = _parse_dimension(_text_field(form, "width"))
    height = _parse_dimension(_text_field(form, "height"))

    files = []
    for upload, size in zip(uploads, sizes):
        data = await upload.read()
        await upload.close()
        files.append(InputFile(name=upload.filename or "image", data=data, size=size))

    return ConversionRequest(
        format=target_format.lower(),
        files=files,
        quality=quality,
        width=width,
        height=height,
    )

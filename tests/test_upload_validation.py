"""Tests for multipart request parsing and validation order."""

import asyncio
import io

import pytest
from starlette.datastructures import FormData, UploadFile

from image_convert_service import InputError, Settings
from image_convert_service.validation import InputFile, parse_conversion_request


def upload(name: str = "a.png", data: bytes = b"0123456789") -> UploadFile:
    return UploadFile(file=io.BytesIO(data), filename=name, size=len(data))


def parse(items, **settings_overrides):
    settings = Settings(api_key=None, **settings_overrides)
    return asyncio.run(parse_conversion_request(FormData(items), settings))


def error_message(items, **settings_overrides) -> str:
    with pytest.raises(InputError) as excinfo:
        parse(items, **settings_overrides)
    return excinfo.value.message


def test_format_checked_before_files():
    assert error_message([]) == "Format is required"


def test_blank_format_is_missing():
    assert error_message([("format", "  "), ("file", upload())]) == "Format is required"


def test_no_files():
    assert error_message([("format", "png")]) == "No files uploaded"


def test_too_many_files():
    items = [("format", "png")] + [("file", upload(f"{i}.png")) for i in range(3)]
    assert error_message(items, max_files=2) == "Maximum 2 files allowed at once"


def test_count_checked_before_size():
    big = b"x" * (1024 * 1024 + 1)
    items = [("format", "png")] + [("file", upload(f"{i}.png", big)) for i in range(3)]
    assert error_message(items, max_files=2, max_file_size_mb=1) == "Maximum 2 files allowed at once"


def test_file_too_large():
    items = [("format", "png"), ("file", upload(data=b"x" * (1024 * 1024 + 1)))]
    assert error_message(items, max_file_size_mb=1) == "File size exceeds 1MB"


@pytest.mark.parametrize("quality", ["abc", "101", "-1", "nan"])
def test_invalid_quality(quality):
    items = [("format", "jpg"), ("quality", quality), ("file", upload())]
    assert error_message(items) == "Quality must be an integer between 0 and 100"


@pytest.mark.parametrize("width", ["abc", "-5", "1.5", "-0.5"])
def test_invalid_dimension(width):
    items = [("format", "jpg"), ("width", width), ("height", "10"), ("file", upload())]
    assert error_message(items) == "Width and height must be positive integers"


def test_zero_dimensions_mean_no_resize():
    request = parse([("format", "png"), ("width", "0"), ("height", "0"), ("file", upload())])
    assert request.width is None and request.height is None
    assert request.resize is None


def test_single_dimension_does_not_resize():
    request = parse([("format", "png"), ("width", "10"), ("file", upload())])
    assert request.width == 10
    assert request.resize is None


def test_parses_fields_and_files_in_order():
    request = parse(
        [
            ("format", "JPG"),
            ("quality", "80"),
            ("width", "32"),
            ("height", "16"),
            ("first", upload("one.png", b"1")),
            ("second", upload("two.gif", b"22")),
        ]
    )

    assert request.format == "jpg"
    assert request.quality == 80
    assert request.resize == (32, 16)
    assert [f.name for f in request.files] == ["one.png", "two.gif"]
    assert [f.data for f in request.files] == [b"1", b"22"]
    assert [f.size for f in request.files] == [1, 2]


def test_empty_quality_uses_codec_default():
    request = parse([("format", "webp"), ("quality", ""), ("file", upload())])
    assert request.quality is None


def test_input_file_discard():
    source = InputFile(name="a.png", data=b"abc", size=3)
    source.discard()
    assert source.data == b""

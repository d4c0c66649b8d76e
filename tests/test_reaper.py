"""Tests for handle and buffer cleanup."""

import pytest

from image_convert_service.reaper import ResourceReaper
from image_convert_service.validation import InputFile


class Handle:
    def __init__(self, name, log, fail=False):
        self.name = name
        self.log = log
        self.fail = fail

    def close(self):
        self.log.append(self.name)
        if self.fail:
            raise RuntimeError(f"{self.name} would not close")


def test_closes_in_reverse_order_and_discards_buffers():
    log = []
    source = InputFile(name="a.png", data=b"abc", size=3)

    with ResourceReaper() as reaper:
        first = reaper.track(Handle("first", log))
        reaper.track(Handle("second", log))
        reaper.track_buffer(source)
        assert first.name == "first"
        assert reaper.tracked == 2

    assert log == ["second", "first"]
    assert source.data == b""
    assert reaper.tracked == 0


def test_releases_on_exception():
    log = []
    source = InputFile(name="a.png", data=b"abc", size=3)

    with pytest.raises(ValueError):
        with ResourceReaper() as reaper:
            reaper.track(Handle("only", log))
            reaper.track_buffer(source)
            raise ValueError("decode failed")

    assert log == ["only"]
    assert source.data == b""


def test_close_failure_is_logged_not_raised(caplog):
    log = []

    with ResourceReaper() as reaper:
        reaper.track(Handle("good", log))
        reaper.track(Handle("bad", log, fail=True))

    assert log == ["bad", "good"]
    assert "Failed to close image handle" in caplog.text

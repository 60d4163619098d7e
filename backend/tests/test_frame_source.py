"""Tests for CaptureSource with cv2.VideoCapture replaced by an in-memory fake."""
from __future__ import annotations

import time

import numpy as np
import pytest

from cv import frame_source
from cv.exceptions import SourceNotReadyError
from cv.frame_source import CaptureSource, _is_remote_stream_url, _parse_source


class FakeCapture:
    def __init__(self, frames=5, width=64, height=48, fps=200.0, opened=True):
        self.frames = frames
        self.width = width
        self.height = height
        self.fps = fps
        self.opened = opened
        self.position = 0
        self.released = False

    def isOpened(self):
        return self.opened and not self.released

    def get(self, prop):
        return self.fps

    def set(self, prop, value):
        self.position = int(value)
        return True

    def read(self):
        if self.position >= self.frames:
            return False, None
        self.position += 1
        return True, np.full((self.height, self.width, 3), self.position, dtype=np.uint8)

    def release(self):
        self.released = True


@pytest.fixture()
def fake_capture(monkeypatch):
    captures: list[FakeCapture] = []
    options: dict = {}

    def _factory(*args, **kwargs):
        cap = FakeCapture(**options)
        captures.append(cap)
        return cap

    monkeypatch.setattr(frame_source.cv2, "VideoCapture", _factory)
    return captures, options


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


# ---------- Source parsing ----------

class TestSourceParsing:
    def test_camera_index_string_becomes_int(self):
        assert _parse_source("0") == 0
        assert _parse_source(" 2 ") == 2

    def test_paths_stay_strings(self):
        assert _parse_source("clips/demo.mp4") == "clips/demo.mp4"

    @pytest.mark.parametrize("url", ["rtsp://cam/stream", "http://host/feed", "udp://0.0.0.0:5000"])
    def test_remote_urls(self, url):
        assert _is_remote_stream_url(url)

    @pytest.mark.parametrize("value", ["clips/demo.mp4", "/tmp/a.mp4", 0])
    def test_local_sources(self, value):
        assert not _is_remote_stream_url(value)


# ---------- Capture lifecycle ----------

class TestCaptureSource:
    def test_not_ready_before_start(self, fake_capture):
        source = CaptureSource("clip.mp4")
        assert not source.is_ready()
        assert source.natural_dimensions() == (0, 0)
        with pytest.raises(SourceNotReadyError):
            source.current_frame()

    def test_serves_latest_frame(self, fake_capture):
        source = CaptureSource("clip.mp4")
        source.start()
        try:
            assert _wait_for(source.is_ready)
            assert source.natural_dimensions() == (64, 48)
            frame = source.current_frame()
            assert frame.shape == (48, 64, 3)
            assert source.frame_index >= 0
        finally:
            source.close()

    def test_file_loops_when_enabled(self, fake_capture):
        source = CaptureSource("clip.mp4", loop=True)
        source.start()
        try:
            # Five frames per pass; seeing more means playback rewound.
            assert _wait_for(lambda: source.frame_index >= 7)
            assert source.is_ready()
        finally:
            source.close()

    def test_stops_at_end_without_loop(self, fake_capture):
        source = CaptureSource("clip.mp4", loop=False)
        source.start()
        assert _wait_for(lambda: not source.is_ready() and source.frame_index == 4)
        source.close()

    def test_pause_and_resume(self, fake_capture):
        source = CaptureSource("clip.mp4")
        source.start()
        try:
            assert _wait_for(source.is_ready)
            source.pause()
            assert not source.is_ready()
            source.resume()
            assert source.is_ready()
        finally:
            source.close()

    def test_close_releases_capture(self, fake_capture):
        captures, _ = fake_capture
        source = CaptureSource("clip.mp4")
        source.start()
        assert _wait_for(source.is_ready)
        source.close()

        assert not source.is_ready()
        assert captures[0].released
        with pytest.raises(SourceNotReadyError):
            source.current_frame()

    def test_unopenable_file_never_ready(self, fake_capture):
        captures, options = fake_capture
        options["opened"] = False
        source = CaptureSource("missing.mp4")
        source.start()
        assert _wait_for(lambda: captures and captures[0].released)
        assert not source.is_ready()
        source.close()

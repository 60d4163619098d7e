"""
OpenCV capture source that always hands out the newest frame.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Optional, Tuple
from urllib.parse import urlparse

import cv2
import numpy as np

from cv.config import DEFAULT_SOURCE_FPS, SOURCE_RECONNECT_MAX_BACKOFF_SEC
from cv.exceptions import SourceNotReadyError

logger = logging.getLogger(__name__)


def _is_remote_stream_url(source: str | int) -> bool:
    if not isinstance(source, str):
        return False
    scheme = urlparse(source).scheme.lower()
    return scheme in {"rtsp", "http", "https", "rtmp", "udp", "tcp", "webrtc"}


def _parse_source(source: str) -> str | int:
    # Camera indices come through config as strings.
    return int(source) if source.strip().isdigit() else source


class CaptureSource:
    """
    Reader thread over ``cv2.VideoCapture`` keeping only the latest frame.

    Implements the video source contract used by the frame scheduler:
    ``is_ready``, ``current_frame`` and ``natural_dimensions``.
    """

    def __init__(self, source: str | int, loop: bool = True) -> None:
        self.source = _parse_source(source) if isinstance(source, str) else source
        self.loop = loop
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._paused = threading.Event()
        self._thread: threading.Thread | None = None
        self._frame: Optional[np.ndarray] = None
        self._frame_index = -1
        self._dimensions: Tuple[int, int] = (0, 0)

    # ---------- Video source contract ----------

    def is_ready(self) -> bool:
        with self._lock:
            has_frame = self._frame is not None
        return (
            has_frame
            and not self._paused.is_set()
            and self._thread is not None
            and self._thread.is_alive()
        )

    def current_frame(self) -> np.ndarray:
        with self._lock:
            frame = self._frame
        if frame is None:
            raise SourceNotReadyError(f"No frame captured yet from {self.source}")
        return frame

    def natural_dimensions(self) -> Tuple[int, int]:
        with self._lock:
            return self._dimensions

    @property
    def frame_index(self) -> int:
        with self._lock:
            return self._frame_index

    # ---------- Lifecycle ----------

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stopped.clear()
            self._thread = threading.Thread(target=self._run, daemon=True)
            self._thread.start()

    def pause(self) -> None:
        self._paused.set()

    def resume(self) -> None:
        self._paused.clear()

    def close(self) -> None:
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout=2)
            self._thread = None
        with self._lock:
            self._frame = None

    def _open(self) -> cv2.VideoCapture:
        if _is_remote_stream_url(self.source):
            return cv2.VideoCapture(self.source, cv2.CAP_FFMPEG)
        return cv2.VideoCapture(self.source)

    def _run(self) -> None:
        cap = self._open()
        is_remote = _is_remote_stream_url(self.source)
        reconnect_backoff = 0.5

        fps = cap.get(cv2.CAP_PROP_FPS) if cap.isOpened() else 0.0
        # Some backends report invalid FPS (0/NaN/extreme values); keep sane default.
        if not fps or fps <= 1 or fps > 240:
            fps = DEFAULT_SOURCE_FPS
        frame_interval = None if is_remote else 1.0 / fps
        next_frame_time = time.monotonic()

        while not self._stopped.is_set():
            if not cap.isOpened():
                if not is_remote:
                    logger.error("Failed to open source: %s", self.source)
                    break
                logger.warning("Source %s disconnected; reconnecting in %.1fs", self.source, reconnect_backoff)
                time.sleep(reconnect_backoff)
                reconnect_backoff = min(reconnect_backoff * 2.0, SOURCE_RECONNECT_MAX_BACKOFF_SEC)
                cap = self._open()
                continue

            if self._paused.is_set():
                time.sleep(0.01)
                continue

            ret, frame = cap.read()
            if not ret:
                if is_remote:
                    cap.release()
                    continue
                if self.loop:
                    cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
                    next_frame_time = time.monotonic()
                    continue
                break

            reconnect_backoff = 0.5
            height, width = frame.shape[:2]
            with self._lock:
                self._frame = frame
                self._frame_index += 1
                self._dimensions = (width, height)

            # File playback is paced by its own FPS; live sources drive timing.
            if frame_interval is not None:
                next_frame_time += frame_interval
                sleep = next_frame_time - time.monotonic()
                if sleep > 0:
                    time.sleep(sleep)
                elif sleep < -(frame_interval * 3):
                    next_frame_time = time.monotonic()

        cap.release()
        logger.info("Capture from %s stopped", self.source)

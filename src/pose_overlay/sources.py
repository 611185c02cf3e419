from __future__ import annotations

import asyncio
import logging
import os
import platform
import threading
import time
from typing import Any, Protocol

import cv2
import numpy as np

LOGGER = logging.getLogger("pose_overlay.sources")


class VideoSource(Protocol):
    width: int
    height: int

    @property
    def closed(self) -> bool: ...

    def is_ready(self) -> bool: ...

    def read(self) -> np.ndarray | None: ...


class CameraSource:
    """OpenCV capture that keeps the most recent frame for the event loop.

    Blocking ``VideoCapture.read`` calls run in a worker thread; the loop only
    ever sees the latest complete frame.
    """

    def __init__(self, source: str, *, width: int = 640, height: int = 480) -> None:
        self.source = source
        self.width = int(width)
        self.height = int(height)
        self.current_source_desc = "none"
        self._capture: cv2.VideoCapture | None = None
        self._latest: np.ndarray | None = None
        self._frame_count = 0
        self._closed = False
        self._last_reopen_attempt = 0.0
        self._reopen_interval_sec = 3.0
        self._failed_logged = False
        self._pumping = False
        # held by the worker thread for the whole of a read or reopen
        self._capture_lock = threading.Lock()
        self._open_capture()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def is_ready(self) -> bool:
        return not self._closed and self._latest is not None

    def read(self) -> np.ndarray | None:
        if self._closed:
            return None
        return self._latest

    async def run(self) -> None:
        self._pumping = True
        try:
            while not self._closed:
                frame = await asyncio.to_thread(self._read_once)
                if frame is None:
                    await asyncio.sleep(0.05)
                    continue
                if frame.shape[1] != self.width or frame.shape[0] != self.height:
                    frame = cv2.resize(frame, (self.width, self.height))
                self._latest = frame
                self._frame_count += 1
        finally:
            self._pumping = False
            # a cancelled to_thread call keeps reading; the lock waits it out
            await asyncio.to_thread(self._release_capture)

    def close(self) -> None:
        """Stop producing frames.

        While ``run`` is pumping, the capture is released by ``run`` once the
        in-flight read has returned.
        """
        self._closed = True
        self._latest = None
        if not self._pumping:
            self._release_capture()

    def _release_capture(self) -> None:
        with self._capture_lock:
            if self._capture is not None:
                self._capture.release()
                self._capture = None

    def _read_once(self) -> np.ndarray | None:
        with self._capture_lock:
            if self._closed:
                return None
            if self._capture is not None and self._capture.isOpened():
                ok, frame = self._capture.read()
                if ok and frame is not None:
                    return frame

            now = time.monotonic()
            if now - self._last_reopen_attempt >= self._reopen_interval_sec:
                self._last_reopen_attempt = now
                self._reopen_capture()
            return None

    def _reopen_capture(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
        if not self._closed:
            self._open_capture()

    def _open_capture(self) -> None:
        if platform.system().lower() == "darwin":
            os.environ.setdefault("OPENCV_AVFOUNDATION_SKIP_AUTH", "1")

        parsed: Any
        if self.source.isdigit():
            parsed = int(self.source)
            desc = f"webcam_index({self.source})"
        else:
            parsed = self.source
            desc = f"video_source({self.source})"

        cap = cv2.VideoCapture(parsed)
        if self._closed:
            cap.release()
            return
        if cap.isOpened():
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
            self._capture = cap
            self.current_source_desc = desc
            self._failed_logged = False
            LOGGER.info("camera source opened: %s", desc)
            return

        cap.release()
        self._capture = None
        self.current_source_desc = "none"
        if not self._failed_logged:
            LOGGER.error("camera source open failed: %s", desc)
            self._failed_logged = True

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable

import cv2
import numpy as np

from .capture import FfmpegCaptureSession, RecordingSupport, detect_recording_support
from .compositor import capture
from .config import AppConfig
from .detection import DetectionLoop
from .engine import InferenceEngine, MediaPipePoseEngine
from .export import LocalExporter, take_screenshot
from .pose_cell import PoseCell
from .recorder import RecordingController, format_duration, format_size_mb
from .renderer import LiveOverlay, OverlaySurface, blend_overlay
from .scheduler import PeriodicTask
from .sources import CameraSource

LOGGER = logging.getLogger("pose_overlay.app")

WINDOW_NAME = "pose-overlay"
CLOSE_TIMEOUT_SEC = 10.0


def recording_status_text(recorder: RecordingController) -> str:
    limits = recorder.limits
    status = recorder.status()
    return (
        f"REC {format_duration(status.duration_seconds)} / {format_duration(limits.max_duration_seconds)}"
        f"  {format_size_mb(status.estimated_size_bytes)}MB / {format_size_mb(limits.max_bytes)}MB"
    )


class PoseOverlayApp:
    """Wires camera, inference, overlay and recorder onto one event loop.

    Keys in the preview window: ``s`` screenshot, ``r`` start/stop recording,
    ``q`` or ``Esc`` quit.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        source: CameraSource,
        engine: InferenceEngine,
        support: RecordingSupport,
    ) -> None:
        self.config = config
        self.source = source
        self.engine = engine
        self.cell = PoseCell()
        self.surface = OverlaySurface()
        self.overlay = LiveOverlay(self.surface, self.cell, config.style)
        self.detection = DetectionLoop(source, engine, self.cell, fps=config.display_fps)
        self.exporter = LocalExporter(config.export_dir)
        self.recorder = RecordingController(
            config.limits,
            support,
            self._create_capture,
            self.exporter,
        )
        self.render_loop = PeriodicTask(1.0 / max(config.display_fps, 1), self.render_tick, name="render-loop")
        self._capture_session: FfmpegCaptureSession | None = None
        self._quit: asyncio.Event | None = None
        self._record_requested = config.record_seconds is not None
        self._record_deadline: float | None = None

    def _create_capture(
        self,
        stream: Any,
        on_segment: Callable[[bytes], None],
        on_closed: Callable[[], None],
    ) -> FfmpegCaptureSession:
        session = FfmpegCaptureSession(
            stream,
            self.recorder.support,
            on_segment=on_segment,
            on_closed=on_closed,
            fps=self.config.record_fps,
        )
        self._capture_session = session
        return session

    def request_quit(self) -> None:
        if self._quit is not None:
            self._quit.set()

    def screenshot(self) -> Path | None:
        if self.recorder.is_recording:
            LOGGER.info("screenshot is disabled while recording")
            return None
        frame = self.cell.latest()
        joints = frame.joints if frame is not None else None
        return take_screenshot(
            lambda: capture(self.source, joints, self.config.width, self.config.height, self.overlay.style),
            self.exporter,
        )

    def toggle_recording(self) -> None:
        if self.recorder.is_recording:
            self.recorder.stop()
            return
        if not self.recorder.is_supported:
            LOGGER.warning("recording unavailable: %s", self.recorder.unsupported_reason)
            return
        self.recorder.start(self.source)

    def render_tick(self) -> None:
        self.overlay.tick()
        if self.config.headless:
            self._headless_tick()
            return

        frame = self.source.read()
        overlay = self.surface.image
        if frame is None or overlay is None:
            preview = np.zeros((self.config.height, self.config.width, 3), dtype=np.uint8)
        else:
            preview = blend_overlay(frame, overlay)
        if self.recorder.is_recording:
            color = (0, 0, 255) if self.recorder.is_warning else (255, 255, 255)
            cv2.putText(
                preview,
                recording_status_text(self.recorder),
                (12, 28),
                cv2.FONT_HERSHEY_SIMPLEX,
                0.6,
                color,
                2,
                cv2.LINE_AA,
            )
        cv2.imshow(WINDOW_NAME, preview)
        key = cv2.waitKey(1) & 0xFF
        if key == ord("s"):
            self.screenshot()
        elif key == ord("r"):
            self.toggle_recording()
        elif key in (ord("q"), 27):
            self.request_quit()

    def _headless_tick(self) -> None:
        if not self._record_requested:
            return
        loop = asyncio.get_running_loop()
        if self._record_deadline is None:
            if not self.source.is_ready():
                return
            if not self.recorder.start(self.source):
                self.request_quit()
                return
            self._record_deadline = loop.time() + float(self.config.record_seconds or 0.0)
            return
        if self.recorder.is_recording and loop.time() >= self._record_deadline:
            self.recorder.stop()
        if not self.recorder.is_recording:
            self._record_requested = False
            self.request_quit()

    async def run(self) -> None:
        self._quit = asyncio.Event()
        self.surface.attach(self.config.width, self.config.height)
        camera_task = asyncio.create_task(self.source.run(), name="camera")
        self.detection.start()
        self.render_loop.start()
        LOGGER.info(
            "running source=%s size=%dx%d recording_supported=%s",
            self.config.video_source,
            self.config.width,
            self.config.height,
            self.recorder.is_supported,
        )
        try:
            await self._quit.wait()
        finally:
            self.render_loop.cancel()
            self.detection.cancel()
            self.recorder.stop()
            if self._capture_session is not None:
                try:
                    await asyncio.wait_for(self._capture_session.wait_closed(), timeout=CLOSE_TIMEOUT_SEC)
                except asyncio.TimeoutError:
                    LOGGER.error("recording did not finish within %.0fs", CLOSE_TIMEOUT_SEC)
            self.source.close()
            camera_task.cancel()
            await asyncio.gather(camera_task, return_exceptions=True)
            self.surface.detach()
            if not self.config.headless:
                cv2.destroyAllWindows()


def run_app(config: AppConfig) -> None:
    support = detect_recording_support()
    if not support.supported:
        LOGGER.warning("recording disabled: %s", support.reason)
    source = CameraSource(config.video_source, width=config.width, height=config.height)
    engine = MediaPipePoseEngine(model_path=config.pose_task_model_path)
    app = PoseOverlayApp(config, source=source, engine=engine, support=support)
    try:
        asyncio.run(app.run())
    finally:
        engine.close()
        source.close()

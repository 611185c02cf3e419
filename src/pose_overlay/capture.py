from __future__ import annotations

import asyncio
import logging
import shutil
import subprocess
from dataclasses import dataclass
from typing import Callable

import cv2
import numpy as np

from .sources import VideoSource

LOGGER = logging.getLogger("pose_overlay.capture")

# preferred first, like a browser picking vp9 before vp8
ENCODER_PREFERENCE: tuple[tuple[str, str], ...] = (
    ("libvpx-vp9", "webm"),
    ("libvpx", "webm"),
)
DEFAULT_VIDEO_BITRATE = 2_500_000
READ_CHUNK_BYTES = 64 * 1024


@dataclass(frozen=True)
class RecordingSupport:
    supported: bool
    reason: str = ""
    codec: str | None = None
    container: str = "webm"
    ffmpeg: str | None = None


def find_ffmpeg() -> str | None:
    return shutil.which("ffmpeg")


def list_encoders(ffmpeg: str) -> set[str]:
    p = subprocess.run(
        [ffmpeg, "-hide_banner", "-encoders"],
        stdout=subprocess.PIPE,
        stderr=subprocess.DEVNULL,
        check=False,
        text=True,
        timeout=10,
    )
    names: set[str] = set()
    for line in (p.stdout or "").splitlines():
        parts = line.split()
        # rows look like " V....D libvpx-vp9           libvpx VP9"
        if len(parts) >= 2 and len(parts[0]) == 6 and parts[0][0] in "VAS" and parts[1] != "=":
            names.add(parts[1])
    return names


def detect_recording_support(ffmpeg: str | None = None) -> RecordingSupport:
    ffmpeg = ffmpeg or find_ffmpeg()
    if not ffmpeg:
        return RecordingSupport(
            supported=False,
            reason="ffmpeg was not found on PATH, so recording is unavailable.",
        )
    try:
        encoders = list_encoders(ffmpeg)
    except (OSError, subprocess.SubprocessError) as exc:
        return RecordingSupport(
            supported=False,
            reason=f"ffmpeg could not be queried for encoders ({exc}).",
            ffmpeg=ffmpeg,
        )

    for codec, container in ENCODER_PREFERENCE:
        if codec in encoders:
            return RecordingSupport(supported=True, codec=codec, container=container, ffmpeg=ffmpeg)
    return RecordingSupport(
        supported=False,
        reason="this ffmpeg build has no WebM (VP9/VP8) encoder, so recording is unavailable.",
        ffmpeg=ffmpeg,
    )


class FfmpegCaptureSession:
    """Encodes frames from a live source into WebM through an ffmpeg pipe.

    Encoded output is buffered and handed to ``on_segment`` once per
    timeslice. After ``stop()`` the remaining output is emitted as a final
    segment and then ``on_closed`` fires exactly once.
    """

    def __init__(
        self,
        stream: VideoSource,
        support: RecordingSupport,
        *,
        on_segment: Callable[[bytes], None],
        on_closed: Callable[[], None],
        fps: int = 30,
        bitrate: int = DEFAULT_VIDEO_BITRATE,
    ) -> None:
        if not support.supported or not support.ffmpeg or not support.codec:
            raise ValueError(f"recording is not supported: {support.reason}")
        self.stream = stream
        self.support = support
        self.on_segment = on_segment
        self.on_closed = on_closed
        self.fps = max(1, int(fps))
        self.bitrate = int(bitrate)
        self.width = int(stream.width)
        self.height = int(stream.height)
        self._buffer = bytearray()
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def build_command(self) -> list[str]:
        return [
            str(self.support.ffmpeg),
            "-hide_banner",
            "-loglevel",
            "error",
            "-f",
            "rawvideo",
            "-pix_fmt",
            "bgr24",
            "-s",
            f"{self.width}x{self.height}",
            "-r",
            str(self.fps),
            "-i",
            "pipe:0",
            "-an",
            "-c:v",
            str(self.support.codec),
            "-b:v",
            str(self.bitrate),
            "-deadline",
            "realtime",
            "-cpu-used",
            "8",
            "-f",
            self.support.container,
            "-live",
            "1",
            "pipe:1",
        ]

    def start(self, timeslice_sec: float) -> None:
        if self._task is not None:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(
            self._run(float(timeslice_sec)),
            name="ffmpeg-capture",
        )

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    async def wait_closed(self) -> None:
        if self._task is not None:
            await self._task

    async def _run(self, timeslice_sec: float) -> None:
        assert self._stop_event is not None
        cmd = self.build_command()
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            LOGGER.error("failed to start ffmpeg: %s", exc)
            self._finish()
            return

        LOGGER.info("ffmpeg capture started pid=%s codec=%s", proc.pid, self.support.codec)
        reader = asyncio.create_task(self._read_output(proc))
        pump = asyncio.create_task(self._pump_frames(proc))
        flusher = asyncio.create_task(self._flush_every(timeslice_sec))
        try:
            await self._stop_event.wait()
        finally:
            pump.cancel()
            await asyncio.gather(pump, return_exceptions=True)
            await self._close_stdin(proc)
            await asyncio.gather(reader, return_exceptions=True)
            flusher.cancel()
            await asyncio.gather(flusher, return_exceptions=True)
            self._emit()
            returncode = await proc.wait()
            if returncode != 0:
                LOGGER.warning("ffmpeg exited with code %s", returncode)
            self._finish()

    async def _pump_frames(self, proc: asyncio.subprocess.Process) -> None:
        assert proc.stdin is not None
        interval = 1.0 / self.fps
        loop = asyncio.get_running_loop()
        last_frame: np.ndarray | None = None
        try:
            while True:
                started = loop.time()
                frame = self.stream.read()
                if frame is not None:
                    last_frame = frame
                if last_frame is not None:
                    proc.stdin.write(self._prepare(last_frame).tobytes())
                    await proc.stdin.drain()
                elapsed = loop.time() - started
                await asyncio.sleep(max(0.0, interval - elapsed))
        except (BrokenPipeError, ConnectionResetError) as exc:
            LOGGER.error("ffmpeg input pipe closed: %s", exc)
            self.stop()

    def _prepare(self, frame: np.ndarray) -> np.ndarray:
        if frame.ndim == 2:
            frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
        elif frame.shape[2] == 4:
            frame = cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
        if frame.shape[1] != self.width or frame.shape[0] != self.height:
            frame = cv2.resize(frame, (self.width, self.height))
        return np.ascontiguousarray(frame, dtype=np.uint8)

    async def _read_output(self, proc: asyncio.subprocess.Process) -> None:
        assert proc.stdout is not None
        while True:
            data = await proc.stdout.read(READ_CHUNK_BYTES)
            if not data:
                break
            self._buffer.extend(data)
        if self._stop_event is not None and not self._stop_event.is_set():
            LOGGER.warning("ffmpeg output ended before stop was requested")
            self._stop_event.set()

    async def _flush_every(self, timeslice_sec: float) -> None:
        while True:
            await asyncio.sleep(timeslice_sec)
            self._emit()

    async def _close_stdin(self, proc: asyncio.subprocess.Process) -> None:
        if proc.stdin is None:
            return
        try:
            proc.stdin.close()
            await proc.stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            pass

    def _emit(self) -> None:
        if not self._buffer:
            return
        segment = bytes(self._buffer)
        self._buffer.clear()
        self.on_segment(segment)

    def _finish(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.on_closed()

from __future__ import annotations

import enum
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Protocol

from .capture import RecordingSupport
from .config import RecordingLimits
from .export import RECORDING_PREFIX, timestamp_name
from .scheduler import PeriodicTask

LOGGER = logging.getLogger("pose_overlay.recorder")

SEGMENT_INTERVAL_SEC = 1.0
TIMER_INTERVAL_SEC = 1.0


class RecorderState(enum.Enum):
    IDLE = "idle"
    RECORDING = "recording"


class CaptureBackend(Protocol):
    def start(self, timeslice_sec: float) -> None: ...

    def stop(self) -> None: ...


CaptureFactory = Callable[[Any, Callable[[bytes], None], Callable[[], None]], CaptureBackend]


@dataclass
class RecordingSession:
    state: RecorderState
    started_at_monotonic: float
    accumulated_bytes: int = 0
    chunks: list[bytes] = field(default_factory=list)
    stopped_at_monotonic: float | None = None

    def append(self, chunk: bytes) -> None:
        self.chunks.append(chunk)
        self.accumulated_bytes = sum(len(c) for c in self.chunks)

    def elapsed_seconds(self, now: float) -> int:
        end = self.stopped_at_monotonic if self.stopped_at_monotonic is not None else now
        return max(0, math.floor(end - self.started_at_monotonic))

    def assemble(self) -> bytes:
        return b"".join(self.chunks)

    def clear(self) -> None:
        self.chunks = []
        self.accumulated_bytes = 0


@dataclass(frozen=True)
class RecordingStatus:
    is_recording: bool
    duration_seconds: int
    estimated_size_bytes: int
    is_warning: bool


def format_duration(seconds: float) -> str:
    total = max(0, int(seconds))
    return f"{total // 60:02d}:{total % 60:02d}"


def format_size_mb(num_bytes: float) -> str:
    return f"{num_bytes / (1024 * 1024):.1f}"


class RecordingController:
    """Turns a live stream into one exported recording, bounded by ``RecordingLimits``.

    ``start`` opens a capture backend that emits a segment every second; a
    one-second timer enforces the duration ceiling and every segment arrival
    checks the size ceiling. Hitting either ceiling goes through ``stop``,
    exactly like a user stop. The artifact is assembled once the backend
    reports closed.
    """

    def __init__(
        self,
        limits: RecordingLimits,
        support: RecordingSupport,
        capture_factory: CaptureFactory,
        exporter: Callable[[str, bytes], Any],
        *,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.limits = limits
        self.support = support
        self.capture_factory = capture_factory
        self.exporter = exporter
        self.clock = clock
        self.now = now
        self._session: RecordingSession | None = None
        self._backend: CaptureBackend | None = None
        self._timer: PeriodicTask | None = None
        self.last_export: Any = None

    @property
    def is_supported(self) -> bool:
        return self.support.supported

    @property
    def unsupported_reason(self) -> str:
        return "" if self.support.supported else self.support.reason

    @property
    def state(self) -> RecorderState:
        if self._session is None:
            return RecorderState.IDLE
        return self._session.state

    @property
    def is_recording(self) -> bool:
        return self.state is RecorderState.RECORDING

    @property
    def session(self) -> RecordingSession | None:
        return self._session

    @property
    def accumulated_bytes(self) -> int:
        return self._session.accumulated_bytes if self._session is not None else 0

    @property
    def elapsed_seconds(self) -> int:
        if self._session is None:
            return 0
        return self._session.elapsed_seconds(self.clock())

    @property
    def is_warning(self) -> bool:
        return (
            self.elapsed_seconds >= self.limits.warning_duration_seconds
            or self.accumulated_bytes >= self.limits.warning_bytes
        )

    def status(self) -> RecordingStatus:
        return RecordingStatus(
            is_recording=self.is_recording,
            duration_seconds=self.elapsed_seconds,
            estimated_size_bytes=self.accumulated_bytes,
            is_warning=self.is_warning,
        )

    def start(self, stream: Any) -> bool:
        if not self.support.supported:
            LOGGER.warning("recording not supported: %s", self.support.reason)
            return False
        if self.is_recording:
            LOGGER.warning("recording already in progress")
            return False

        session = RecordingSession(state=RecorderState.RECORDING, started_at_monotonic=self.clock())
        backend = self.capture_factory(
            stream,
            lambda data: self._on_segment(session, data),
            lambda: self._on_closed(session),
        )
        self._session = session
        self._backend = backend
        backend.start(SEGMENT_INTERVAL_SEC)

        self._timer = PeriodicTask(TIMER_INTERVAL_SEC, self.check_duration, name="recording-timer")
        self._timer.start()
        LOGGER.info(
            "recording started (limits: %ss, %s MB)",
            self.limits.max_duration_seconds,
            format_size_mb(self.limits.max_bytes),
        )
        return True

    def stop(self) -> None:
        session = self._session
        if session is None or session.state is not RecorderState.RECORDING:
            return
        session.state = RecorderState.IDLE
        session.stopped_at_monotonic = self.clock()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        backend = self._backend
        self._backend = None
        LOGGER.info(
            "recording stopped after %ss (%s MB)",
            session.elapsed_seconds(self.clock()),
            format_size_mb(session.accumulated_bytes),
        )
        if backend is not None:
            backend.stop()

    def check_duration(self) -> None:
        session = self._session
        if session is None or session.state is not RecorderState.RECORDING:
            return
        elapsed = session.elapsed_seconds(self.clock())
        if elapsed >= self.limits.max_duration_seconds:
            LOGGER.info("recording duration limit reached (%ss)", elapsed)
            self.stop()

    def _on_segment(self, session: RecordingSession, data: bytes) -> None:
        if not data:
            return
        session.append(data)
        if session.state is RecorderState.RECORDING and session.accumulated_bytes >= self.limits.max_bytes:
            LOGGER.info("recording size limit reached (%s MB)", format_size_mb(session.accumulated_bytes))
            self.stop()

    def _on_closed(self, session: RecordingSession) -> None:
        if session.state is RecorderState.RECORDING:
            # backend ended on its own (encoder crash, broken pipe)
            LOGGER.warning("capture backend closed while recording")
            if self._session is session:
                self._backend = None
                self.stop()
            else:
                session.state = RecorderState.IDLE
        try:
            if session.chunks:
                filename = timestamp_name(RECORDING_PREFIX, self.support.container, self.now())
                self.last_export = self.exporter(filename, session.assemble())
        except OSError as exc:
            LOGGER.error("failed to export recording: %s", exc)
        finally:
            session.clear()
            if self._session is session:
                self._session = None

from __future__ import annotations

from typing import Any, Callable

import numpy as np
import pytest

from pose_overlay.models import Joint
from pose_overlay.topology import NUM_JOINTS


class FakeSource:
    def __init__(self, frame: np.ndarray | None = None, *, width: int = 64, height: int = 48) -> None:
        self.width = width
        self.height = height
        self.frame = frame
        self.closed = False
        self.reads = 0

    def is_ready(self) -> bool:
        return self.frame is not None

    def read(self) -> np.ndarray | None:
        self.reads += 1
        return self.frame


class FakeEngine:
    def __init__(self, results: list[Any] | None = None) -> None:
        self.results = results if results is not None else []
        self.calls: list[int] = []
        self.closed = False
        self.error: Exception | None = None

    def detect(self, frame: np.ndarray, timestamp_ms: int) -> Any:
        self.calls.append(timestamp_ms)
        if self.error is not None:
            raise self.error
        return self.results


class FakeBackend:
    def __init__(self, stream: Any, on_segment: Callable[[bytes], None], on_closed: Callable[[], None]) -> None:
        self.stream = stream
        self.on_segment = on_segment
        self.on_closed = on_closed
        self.timeslice: float | None = None
        self.stop_calls = 0
        self.closed = False

    def start(self, timeslice_sec: float) -> None:
        self.timeslice = timeslice_sec

    def stop(self) -> None:
        self.stop_calls += 1

    def emit(self, data: bytes) -> None:
        self.on_segment(data)

    def finish(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.on_closed()


class BackendFactory:
    def __init__(self) -> None:
        self.created: list[FakeBackend] = []

    def __call__(self, stream: Any, on_segment: Callable[[bytes], None], on_closed: Callable[[], None]) -> FakeBackend:
        backend = FakeBackend(stream, on_segment, on_closed)
        self.created.append(backend)
        return backend

    @property
    def last(self) -> FakeBackend:
        return self.created[-1]


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def full_pose(x: float = 0.5, y: float = 0.5) -> list[Joint]:
    return [Joint(x=x, y=y) for _ in range(NUM_JOINTS)]


@pytest.fixture
def frame() -> np.ndarray:
    image = np.zeros((48, 64, 3), dtype=np.uint8)
    image[:, :] = (40, 80, 120)
    return image

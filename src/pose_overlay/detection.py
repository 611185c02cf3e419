from __future__ import annotations

import logging
import time
from typing import Callable

from .engine import InferenceEngine
from .pose_cell import PoseCell
from .scheduler import PeriodicTask
from .sources import VideoSource

LOGGER = logging.getLogger("pose_overlay.detection")


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000.0)


class DetectionLoop:
    """Runs inference once per display tick and publishes into a ``PoseCell``.

    Inference is skipped when the tick timestamp equals the last processed
    one, which happens when ticks fire faster than the clock resolution.
    """

    def __init__(
        self,
        source: VideoSource,
        engine: InferenceEngine,
        cell: PoseCell,
        *,
        fps: float = 60.0,
        clock: Callable[[], int] = monotonic_ms,
    ) -> None:
        self.source = source
        self.engine = engine
        self.cell = cell
        self.clock = clock
        self.last_timestamp_ms: int | None = None
        self._task = PeriodicTask(1.0 / max(float(fps), 1.0), self.tick, name="detection-loop")
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def start(self) -> None:
        if self._cancelled:
            return
        self._task.start()

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._task.cancel()
        LOGGER.info("detection loop cancelled")

    async def wait_closed(self) -> None:
        await self._task.wait_closed()

    def tick(self) -> bool:
        """Run one detection step. Returns True when the pose cell was updated."""
        if self._cancelled:
            return False
        if self.source.closed or self.engine.closed:
            self.cancel()
            return False
        if not self.source.is_ready():
            return False
        frame = self.source.read()
        if frame is None:
            return False

        timestamp_ms = self.clock()
        if timestamp_ms == self.last_timestamp_ms:
            return False

        joints = None
        try:
            poses = self.engine.detect(frame, timestamp_ms)
            if poses:
                joints = poses[0]
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("pose detection failed: %s", exc)
            joints = None

        if self._cancelled:
            return False
        self.cell.publish(joints, timestamp_ms)
        self.last_timestamp_ms = timestamp_ms
        return True

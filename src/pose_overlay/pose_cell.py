from __future__ import annotations

from typing import Any, Sequence

from .models import PoseFrame


class PoseCell:
    """Single-slot, last-write-wins box holding the most recent pose.

    Every publish replaces the whole ``PoseFrame``; readers always get either
    the previous frame or the current one, never a mix.
    """

    def __init__(self) -> None:
        self._frame: PoseFrame | None = None
        self._version = 0

    def publish(self, joints: Sequence[Any] | None, timestamp_ms: int) -> PoseFrame:
        frame = PoseFrame(
            joints=tuple(joints) if joints else None,
            timestamp_ms=int(timestamp_ms),
        )
        self._frame = frame
        self._version += 1
        return frame

    def latest(self) -> PoseFrame | None:
        return self._frame

    @property
    def version(self) -> int:
        return self._version

    def reset(self) -> None:
        self._frame = None
        self._version += 1

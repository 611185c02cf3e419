from __future__ import annotations

import logging
from typing import Any, Sequence

import cv2
import numpy as np

from .config import StyleConfig
from .renderer import draw_pose
from .sources import VideoSource

LOGGER = logging.getLogger("pose_overlay.compositor")


def capture(
    source: VideoSource | None,
    joints: Sequence[Any] | None,
    width: int,
    height: int,
    style: StyleConfig,
) -> bytes | None:
    """Composite the current video frame and skeleton into a PNG.

    Works on a freshly allocated buffer so the live overlay is never touched.
    Returns None when no frame is available or encoding fails.
    """
    if source is None or width <= 0 or height <= 0:
        return None
    try:
        frame = source.read()
    except Exception as exc:  # noqa: BLE001
        LOGGER.warning("capture: video source read failed: %s", exc)
        return None
    if frame is None:
        return None

    buffer = np.zeros((int(height), int(width), 3), dtype=np.uint8)
    try:
        if frame.ndim == 2:
            frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
        elif frame.shape[2] == 4:
            frame = cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
        buffer[...] = cv2.resize(frame, (int(width), int(height)))

        if joints:
            draw_pose(buffer, joints, int(width), int(height), style)

        ok, encoded = cv2.imencode(".png", buffer)
    except cv2.error as exc:
        LOGGER.warning("capture: compositing failed: %s", exc)
        return None
    if not ok:
        return None
    return encoded.tobytes()

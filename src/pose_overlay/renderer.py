from __future__ import annotations

import logging
import math
from typing import Any, Sequence

import cv2
import numpy as np

from .config import StyleConfig
from .pose_cell import PoseCell
from .topology import POSE_CONNECTIONS

LOGGER = logging.getLogger("pose_overlay.renderer")


def _to_pixel(joints: Sequence[Any], idx: int, width: int, height: int) -> tuple[float, float] | None:
    if idx < 0 or idx >= len(joints):
        return None
    joint = joints[idx]
    if joint is None:
        return None
    x = float(joint.x) * width
    y = float(joint.y) * height
    if not (math.isfinite(x) and math.isfinite(y)):
        return None
    return x, y


def _clip_segment(
    start: tuple[float, float],
    end: tuple[float, float],
    width: int,
    height: int,
    pad: float,
) -> tuple[tuple[int, int], tuple[int, int]] | None:
    """Clip a segment to the padded surface rectangle (Liang-Barsky).

    Far off-surface endpoints would overflow OpenCV's int32 points, so the
    segment is cut in float space first. Returns ``None`` when nothing of it
    can touch the surface.
    """
    x0, y0 = start
    dx = end[0] - x0
    dy = end[1] - y0
    t0, t1 = 0.0, 1.0
    for p, q in (
        (-dx, x0 + pad),
        (dx, width + pad - x0),
        (-dy, y0 + pad),
        (dy, height + pad - y0),
    ):
        if p == 0:
            if q < 0:
                return None
            continue
        t = q / p
        if p < 0:
            if t > t1:
                return None
            t0 = max(t0, t)
        else:
            if t < t0:
                return None
            t1 = min(t1, t)
    clipped_start = (int(x0 + t0 * dx), int(y0 + t0 * dy))
    clipped_end = (int(x0 + t1 * dx), int(y0 + t1 * dy))
    return clipped_start, clipped_end


def _color_for(surface: np.ndarray, bgra: tuple[int, int, int, int]) -> tuple[int, ...]:
    channels = 1 if surface.ndim == 2 else int(surface.shape[2])
    return tuple(bgra[:channels])


def clear_surface(surface: np.ndarray) -> None:
    surface[...] = 0


def draw_connections(
    surface: np.ndarray,
    joints: Sequence[Any],
    width: int,
    height: int,
    style: StyleConfig,
    connections: Sequence[tuple[int, int]] = POSE_CONNECTIONS,
) -> int:
    color = _color_for(surface, style.line_bgra)
    thickness = int(style.line_width_px)
    pad = float(thickness)
    drawn = 0
    for start_idx, end_idx in connections:
        start = _to_pixel(joints, start_idx, width, height)
        end = _to_pixel(joints, end_idx, width, height)
        if start is None or end is None:
            continue
        drawn += 1
        clipped = _clip_segment(start, end, width, height, pad)
        if clipped is None:
            continue
        # thick OpenCV lines are drawn with rounded end caps
        cv2.line(surface, clipped[0], clipped[1], color, thickness, cv2.LINE_AA)
    return drawn


def draw_landmark_points(
    surface: np.ndarray,
    joints: Sequence[Any],
    width: int,
    height: int,
    style: StyleConfig,
) -> int:
    color = _color_for(surface, style.point_bgra)
    radius = int(style.point_size_px)
    drawn = 0
    for idx in range(len(joints)):
        point = _to_pixel(joints, idx, width, height)
        if point is None:
            continue
        drawn += 1
        x, y = point
        if not (-radius <= x <= width + radius and -radius <= y <= height + radius):
            continue
        cv2.circle(surface, (int(x), int(y)), radius, color, -1, cv2.LINE_AA)
    return drawn


def draw_pose(
    surface: np.ndarray,
    joints: Sequence[Any],
    width: int,
    height: int,
    style: StyleConfig,
    connections: Sequence[tuple[int, int]] = POSE_CONNECTIONS,
) -> int:
    """Draw the skeleton on top of ``surface`` without clearing it.

    Lines go first so joint points always stay visible above them.
    Returns the number of line segments drawn.
    """
    segments = draw_connections(surface, joints, width, height, style, connections)
    draw_landmark_points(surface, joints, width, height, style)
    return segments


def render(
    surface: np.ndarray | None,
    joints: Sequence[Any] | None,
    width: int,
    height: int,
    style: StyleConfig,
) -> None:
    if surface is None:
        return
    clear_surface(surface)
    if joints:
        draw_pose(surface, joints, width, height, style)


class OverlaySurface:
    """Transparent BGRA buffer backing the on-screen overlay."""

    def __init__(self) -> None:
        self._image: np.ndarray | None = None

    @property
    def image(self) -> np.ndarray | None:
        return self._image

    @property
    def attached(self) -> bool:
        return self._image is not None

    @property
    def size(self) -> tuple[int, int]:
        if self._image is None:
            return 0, 0
        return int(self._image.shape[1]), int(self._image.shape[0])

    def attach(self, width: int, height: int) -> None:
        self._image = np.zeros((int(height), int(width), 4), dtype=np.uint8)

    def detach(self) -> None:
        self._image = None


class LiveOverlay:
    def __init__(self, surface: OverlaySurface, cell: PoseCell, style: StyleConfig) -> None:
        self.surface = surface
        self.cell = cell
        self.style = style

    def tick(self) -> None:
        image = self.surface.image
        if image is None:
            return
        frame = self.cell.latest()
        joints = frame.joints if frame is not None else None
        width, height = self.surface.size
        render(image, joints, width, height, self.style)


def blend_overlay(frame_bgr: np.ndarray, overlay_bgra: np.ndarray) -> np.ndarray:
    """Composite the BGRA overlay onto a copy of ``frame_bgr`` for display.

    Anti-aliased drawing on the cleared surface blends colour and alpha
    toward zero together, so the overlay holds premultiplied colour.
    """
    if overlay_bgra.shape[:2] != frame_bgr.shape[:2]:
        frame_bgr = cv2.resize(frame_bgr, (overlay_bgra.shape[1], overlay_bgra.shape[0]))
    alpha = overlay_bgra[:, :, 3:4].astype(np.float32) / 255.0
    base = frame_bgr.astype(np.float32)
    blended = overlay_bgra[:, :, :3].astype(np.float32) + base * (1.0 - alpha)
    return np.clip(np.rint(blended), 0, 255).astype(np.uint8)

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

POINT_SIZE_RANGE = (1, 15)
LINE_WIDTH_RANGE = (1, 10)

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6})$")


def parse_hex_color(value: str) -> tuple[int, int, int, int]:
    """Convert ``#RRGGBB`` into an opaque OpenCV BGRA tuple."""
    match = _HEX_COLOR.match(value.strip())
    if match is None:
        raise ValueError(f"invalid color (expected #RRGGBB): {value!r}")
    digits = match.group(1)
    r = int(digits[0:2], 16)
    g = int(digits[2:4], 16)
    b = int(digits[4:6], 16)
    return (b, g, r, 255)


@dataclass(frozen=True)
class StyleConfig:
    point_color: str = "#00FF00"
    line_color: str = "#00FF00"
    point_size_px: int = 5
    line_width_px: int = 2

    def __post_init__(self) -> None:
        parse_hex_color(self.point_color)
        parse_hex_color(self.line_color)
        lo, hi = POINT_SIZE_RANGE
        if not lo <= int(self.point_size_px) <= hi:
            raise ValueError(f"point_size_px must be within {lo}..{hi}: {self.point_size_px}")
        lo, hi = LINE_WIDTH_RANGE
        if not lo <= int(self.line_width_px) <= hi:
            raise ValueError(f"line_width_px must be within {lo}..{hi}: {self.line_width_px}")

    @property
    def point_bgra(self) -> tuple[int, int, int, int]:
        return parse_hex_color(self.point_color)

    @property
    def line_bgra(self) -> tuple[int, int, int, int]:
        return parse_hex_color(self.line_color)


@dataclass(frozen=True)
class RecordingLimits:
    max_duration_seconds: float = 5 * 60
    max_bytes: int = 150 * 1024 * 1024
    warning_threshold_percent: float = 80

    def __post_init__(self) -> None:
        if self.max_duration_seconds <= 0:
            raise ValueError(f"max_duration_seconds must be positive: {self.max_duration_seconds}")
        if self.max_bytes <= 0:
            raise ValueError(f"max_bytes must be positive: {self.max_bytes}")
        if not 0 < self.warning_threshold_percent <= 100:
            raise ValueError(
                f"warning_threshold_percent must be within (0, 100]: {self.warning_threshold_percent}"
            )

    @property
    def warning_duration_seconds(self) -> float:
        return self.max_duration_seconds * self.warning_threshold_percent / 100

    @property
    def warning_bytes(self) -> float:
        return self.max_bytes * self.warning_threshold_percent / 100


@dataclass(frozen=True)
class AppConfig:
    video_source: str = "0"
    width: int = 640
    height: int = 480
    display_fps: int = 60
    record_fps: int = 30
    export_dir: Path = Path(".")
    headless: bool = False
    record_seconds: float | None = None
    pose_task_model_path: Path | None = None
    style: StyleConfig = field(default_factory=StyleConfig)
    limits: RecordingLimits = field(default_factory=RecordingLimits)

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

LOGGER = logging.getLogger("pose_overlay.export")

SCREENSHOT_PREFIX = "pose_screenshot"
RECORDING_PREFIX = "pose_recording"


def file_timestamp(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime("%Y%m%d_%H%M%S")


def timestamp_name(prefix: str, extension: str, now: datetime | None = None) -> str:
    return f"{prefix}_{file_timestamp(now)}.{extension.lstrip('.')}"


class LocalExporter:
    """Writes finished artifacts into a local directory."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def __call__(self, filename: str, data: bytes) -> Path:
        return self.save(filename, data)

    def save(self, filename: str, data: bytes) -> Path:
        directory = self.directory.expanduser().resolve()
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / filename
        # two exports within the same second must not overwrite each other
        counter = 1
        while path.exists():
            path = directory / f"{Path(filename).stem}_{counter}{Path(filename).suffix}"
            counter += 1
        path.write_bytes(data)
        LOGGER.info("exported %s (%d bytes)", path, len(data))
        return path


def take_screenshot(
    capture_frame: Callable[[], bytes | None],
    exporter: Callable[[str, bytes], Path],
    now: datetime | None = None,
) -> Path | None:
    data = capture_frame()
    if not data:
        LOGGER.info("screenshot skipped: no frame available")
        return None
    return exporter(timestamp_name(SCREENSHOT_PREFIX, "png", now), data)

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from .app import run_app
from .config import LINE_WIDTH_RANGE, POINT_SIZE_RANGE, AppConfig, RecordingLimits, StyleConfig

LOGGER = logging.getLogger("pose_overlay")


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pose-overlay",
        description=(
            "Track a skeleton on a live video feed with MediaPipe Pose, draw it as an overlay, "
            "and export screenshots or size/time-bounded WebM recordings."
        ),
    )
    parser.add_argument(
        "--video-source",
        default="0",
        help="OpenCV source: camera index, file path or stream URL (default: 0)",
    )
    parser.add_argument("--width", type=int, default=640)
    parser.add_argument("--height", type=int, default=480)
    parser.add_argument("--display-fps", type=int, default=60, help="render/detection tick rate")
    parser.add_argument("--record-fps", type=int, default=30)
    parser.add_argument(
        "--export-dir",
        type=Path,
        default=Path("."),
        help="directory that receives screenshots and recordings",
    )
    parser.add_argument("--point-color", default="#00FF00")
    parser.add_argument("--line-color", default="#00FF00")
    parser.add_argument("--point-size", type=int, default=5, help="joint radius in px (1-15)")
    parser.add_argument("--line-width", type=int, default=2, help="bone width in px (1-10)")
    parser.add_argument("--max-duration", type=float, default=300.0, help="recording ceiling in seconds")
    parser.add_argument("--max-size-mb", type=float, default=150.0, help="recording ceiling in MiB")
    parser.add_argument("--warning-percent", type=float, default=80.0)
    parser.add_argument(
        "--headless",
        action="store_true",
        help="no preview window; combine with --record-seconds to capture one recording",
    )
    parser.add_argument(
        "--record-seconds",
        type=float,
        default=None,
        help="(headless) start recording once the camera is ready and stop after this many seconds",
    )
    parser.add_argument(
        "--pose-task-model",
        type=Path,
        default=None,
        help="(optional) .task model file for the mediapipe tasks backend",
    )
    parser.add_argument("--verbose", action="store_true")
    return parser


def config_from_args(args: argparse.Namespace) -> AppConfig:
    style = StyleConfig(
        point_color=str(args.point_color),
        line_color=str(args.line_color),
        point_size_px=int(_clamp(int(args.point_size), *POINT_SIZE_RANGE)),
        line_width_px=int(_clamp(int(args.line_width), *LINE_WIDTH_RANGE)),
    )
    limits = RecordingLimits(
        max_duration_seconds=max(1.0, float(args.max_duration)),
        max_bytes=max(1, int(float(args.max_size_mb) * 1024 * 1024)),
        warning_threshold_percent=_clamp(float(args.warning_percent), 1.0, 100.0),
    )
    return AppConfig(
        video_source=str(args.video_source),
        width=max(16, int(args.width)),
        height=max(16, int(args.height)),
        display_fps=max(1, int(args.display_fps)),
        record_fps=max(1, int(args.record_fps)),
        export_dir=args.export_dir,
        headless=bool(args.headless),
        record_seconds=None if args.record_seconds is None else max(1.0, float(args.record_seconds)),
        pose_task_model_path=args.pose_task_model,
        style=style,
        limits=limits,
    )


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = config_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        run_app(config)
    except KeyboardInterrupt:
        LOGGER.info("stopped")
    except Exception as exc:  # noqa: BLE001
        LOGGER.error("%s", exc)
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

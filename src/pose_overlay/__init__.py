"""Real-time skeleton overlay for live video, with screenshot and bounded recording export."""

from .compositor import capture
from .config import AppConfig, RecordingLimits, StyleConfig
from .detection import DetectionLoop
from .models import Joint, PoseFrame
from .pose_cell import PoseCell
from .recorder import RecorderState, RecordingController
from .renderer import render
from .topology import POSE_CONNECTIONS

__all__ = [
    "AppConfig",
    "DetectionLoop",
    "Joint",
    "POSE_CONNECTIONS",
    "PoseCell",
    "PoseFrame",
    "RecorderState",
    "RecordingController",
    "RecordingLimits",
    "StyleConfig",
    "capture",
    "render",
]

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol, Sequence
from urllib.request import Request, urlopen

import cv2
import numpy as np

try:
    import mediapipe as mp
except Exception:  # pragma: no cover
    mp = None

from .models import Joint, joints_from_landmarks

LOGGER = logging.getLogger("pose_overlay.engine")

DEFAULT_TASK_MODEL_URL = (
    "https://storage.googleapis.com/mediapipe-models/pose_landmarker/"
    "pose_landmarker_lite/float16/latest/pose_landmarker_lite.task"
)


class InferenceEngine(Protocol):
    @property
    def closed(self) -> bool: ...

    def detect(self, frame_bgr: np.ndarray, timestamp_ms: int) -> Sequence[Sequence[Joint]]: ...


class MediaPipePoseEngine:
    def __init__(
        self,
        *,
        model_path: Path | None = None,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
    ) -> None:
        self.min_detection_confidence = min_detection_confidence
        self.min_tracking_confidence = min_tracking_confidence
        self._backend = "none"
        self._pose = None
        self._landmarker = None
        self._closed = False

        if mp is None:
            raise RuntimeError("mediapipe is not installed. install it with `pip install -e .`")

        if hasattr(mp, "solutions") and hasattr(mp.solutions, "pose"):
            self._backend = "solutions"
            self._pose = mp.solutions.pose.Pose(
                static_image_mode=False,
                model_complexity=0,
                smooth_landmarks=True,
                enable_segmentation=False,
                min_detection_confidence=min_detection_confidence,
                min_tracking_confidence=min_tracking_confidence,
            )
            LOGGER.info("backend: mediapipe.solutions.pose")
            return

        resolved = resolve_task_model_path(model_path)
        self._backend = "tasks"
        options = mp.tasks.vision.PoseLandmarkerOptions(
            base_options=mp.tasks.BaseOptions(model_asset_path=str(resolved)),
            running_mode=mp.tasks.vision.RunningMode.VIDEO,
            num_poses=1,
            min_pose_detection_confidence=min_detection_confidence,
            min_pose_presence_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
            output_segmentation_masks=False,
        )
        self._landmarker = mp.tasks.vision.PoseLandmarker.create_from_options(options)
        LOGGER.info("backend: mediapipe.tasks.pose_landmarker (%s)", resolved)

    @property
    def backend(self) -> str:
        return self._backend

    @property
    def closed(self) -> bool:
        return self._closed

    def detect(self, frame_bgr: np.ndarray, timestamp_ms: int) -> list[list[Joint]]:
        if self._closed:
            return []
        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)

        if self._backend == "solutions" and self._pose is not None:
            result = self._pose.process(rgb)
            landmarks = getattr(result, "pose_landmarks", None)
            if landmarks is None:
                return []
            return [joints_from_landmarks(landmarks.landmark)]

        if self._backend == "tasks" and self._landmarker is not None:
            image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
            result = self._landmarker.detect_for_video(image, int(timestamp_ms))
            pose_landmarks = getattr(result, "pose_landmarks", None) or []
            return [joints_from_landmarks(landmarks) for landmarks in pose_landmarks]
        return []

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._pose is not None:
            self._pose.close()
            self._pose = None
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None


def resolve_task_model_path(model_path: Path | None) -> Path:
    if model_path is None:
        env_path = str(os.environ.get("MEDIAPIPE_POSE_MODEL_PATH", "")).strip()
        if env_path:
            model_path = Path(env_path)

    if model_path is not None:
        resolved = model_path.expanduser().resolve()
        if not resolved.is_file():
            raise FileNotFoundError(f"pose landmarker model not found: {resolved}")
        return resolved

    cache_dir = Path.home() / ".cache" / "pose_overlay"
    cache_dir.mkdir(parents=True, exist_ok=True)
    resolved = cache_dir / "pose_landmarker_lite.task"
    if resolved.is_file():
        return resolved

    LOGGER.info("downloading mediapipe pose model: %s", DEFAULT_TASK_MODEL_URL)
    try:
        req = Request(DEFAULT_TASK_MODEL_URL, headers={"User-Agent": "pose-overlay/0.1"})
        with urlopen(req, timeout=30) as response:
            data = response.read()
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(
            "failed to download the pose landmarker model. "
            f"pass --pose-task-model or set MEDIAPIPE_POSE_MODEL_PATH ({exc})"
        ) from exc
    resolved.write_bytes(data)
    return resolved

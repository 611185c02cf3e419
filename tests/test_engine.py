import pytest

from pose_overlay.engine import resolve_task_model_path
from pose_overlay.models import joints_from_landmarks


class Landmark:
    def __init__(self, x, y, z=0.0, visibility=0.9):
        self.x = x
        self.y = y
        self.z = z
        self.visibility = visibility


def test_explicit_model_path(tmp_path):
    model = tmp_path / "pose.task"
    model.write_bytes(b"model")
    assert resolve_task_model_path(model) == model.resolve()


def test_model_path_from_environment(tmp_path, monkeypatch):
    model = tmp_path / "env.task"
    model.write_bytes(b"model")
    monkeypatch.setenv("MEDIAPIPE_POSE_MODEL_PATH", str(model))
    assert resolve_task_model_path(None) == model.resolve()


def test_missing_model_path_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        resolve_task_model_path(tmp_path / "missing.task")


def test_landmarks_become_joints():
    joints = joints_from_landmarks([Landmark(0.1, 0.2), Landmark(0.3, 0.4, z=-0.5, visibility=0.2)])
    assert joints[0].x == pytest.approx(0.1)
    assert joints[1].z == pytest.approx(-0.5)
    assert joints[1].visibility == pytest.approx(0.2)

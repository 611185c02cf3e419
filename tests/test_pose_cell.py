import dataclasses

import pytest

from pose_overlay.models import Joint
from pose_overlay.pose_cell import PoseCell


def test_empty_cell_has_no_frame():
    cell = PoseCell()
    assert cell.latest() is None
    assert cell.version == 0


def test_last_write_wins():
    cell = PoseCell()
    first = cell.publish([Joint(x=0.1, y=0.1)], timestamp_ms=10)
    second = cell.publish([Joint(x=0.9, y=0.9)], timestamp_ms=20)

    assert cell.latest() is second
    assert cell.latest() is not first
    assert first.joints == (Joint(x=0.1, y=0.1),)
    assert cell.version == 2


def test_published_frame_is_a_snapshot():
    cell = PoseCell()
    joints = [Joint(x=0.1, y=0.1)]
    frame = cell.publish(joints, timestamp_ms=5)
    joints.append(Joint(x=0.2, y=0.2))

    assert len(frame.joints) == 1
    with pytest.raises(dataclasses.FrozenInstanceError):
        frame.timestamp_ms = 6


def test_empty_pose_is_published_as_absent():
    cell = PoseCell()
    cell.publish([Joint(x=0.5, y=0.5)], timestamp_ms=1)
    frame = cell.publish([], timestamp_ms=2)
    assert frame.joints is None
    assert not frame.has_pose
    assert cell.latest().timestamp_ms == 2


def test_reset_clears_frame():
    cell = PoseCell()
    cell.publish([Joint(x=0.5, y=0.5)], timestamp_ms=1)
    cell.reset()
    assert cell.latest() is None

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence


@dataclass(frozen=True)
class Joint:
    x: float
    y: float
    z: float | None = None
    visibility: float | None = None


@dataclass(frozen=True)
class PoseFrame:
    joints: tuple[Joint, ...] | None
    timestamp_ms: int

    @property
    def has_pose(self) -> bool:
        return bool(self.joints)


def joints_from_landmarks(landmarks: Sequence[Any]) -> list[Joint]:
    joints: list[Joint] = []
    for lm in landmarks:
        visibility = getattr(lm, "visibility", None)
        z = getattr(lm, "z", None)
        joints.append(
            Joint(
                x=float(lm.x),
                y=float(lm.y),
                z=None if z is None else float(z),
                visibility=None if visibility is None else float(visibility),
            )
        )
    return joints

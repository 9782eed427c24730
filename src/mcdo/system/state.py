from dataclasses import dataclass, field
from enum import Enum
import numpy as np


class PrimingState(Enum):
    UNPRIMED = "unprimed"
    PRIMED = "primed"


@dataclass
class GlobalPoseState:
    pose: np.ndarray = field(default_factory=lambda: np.eye(4))       # T_w_rig
    prev_pose: np.ndarray = field(default_factory=lambda: np.eye(4))  # anchor of the last trajectory segment
    covariance: np.ndarray = field(default_factory=lambda: np.zeros((6, 6)))
    first_pose: bool = False


class PrimingController:
    """UNPRIMED -> PRIMED after the first full acquisition cycle; never reverts."""

    def __init__(self):
        self.state = PrimingState.UNPRIMED

    @property
    def can_estimate(self) -> bool:
        return self.state is PrimingState.PRIMED

    def mark_primed(self, pose_state: GlobalPoseState) -> None:
        if self.state is PrimingState.PRIMED:
            return
        pose_state.prev_pose = pose_state.pose.copy()
        pose_state.first_pose = True
        self.state = PrimingState.PRIMED


@dataclass(frozen=True)
class CameraPoints:
    depth: np.ndarray  # repr level grids, copies
    xx: np.ndarray
    yy: np.ndarray
    weights: np.ndarray
    T_w_cam: np.ndarray


@dataclass(frozen=True)
class SceneSnapshot:
    cycle: int
    ts: float
    cameras: tuple[CameraPoints, ...]
    pose: np.ndarray
    cov_xyz: np.ndarray  # 3x3
    segment: tuple[np.ndarray, np.ndarray] | None  # (prev position, current position)

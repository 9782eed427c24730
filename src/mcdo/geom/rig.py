# src/mcdo/geom/rig.py
from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class CameraSpec:
    index: int
    label: str
    T_rig_cam: np.ndarray  # 4x4, maps camera points into the rig frame


@dataclass(frozen=True)
class CameraRig:
    """
    Rigidly mounted depth cameras sharing one pinhole field of view.

    cameras are stored in processing order: cameras[c].index == c, and
    cameras[c].label names the device whose extrinsics apply.
    """
    cameras: tuple[CameraSpec, ...]
    fovh: float  # radians
    fovv: float  # radians

    def __post_init__(self):
        if len(self.cameras) == 0:
            raise ValueError("CameraRig needs at least one camera.")
        for c, cam in enumerate(self.cameras):
            if cam.index != c:
                raise ValueError(f"Camera '{cam.label}' has index {cam.index}, expected {c}.")
            T = np.asarray(cam.T_rig_cam)
            if T.shape != (4, 4):
                raise ValueError(f"Camera '{cam.label}' extrinsic must be 4x4, got {T.shape}.")
            T.setflags(write=False)
        if not (0.0 < self.fovh < np.pi and 0.0 < self.fovv < np.pi):
            raise ValueError(f"Field of view out of range: fovh={self.fovh}, fovv={self.fovv}")

    @property
    def num_cameras(self) -> int:
        return len(self.cameras)

    @property
    def labels(self) -> list[str]:
        return [cam.label for cam in self.cameras]

    def calibration(self, c: int) -> np.ndarray:
        return self.cameras[c].T_rig_cam

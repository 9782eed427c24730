# src/mcdo/system/estimator.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np

from ..geom.rig import CameraRig
from ..pipeline.pyramid import PyramidGeometry, PyramidLevel


@dataclass
class EstimateResult:
    pose: np.ndarray               # 4x4 T_w_rig after this cycle
    covariance: np.ndarray         # 6x6
    weights: list[np.ndarray]      # per camera, shape of geometry.level_shape(repr_level)


class Estimator(Protocol):
    """
    Dense motion estimator consuming the pyramid of one cycle.

    levels[c][i] are read-only views of FrameStore (current and old grids)
    valid for the duration of the call.
    """

    def estimate(
        self,
        levels: list[list[PyramidLevel]],
        rig: CameraRig,
        geometry: PyramidGeometry,
        pose: np.ndarray,
    ) -> EstimateResult:
        ...

import numpy as np

from ..geom.rig import CameraRig
from ..pipeline.pyramid import PyramidGeometry, PyramidLevel
from ..system.estimator import EstimateResult


class ConstVelEstimator:
    """Applies the same rig motion T_prev_cur every cycle (identity by default)."""

    def __init__(self, T_prev_cur: np.ndarray | None = None, cov_diag: float = 1e-4):
        self.T_prev_cur = np.eye(4) if T_prev_cur is None else np.asarray(T_prev_cur, dtype=np.float64).copy()
        self.cov_diag = cov_diag
        self.calls = 0

    def estimate(self, levels: list[list[PyramidLevel]], rig: CameraRig, geometry: PyramidGeometry,
                 pose: np.ndarray) -> EstimateResult:
        self.calls += 1
        weights = [(cam[geometry.repr_level].depth > 0.0).astype(np.float32) for cam in levels]
        return EstimateResult(
            pose=pose @ self.T_prev_cur,
            covariance=np.eye(6) * self.cov_diag,
            weights=weights,
        )

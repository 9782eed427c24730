# src/mcdo/pipeline/projector.py
from __future__ import annotations

import cv2
import numpy as np

from ..geom.rig import CameraRig
from .pyramid import FrameStore, PyramidLevel


def pixel_rays(shape: tuple[int, int], fovh: float, fovv: float) -> tuple[np.ndarray, np.ndarray]:
    """
    Per-column and per-row tangents of the pinhole viewing angles.

    Returns:
        tan_h: (1, cols) so that xx = depth * tan_h
        tan_v: (rows, 1) so that yy = depth * tan_v
    """
    rows, cols = shape
    inv_fx = 2.0 * np.tan(0.5 * fovh) / cols
    inv_fy = 2.0 * np.tan(0.5 * fovv) / rows
    tan_h = (np.arange(cols, dtype=np.float64) - 0.5 * (cols - 1)) * inv_fx
    tan_v = (np.arange(rows, dtype=np.float64) - 0.5 * (rows - 1)) * inv_fy
    return tan_h.astype(np.float32)[None, :], tan_v.astype(np.float32)[:, None]


def unproject_to_pixels(
    xx: np.ndarray, yy: np.ndarray, depth: np.ndarray, fovh: float, fovv: float
) -> tuple[np.ndarray, np.ndarray]:
    """Inverse of the pinhole unprojection: pixel (u, v) of each point, NaN where depth is 0."""
    rows, cols = depth.shape
    inv_fx = 2.0 * np.tan(0.5 * fovh) / cols
    inv_fy = 2.0 * np.tan(0.5 * fovv) / rows
    z = np.asarray(depth, dtype=np.float64)
    u = np.full(z.shape, np.nan)
    v = np.full(z.shape, np.nan)
    valid = z > 0.0
    u[valid] = xx[valid] / (z[valid] * inv_fx) + 0.5 * (cols - 1)
    v[valid] = yy[valid] / (z[valid] * inv_fy) + 0.5 * (rows - 1)
    return u, v


def _downsample_valid(src: PyramidLevel, dst: PyramidLevel) -> None:
    # mean over valid (depth > 0) samples only; invalid samples are 0 in all three grids
    rows, cols = dst.shape
    mask = (src.depth > 0.0).astype(np.float32)
    wsum = cv2.resize(mask, (cols, rows), interpolation=cv2.INTER_AREA)
    valid = wsum > 0.0
    for s, d in ((src.depth, dst.depth), (src.xx, dst.xx), (src.yy, dst.yy)):
        acc = cv2.resize(s, (cols, rows), interpolation=cv2.INTER_AREA)
        d[...] = 0.0
        np.divide(acc, wsum, out=d, where=valid)


class CoordinateProjector:
    """Writes each cycle's depth frames into the FrameStore pyramid."""

    def __init__(self, store: FrameStore, rig: CameraRig):
        if store.num_cameras != rig.num_cameras:
            raise ValueError(f"FrameStore has {store.num_cameras} cameras, rig has {rig.num_cameras}")
        self.store = store
        self.rig = rig
        self._tan_h, self._tan_v = pixel_rays(store.geometry.level_shape(0), rig.fovh, rig.fovv)

    def project_camera(self, c: int, depth_wf: np.ndarray) -> None:
        levels = self.store.levels[c]
        if depth_wf.shape != levels[0].shape:
            raise ValueError(f"Camera {c}: frame shape {depth_wf.shape} != level 0 shape {levels[0].shape}")

        self.store.shift_old(c)

        base = levels[0]
        np.copyto(base.depth, depth_wf)
        np.multiply(base.depth, self._tan_h, out=base.xx)
        np.multiply(base.depth, self._tan_v, out=base.yy)

        # level i is built from level i-1
        for i in range(1, len(levels)):
            _downsample_valid(levels[i - 1], levels[i])

    def build(self, frames: list[np.ndarray]) -> None:
        if len(frames) != self.store.num_cameras:
            raise ValueError(f"Expected {self.store.num_cameras} frames, got {len(frames)}")
        for c, depth_wf in enumerate(frames):
            self.project_camera(c, depth_wf)

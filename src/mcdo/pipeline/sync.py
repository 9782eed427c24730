# src/mcdo/pipeline/sync.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

from ..dataset.cursor import DatasetCursor
from .pyramid import PyramidGeometry


class CycleStatus(Enum):
    OK = "ok"
    END_OF_STREAM = "end_of_stream"


@dataclass
class AcquireResult:
    status: CycleStatus
    ts: float | None = None
    cameras_read: int = 0

    @property
    def ok(self) -> bool:
        return self.status is CycleStatus.OK


def decode_depth(range_image: np.ndarray, out: np.ndarray, downsample: int = 1, max_depth: float = 4.5) -> np.ndarray:
    """
    Fill `out` (h, w) from a raw range image stored in reverse raster order.

    out[i, j] = range[H - downsample*i - 1, W - downsample*j - 1]; samples
    >= max_depth or non-finite are written as 0.
    """
    H, W = range_image.shape
    h, w = out.shape
    if downsample * (h - 1) >= H or downsample * (w - 1) >= W:
        raise ValueError(
            f"Range image {H}x{W} too small for {h}x{w} frame at downsample={downsample}"
        )

    sub = range_image[::-1, ::-1][::downsample, ::downsample][:h, :w]
    # threshold in the payload's own dtype, before narrowing to float32
    with np.errstate(invalid="ignore"):
        invalid = ~(np.isfinite(sub) & (sub < max_depth))
    np.copyto(out, sub, casting="unsafe")
    out[invalid] = 0.0
    return out


class FrameSynchronizer:
    """
    Pulls one range scan per camera per cycle, in processing order.

    Decoded frames land in staging buffers owned here; they are only complete
    (and only meant to be read) after acquire() returned OK.
    """

    def __init__(
        self,
        cursor: DatasetCursor,
        geometry: PyramidGeometry,
        num_cameras: int,
        *,
        downsample: int = 1,
        max_depth: float = 4.5,
    ):
        self.cursor = cursor
        self.num_cameras = num_cameras
        self.downsample = downsample
        self.max_depth = max_depth
        self.frames = [np.zeros((geometry.height, geometry.width), dtype=np.float32) for _ in range(num_cameras)]

    def acquire(self) -> AcquireResult:
        ts0 = None
        for c in range(self.num_cameras):
            rec = self.cursor.next_relevant()
            if rec is None:
                return AcquireResult(CycleStatus.END_OF_STREAM, ts=None, cameras_read=c)

            with self.cursor.loaded(rec) as range_image:
                decode_depth(range_image, self.frames[c], self.downsample, self.max_depth)
            self.cursor.advance()

            if c == 0:
                ts0 = rec.ts
        return AcquireResult(CycleStatus.OK, ts=ts0, cameras_read=self.num_cameras)

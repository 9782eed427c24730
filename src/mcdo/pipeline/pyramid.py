# src/mcdo/pipeline/pyramid.py
from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

from ..config import ConfigurationError, DifodoConfig

# Sensor resolution at cam_mode=1
BASE_WIDTH = 640
BASE_HEIGHT = 480


@dataclass(frozen=True)
class PyramidGeometry:
    """
    Level count and per-level resolution of the coarse-to-fine pyramid.

    Level 0 is the working resolution of the decoded depth frames; each
    further level halves rows and cols. repr_level is the level matching the
    target resolution (rows, cols); it and every coarser level are the ones
    the estimator iterates over.
    """
    height: int
    width: int
    rows: int
    cols: int
    ctf_levels: int
    repr_level: int = field(init=False)
    num_levels: int = field(init=False)

    def __post_init__(self):
        if self.height <= 0 or self.width <= 0:
            raise ConfigurationError(f"Working resolution must be positive, got {self.height}x{self.width}")
        if self.rows <= 0 or self.cols <= 0:
            raise ConfigurationError(f"Target resolution must be positive, got {self.rows}x{self.cols}")
        if self.ctf_levels < 1:
            raise ConfigurationError(f"ctf_levels must be >= 1, got {self.ctf_levels}")

        if self.cols > self.width or self.rows > self.height:
            raise ConfigurationError(
                f"Target {self.rows}x{self.cols} exceeds working resolution {self.height}x{self.width}"
            )
        repr_level = int(round(math.log2(self.width / self.cols)))
        s = 2 ** repr_level
        if (self.height // s, self.width // s) != (self.rows, self.cols):
            raise ConfigurationError(
                f"Target {self.rows}x{self.cols} is not a power-of-two reduction of "
                f"{self.height}x{self.width} (repr_level={repr_level})"
            )
        num_levels = repr_level + self.ctf_levels
        s = 2 ** (num_levels - 1)
        if self.height // s == 0 or self.width // s == 0:
            raise ConfigurationError(
                f"{num_levels} pyramid levels are too many for {self.height}x{self.width} frames"
            )
        object.__setattr__(self, "repr_level", repr_level)
        object.__setattr__(self, "num_levels", num_levels)

    @classmethod
    def from_config(cls, cfg: DifodoConfig) -> "PyramidGeometry":
        div = cfg.cam_mode * cfg.downsample
        return cls(
            height=BASE_HEIGHT // div,
            width=BASE_WIDTH // div,
            rows=cfg.rows,
            cols=cfg.cols,
            ctf_levels=cfg.ctf_levels,
        )

    def level_shape(self, level: int) -> tuple[int, int]:
        if not 0 <= level < self.num_levels:
            raise IndexError(f"Pyramid level {level} out of range [0, {self.num_levels})")
        s = 2 ** level
        return self.height // s, self.width // s

    @property
    def shapes(self) -> list[tuple[int, int]]:
        return [self.level_shape(i) for i in range(self.num_levels)]

    @property
    def consumed_levels(self) -> list[int]:
        return [i for i, (_, cols_i) in enumerate(self.shapes) if cols_i <= self.cols]


@dataclass
class PyramidLevel:
    depth: np.ndarray
    xx: np.ndarray
    yy: np.ndarray
    depth_old: np.ndarray
    xx_old: np.ndarray
    yy_old: np.ndarray
    depth_warped: np.ndarray | None = None
    xx_warped: np.ndarray | None = None
    yy_warped: np.ndarray | None = None

    @property
    def shape(self) -> tuple[int, int]:
        return self.depth.shape

    @classmethod
    def allocate(cls, shape: tuple[int, int], warped: bool) -> "PyramidLevel":
        def z():
            return np.zeros(shape, dtype=np.float32)
        return cls(
            depth=z(), xx=z(), yy=z(),
            depth_old=z(), xx_old=z(), yy_old=z(),
            depth_warped=z() if warped else None,
            xx_warped=z() if warped else None,
            yy_warped=z() if warped else None,
        )


class FrameStore:
    """
    levels[c][i] holds camera c at pyramid level i.

    Buffers are allocated once here and overwritten in place every cycle.
    """

    def __init__(self, geometry: PyramidGeometry, num_cameras: int):
        if num_cameras <= 0:
            raise ConfigurationError(f"Need at least one camera, got {num_cameras}")
        self.geometry = geometry
        self.num_cameras = num_cameras
        consumed = set(geometry.consumed_levels)
        self.levels: list[list[PyramidLevel]] = [
            [PyramidLevel.allocate(geometry.level_shape(i), warped=i in consumed) for i in range(geometry.num_levels)]
            for _ in range(num_cameras)
        ]

    def level(self, c: int, i: int) -> PyramidLevel:
        return self.levels[c][i]

    def shift_old(self, c: int) -> None:
        for lvl in self.levels[c]:
            np.copyto(lvl.depth_old, lvl.depth)
            np.copyto(lvl.xx_old, lvl.xx)
            np.copyto(lvl.yy_old, lvl.yy)

    def readonly_view(self) -> list[list[PyramidLevel]]:
        """
        Non-writeable views of the current and old grids, valid until the
        next cycle. Warped grids stay writable; they are estimator scratch.
        """
        def ro(a):
            if a is None:
                return None
            v = a.view()
            v.flags.writeable = False
            return v
        return [
            [
                PyramidLevel(
                    depth=ro(l.depth), xx=ro(l.xx), yy=ro(l.yy),
                    depth_old=ro(l.depth_old), xx_old=ro(l.xx_old), yy_old=ro(l.yy_old),
                    depth_warped=l.depth_warped, xx_warped=l.xx_warped, yy_warped=l.yy_warped,
                )
                for l in cam_levels
            ]
            for cam_levels in self.levels
        ]

# src/mcdo/io/results.py
from __future__ import annotations

import os
from pathlib import Path

import numpy as np

from ..geom.se3 import R_to_quat_xyzw


class ResultsFileError(OSError):
    """The results file could not be created; estimation continues without it."""


def create_results_file(root: str = ".", dirname: str = "difodo.results") -> Path:
    """Create `<root>/<dirname>/experiment_NNN.txt` with the first free NNN (starting at 001)."""
    out_dir = Path(root) / dirname
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        n = 1
        while True:
            path = out_dir / f"experiment_{n:03d}.txt"
            try:
                # exclusive create, so a concurrent run never shares a file
                fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                n += 1
                continue
            os.close(fd)
            break
    except OSError as ex:
        raise ResultsFileError(f"Couldn't create results file under {out_dir}: {ex}") from ex

    print(f"[RESULTS] Saving results to file: {path}")
    return path


def format_pose_line(ts: float, T: np.ndarray) -> str:
    # TUM trajectory format: timestamp tx ty tz qx qy qz qw
    t = T[:3, 3]
    q = R_to_quat_xyzw(T[:3, :3])
    return f"{ts:.6f} {t[0]:.6f} {t[1]:.6f} {t[2]:.6f} {q[0]:.6f} {q[1]:.6f} {q[2]:.6f} {q[3]:.6f}\n"


class TrajectoryWriter:
    def __init__(self, path: str | Path):
        self.path = Path(path)
        try:
            self._f = open(self.path, "a", encoding="utf-8")
        except OSError as ex:
            raise ResultsFileError(f"Couldn't open results file {self.path}: {ex}") from ex
        self.lines = 0

    def write(self, ts: float, T: np.ndarray) -> None:
        self._f.write(format_pose_line(ts, T))
        self._f.flush()
        self.lines += 1

    def close(self) -> None:
        if not self._f.closed:
            self._f.close()

    def __enter__(self) -> "TrajectoryWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

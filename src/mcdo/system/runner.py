# src/mcdo/system/runner.py
from __future__ import annotations

from typing import Callable

import numpy as np

from .estimator import Estimator
from .state import CameraPoints, GlobalPoseState, PrimingController, SceneSnapshot
from .telemetry import Telemetry
from ..config import DifodoConfig
from ..dataset.cursor import DatasetCursor
from ..dataset.rawlog import RawLog
from ..geom.rig import CameraRig
from ..io.results import TrajectoryWriter
from ..pipeline.projector import CoordinateProjector
from ..pipeline.pyramid import FrameStore, PyramidGeometry
from ..pipeline.sync import AcquireResult, CycleStatus, FrameSynchronizer


class DifodoRunner:
    """
    Drives acquisition cycles: reset() primes with one full cycle, then every
    step() acquires, rebuilds the pyramid and asks the estimator for a pose.

    Transforms follow T_a_b maps points from b to a; the global pose is
    T_w_rig and camera c sits at T_w_rig @ rig.calibration(c).
    """

    def __init__(
        self,
        synchronizer: FrameSynchronizer,
        projector: CoordinateProjector,
        estimator: Estimator,
        *,
        writer: TrajectoryWriter | None = None,
        telemetry: Telemetry | None = None,
        on_snapshot: Callable[[SceneSnapshot], None] | None = None,
    ):
        self.sync = synchronizer
        self.projector = projector
        self.store: FrameStore = projector.store
        self.rig: CameraRig = projector.rig
        self.geometry: PyramidGeometry = self.store.geometry
        self.estimator = estimator
        self.writer = writer
        self.telemetry = telemetry if telemetry is not None else Telemetry()
        self.on_snapshot = on_snapshot

        self.priming = PrimingController()
        self.pose_state = GlobalPoseState()
        self.cycles_completed = 0
        self.finished = False
        self.last_snapshot: SceneSnapshot | None = None

    @classmethod
    def from_config(
        cls,
        dcfg: DifodoConfig,
        rig: CameraRig,
        estimator: Estimator,
        *,
        log: RawLog | None = None,
        **kwargs,
    ) -> "DifodoRunner":
        if log is None:
            log = RawLog.from_file(dcfg.filename, depth_scale=dcfg.depth_scale)
        geometry = PyramidGeometry.from_config(dcfg)
        store = FrameStore(geometry, rig.num_cameras)
        sync = FrameSynchronizer(
            DatasetCursor(log),
            geometry,
            rig.num_cameras,
            downsample=dcfg.downsample,
            max_depth=dcfg.max_depth,
        )
        return cls(sync, CoordinateProjector(store, rig), estimator, **kwargs)

    def _acquire_and_build(self) -> AcquireResult:
        if self.finished:
            return AcquireResult(CycleStatus.END_OF_STREAM)
        res = self.sync.acquire()
        if not res.ok:
            # partial cycle: staging frames are dropped, the store keeps the last full cycle
            self.finished = True
            return res
        self.projector.build(self.sync.frames)
        self.cycles_completed += 1
        return res

    def reset(self) -> CycleStatus:
        """Priming cycle: load the first frame set and anchor the trajectory at the current pose."""
        res = self._acquire_and_build()
        if res.ok:
            self.priming.mark_primed(self.pose_state)
        self.telemetry.log_cycle(self.cycles_completed, {
            "ts": res.ts,
            "status": res.status.value,
            "cameras_read": res.cameras_read,
            "priming": True,
        })
        return res.status

    def step(self) -> CycleStatus:
        if not self.priming.can_estimate:
            raise RuntimeError("DifodoRunner.step() requires a successful reset() first.")

        res = self._acquire_and_build()
        if not res.ok:
            self.telemetry.log_cycle(self.cycles_completed, {
                "ts": res.ts,
                "status": res.status.value,
                "cameras_read": res.cameras_read,
            })
            return res.status

        ps = self.pose_state
        result = self.estimator.estimate(self.store.readonly_view(), self.rig, self.geometry, ps.pose.copy())
        ps.prev_pose = ps.pose
        ps.pose = np.asarray(result.pose, dtype=np.float64)
        ps.covariance = np.asarray(result.covariance, dtype=np.float64)

        snap = self._snapshot(res.ts, result.weights)
        self.last_snapshot = snap
        if self.on_snapshot is not None:
            self.on_snapshot(snap)

        if self.writer is not None:
            try:
                self.writer.write(res.ts, ps.pose)
            except OSError as ex:
                print(f"[WARN] Disabling results export after write failure: {ex}")
                self.writer = None

        self.telemetry.log_cycle(self.cycles_completed, {
            "ts": float(res.ts),
            "status": res.status.value,
            "cameras_read": res.cameras_read,
            "position": [float(v) for v in ps.pose[:3, 3]],
            "valid_px": [int(np.count_nonzero(w)) for w in result.weights],
        })
        return res.status

    def run(self, max_cycles: int | None = None) -> int:
        """Prime, then step until end of stream (or max_cycles completed). Returns completed cycles."""
        if not self.priming.can_estimate and self.reset() is not CycleStatus.OK:
            return self.cycles_completed
        while max_cycles is None or self.cycles_completed < max_cycles:
            if self.step() is not CycleStatus.OK:
                break
        return self.cycles_completed

    def _snapshot(self, ts: float, weights: list[np.ndarray]) -> SceneSnapshot:
        ps = self.pose_state
        lvl = self.geometry.repr_level
        cams = []
        for c in range(self.rig.num_cameras):
            L = self.store.level(c, lvl)
            cams.append(CameraPoints(
                depth=L.depth.copy(),
                xx=L.xx.copy(),
                yy=L.yy.copy(),
                weights=np.asarray(weights[c], dtype=np.float32).copy(),
                T_w_cam=ps.pose @ self.rig.calibration(c),
            ))
        segment = (ps.prev_pose[:3, 3].copy(), ps.pose[:3, 3].copy()) if ps.first_pose else None
        return SceneSnapshot(
            cycle=self.cycles_completed,
            ts=float(ts),
            cameras=tuple(cams),
            pose=ps.pose.copy(),
            cov_xyz=ps.covariance[:3, :3].copy(),
            segment=segment,
        )

"""End-to-end acquisition cycles: priming, estimation and end of stream."""

import numpy as np
import pytest

from conftest import LABELS, cycle_depth
from mcdo.io.results import TrajectoryWriter
from mcdo.modules.const_vel import ConstVelEstimator
from mcdo.pipeline.sync import CycleStatus
from mcdo.system.runner import DifodoRunner
from mcdo.system.state import PrimingState


def _runner(log, dcfg, rig, **kw):
    est = kw.pop("estimator", None) or ConstVelEstimator()
    return DifodoRunner.from_config(dcfg, rig, est, log=log, **kw), est


def test_four_cameras_three_cycles_then_truncated(make_log, dcfg, rig):
    runner, est = _runner(make_log(3, extra_cams=3), dcfg, rig)

    assert runner.priming.state is PrimingState.UNPRIMED
    assert runner.reset() is CycleStatus.OK
    assert runner.priming.state is PrimingState.PRIMED
    assert runner.cycles_completed == 1
    assert est.calls == 0

    assert runner.step() is CycleStatus.OK
    assert runner.step() is CycleStatus.OK
    assert runner.cycles_completed == 3
    assert est.calls == 2

    snapshot = [[l.depth.copy() for l in cam] for cam in runner.store.levels]
    assert runner.step() is CycleStatus.END_OF_STREAM
    assert runner.cycles_completed == 3
    assert est.calls == 2
    assert runner.finished
    assert runner.priming.state is PrimingState.PRIMED
    for cam, cam_before in zip(runner.store.levels, snapshot):
        for lvl, d in zip(cam, cam_before):
            assert np.array_equal(lvl.depth, d)
    for c in range(len(LABELS)):
        assert np.allclose(runner.store.level(c, 0).depth, cycle_depth(2, c))
        assert np.allclose(runner.store.level(c, 0).depth_old, cycle_depth(1, c))

    # further calls keep reporting the end
    assert runner.step() is CycleStatus.END_OF_STREAM


def test_empty_log_never_primes(make_log, dcfg, rig):
    runner, est = _runner(make_log(0), dcfg, rig)
    assert runner.reset() is CycleStatus.END_OF_STREAM
    assert runner.priming.state is PrimingState.UNPRIMED
    with pytest.raises(RuntimeError):
        runner.step()
    assert runner.run() == 0
    assert est.calls == 0


def test_single_cycle_log_never_estimates(make_log, dcfg, rig):
    runner, est = _runner(make_log(1), dcfg, rig)
    assert runner.run() == 1
    assert runner.priming.state is PrimingState.PRIMED
    assert est.calls == 0
    assert runner.last_snapshot is None


def test_partial_first_cycle_does_not_prime(make_log, dcfg, rig):
    runner, est = _runner(make_log(0, extra_cams=2), dcfg, rig)
    assert runner.reset() is CycleStatus.END_OF_STREAM
    assert runner.priming.state is PrimingState.UNPRIMED
    assert not runner.store.level(0, 0).depth.any()


def test_run_accumulates_pose_and_snapshots(make_log, dcfg, rig):
    motion = np.eye(4)
    motion[0, 3] = 0.1
    seen = []
    runner, est = _runner(make_log(4), dcfg, rig, estimator=ConstVelEstimator(motion), on_snapshot=seen.append)
    assert runner.run() == 4
    assert est.calls == 3
    assert len(seen) == 3
    assert np.allclose(runner.pose_state.pose[:3, 3], [0.3, 0.0, 0.0])

    snap = seen[-1]
    assert snap.cycle == 4
    prev, cur = snap.segment
    assert np.allclose(prev, [0.2, 0.0, 0.0])
    assert np.allclose(cur, [0.3, 0.0, 0.0])
    assert len(snap.cameras) == len(LABELS)
    for c, cam in enumerate(snap.cameras):
        assert cam.depth.shape == runner.geometry.level_shape(runner.geometry.repr_level)
        assert cam.weights.shape == cam.depth.shape
        assert np.allclose(cam.T_w_cam, snap.pose @ rig.calibration(c))
        assert np.allclose(cam.depth, cycle_depth(3, c))
    assert snap.cov_xyz.shape == (3, 3)

    # snapshots are copies, not views of the store
    seen[0].cameras[0].depth[0, 0] = -1.0
    assert runner.store.level(0, runner.geometry.repr_level).depth[0, 0] != -1.0


def test_max_cycles_counts_priming(make_log, dcfg, rig):
    runner, est = _runner(make_log(5), dcfg, rig)
    assert runner.run(max_cycles=3) == 3
    assert est.calls == 2
    assert not runner.finished


def test_estimator_sees_read_only_pyramid(make_log, dcfg, rig):
    class Probe(ConstVelEstimator):
        def estimate(self, levels, rig, geometry, pose):
            with pytest.raises(ValueError):
                levels[0][0].depth[0, 0] = 0.0
            assert np.allclose(levels[0][0].depth_old, cycle_depth(0, 0))
            return super().estimate(levels, rig, geometry, pose)

    runner, est = _runner(make_log(2), dcfg, rig, estimator=Probe())
    assert runner.run() == 2
    assert est.calls == 1


def test_results_written_once_per_estimate(make_log, dcfg, rig, tmp_path):
    path = tmp_path / "traj.txt"
    with TrajectoryWriter(path) as writer:
        runner, _ = _runner(make_log(3), dcfg, rig, writer=writer)
        runner.run()
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert all(len(line.split()) == 8 for line in lines)


def test_telemetry_records_every_cycle(make_log, dcfg, rig):
    runner, _ = _runner(make_log(2, extra_cams=1), dcfg, rig)
    runner.run()
    statuses = [rec["status"] for rec in runner.telemetry.cycles]
    assert statuses == ["ok", "ok", "end_of_stream"]
    assert runner.telemetry.cycles[0]["priming"] is True
    assert runner.telemetry.cycles[-1]["cameras_read"] == 1

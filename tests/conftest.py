"""Synthetic rigs and sensor logs shared by the tests."""

import numpy as np
import pytest

from mcdo.config import DifodoConfig
from mcdo.dataset.rawlog import RANGE_SCAN, RawLog, SensorRecord
from mcdo.geom.rig import CameraRig, CameraSpec
from mcdo.geom.se3 import pose_from_xyz_ypr

LABELS = ("RGBD_1", "RGBD_4", "RGBD_3", "RGBD_2")
RAW_SHAPE = (240, 320)  # cam_mode=2


def cycle_depth(cycle: int, cam: int) -> float:
    return 1.0 + 0.1 * cycle + 0.01 * cam


@pytest.fixture
def dcfg():
    return DifodoConfig(filename="<memory>", camera_order=LABELS)


@pytest.fixture
def rig():
    cams = tuple(
        CameraSpec(index=c, label=lbl, T_rig_cam=pose_from_xyz_ypr(0.1 * c, 0.0, 1.0, np.deg2rad(90.0 * c), 0.0, 0.0))
        for c, lbl in enumerate(LABELS)
    )
    return CameraRig(cameras=cams, fovh=np.deg2rad(62.5), fovv=np.deg2rad(48.5))


@pytest.fixture
def make_log():
    """
    make_log(full_cycles, extra_cams=0) -> RawLog

    Each cycle logs one range scan per camera (device order) with a constant
    depth of cycle_depth(cycle, cam), interleaved with imu and image records.
    extra_cams adds a truncated final cycle with only that many cameras.
    """
    def _make(full_cycles: int, extra_cams: int = 0) -> RawLog:
        records = []
        ts = 0.0

        def add_cycle(k, n):
            nonlocal ts
            records.append(SensorRecord(ts=ts, kind="imu", label="IMU"))
            for c in range(n):
                ts += 0.001
                records.append(SensorRecord(
                    ts=ts, kind=RANGE_SCAN, label=LABELS[c],
                    data=np.full(RAW_SHAPE, cycle_depth(k, c), dtype=np.float32),
                ))
                if c == 1:
                    records.append(SensorRecord(ts=ts, kind="image", label="CAM_RGB"))
            ts += 0.03

        for k in range(full_cycles):
            add_cycle(k, len(LABELS))
        if extra_cams:
            add_cycle(full_cycles, extra_cams)
        return RawLog(records)
    return _make

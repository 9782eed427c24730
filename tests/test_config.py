import os

import numpy as np
import pytest
import yaml

from mcdo.config import ConfigurationError, load_config, parse_config

BASE = {
    "difodo": {
        "filename": "logs/rawlog.txt",
        "camera_order": ["RGBD_1", "RGBD_4", "RGBD_3", "RGBD_2"],
    },
    "cameras": {
        "RGBD_1": {"x": 0.27, "y": -0.03, "z": 1.12, "yaw": 45.0, "pitch": 0.0, "roll": 90.0},
        "RGBD_2": {"x": 0.27, "y": 0.06, "z": 1.12, "yaw": -45.0},
        "RGBD_3": {"yaw": 90.0},
        "RGBD_4": {},
    },
}


def _write(tmp_path, cfg):
    p = tmp_path / "cfg.yaml"
    p.write_text(yaml.safe_dump(cfg), encoding="utf-8")
    return str(p)


def test_defaults_and_relative_filename(tmp_path):
    cfg, dcfg, rig = load_config(_write(tmp_path, BASE))
    assert (dcfg.cam_mode, dcfg.downsample, dcfg.rows, dcfg.cols, dcfg.ctf_levels) == (2, 1, 240, 320, 5)
    assert dcfg.max_depth == 4.5
    assert dcfg.filename == os.path.normpath(str(tmp_path / "logs" / "rawlog.txt"))
    assert np.isclose(rig.fovh, np.deg2rad(62.5))
    assert np.isclose(rig.fovv, np.deg2rad(48.5))
    assert cfg["difodo"]["camera_order"][1] == "RGBD_4"


def test_camera_order_maps_labels_to_extrinsics(tmp_path):
    _, _, rig = load_config(_write(tmp_path, BASE))
    assert rig.num_cameras == 4
    assert rig.labels == ["RGBD_1", "RGBD_4", "RGBD_3", "RGBD_2"]
    assert [cam.index for cam in rig.cameras] == [0, 1, 2, 3]

    # RGBD_4 sits at the origin with no rotation
    assert np.allclose(rig.calibration(1), np.eye(4))
    # RGBD_3: yaw 90 deg turns +x into +y
    T = rig.calibration(2)
    assert np.allclose(T[:3, :3] @ [1.0, 0.0, 0.0], [0.0, 1.0, 0.0])
    # RGBD_2 processed last
    assert np.allclose(rig.calibration(3)[:3, 3], [0.27, 0.06, 1.12])


def test_extrinsics_are_immutable(tmp_path):
    _, _, rig = load_config(_write(tmp_path, BASE))
    with pytest.raises(ValueError):
        rig.calibration(0)[0, 3] = 1.0


@pytest.mark.parametrize("mutate", [
    lambda c: c["difodo"].pop("filename"),
    lambda c: c["difodo"].pop("camera_order"),
    lambda c: c["difodo"].__setitem__("camera_order", ["RGBD_1", "RGBD_1"]),
    lambda c: c["difodo"].__setitem__("camera_order", ["RGBD_1", "RGBD_9"]),
    lambda c: c["difodo"].__setitem__("rows", "many"),
    lambda c: c["difodo"].__setitem__("ctf_levels", 0),
    lambda c: c["difodo"].__setitem__("fovh_deg", 190.0),
    lambda c: c["cameras"]["RGBD_1"].__setitem__("yaw", "north"),
    lambda c: c.pop("cameras"),
    lambda c: c.pop("difodo"),
])
def test_invalid_configs_raise(tmp_path, mutate):
    cfg = yaml.safe_load(yaml.safe_dump(BASE))
    mutate(cfg)
    with pytest.raises(ConfigurationError):
        load_config(_write(tmp_path, cfg))


def test_missing_config_file():
    with pytest.raises(ConfigurationError):
        load_config("/nonexistent/cfg.yaml")


def test_absolute_filename_kept():
    dcfg = parse_config({"difodo": {"filename": "/data/log.txt", "camera_order": ["A"]}}, base_dir="/elsewhere")
    assert dcfg.filename == "/data/log.txt"

# src/mcdo/config.py
from __future__ import annotations

import math
import os
from dataclasses import dataclass

import numpy as np
import yaml

from .geom.rig import CameraRig, CameraSpec
from .geom.se3 import pose_from_xyz_ypr


class ConfigurationError(ValueError):
    """Missing or inconsistent configuration; aborts startup."""


_POSE_FIELDS = ("x", "y", "z", "yaw", "pitch", "roll")


@dataclass(frozen=True)
class DifodoConfig:
    filename: str
    camera_order: tuple[str, ...]
    cam_mode: int = 2
    downsample: int = 1
    rows: int = 240
    cols: int = 320
    ctf_levels: int = 5
    fovh_deg: float = 62.5
    fovv_deg: float = 48.5
    max_depth: float = 4.5
    depth_scale: float = 5000.0


def _read_int(sec: dict, key: str, default: int) -> int:
    val = sec.get(key, default)
    try:
        ival = int(val)
    except (TypeError, ValueError) as ex:
        raise ConfigurationError(f"Option '{key}' must be an integer, got {val!r}") from ex
    if ival <= 0:
        raise ConfigurationError(f"Option '{key}' must be positive, got {ival}")
    return ival


def _read_float(sec: dict, key: str, default: float) -> float:
    val = sec.get(key, default)
    try:
        fval = float(val)
    except (TypeError, ValueError) as ex:
        raise ConfigurationError(f"Option '{key}' must be a number, got {val!r}") from ex
    if not math.isfinite(fval):
        raise ConfigurationError(f"Option '{key}' must be finite, got {fval}")
    return fval


def parse_config(cfg: dict, base_dir: str = ".") -> DifodoConfig:
    if not isinstance(cfg, dict) or not isinstance(cfg.get("difodo"), dict):
        raise ConfigurationError("Missing 'difodo' section in configuration.")
    sec = cfg["difodo"]

    filename = sec.get("filename")
    if not filename:
        raise ConfigurationError("Missing required option 'difodo.filename'.")
    filename = str(filename)
    if not os.path.isabs(filename):
        filename = os.path.normpath(os.path.join(base_dir, filename))

    order = sec.get("camera_order")
    if not order or not isinstance(order, (list, tuple)):
        raise ConfigurationError("Missing required option 'difodo.camera_order' (list of camera labels).")
    order = tuple(str(lbl) for lbl in order)
    if len(set(order)) != len(order):
        raise ConfigurationError(f"Duplicate labels in camera_order: {list(order)}")

    fovh = _read_float(sec, "fovh_deg", 62.5)
    fovv = _read_float(sec, "fovv_deg", 48.5)
    if not (0.0 < fovh < 180.0 and 0.0 < fovv < 180.0):
        raise ConfigurationError(f"Field of view must be in (0, 180) degrees, got {fovh} x {fovv}")
    max_depth = _read_float(sec, "max_depth", 4.5)
    depth_scale = _read_float(sec, "depth_scale", 5000.0)
    if max_depth <= 0.0 or depth_scale <= 0.0:
        raise ConfigurationError("Options 'max_depth' and 'depth_scale' must be positive.")

    return DifodoConfig(
        filename=filename,
        camera_order=order,
        cam_mode=_read_int(sec, "cam_mode", 2),
        downsample=_read_int(sec, "downsample", 1),
        rows=_read_int(sec, "rows", 240),
        cols=_read_int(sec, "cols", 320),
        ctf_levels=_read_int(sec, "ctf_levels", 5),
        fovh_deg=fovh,
        fovv_deg=fovv,
        max_depth=max_depth,
        depth_scale=depth_scale,
    )


def build_rig(cfg: dict, dcfg: DifodoConfig) -> CameraRig:
    cams_sec = cfg.get("cameras")
    if not isinstance(cams_sec, dict):
        raise ConfigurationError("Missing 'cameras' section in configuration.")

    cameras = []
    for c, label in enumerate(dcfg.camera_order):
        sec = cams_sec.get(label)
        if not isinstance(sec, dict):
            raise ConfigurationError(f"Missing extrinsic section for camera '{label}'.")
        vals = {k: _read_float(sec, k, 0.0) for k in _POSE_FIELDS}
        T = pose_from_xyz_ypr(
            vals["x"], vals["y"], vals["z"],
            np.deg2rad(vals["yaw"]), np.deg2rad(vals["pitch"]), np.deg2rad(vals["roll"]),
        )
        cameras.append(CameraSpec(index=c, label=label, T_rig_cam=T))

    return CameraRig(
        cameras=tuple(cameras),
        fovh=float(np.deg2rad(dcfg.fovh_deg)),
        fovv=float(np.deg2rad(dcfg.fovv_deg)),
    )


def load_config(path: str) -> tuple[dict, DifodoConfig, CameraRig]:
    if not os.path.isfile(path):
        raise ConfigurationError(f"Config file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        try:
            cfg = yaml.safe_load(f)
        except yaml.YAMLError as ex:
            raise ConfigurationError(f"Failed to parse config {path}: {ex}") from ex

    dcfg = parse_config(cfg, base_dir=os.path.dirname(os.path.abspath(path)))
    rig = build_rig(cfg, dcfg)
    return cfg, dcfg, rig

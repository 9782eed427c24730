from __future__ import annotations

import argparse
import json
from pathlib import Path

import yaml

from mcdo.config import load_config
from mcdo.io.results import ResultsFileError, TrajectoryWriter, create_results_file
from mcdo.modules.const_vel import ConstVelEstimator
from mcdo.pipeline.sync import CycleStatus
from mcdo.system.runner import DifodoRunner
from mcdo.system.telemetry import Telemetry


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", type=str, default="configs/default.yaml")
    ap.add_argument("--out_dir", type=str, default="outputs")
    ap.add_argument("--save_results", action="store_true", help="Write one TUM pose line per cycle to difodo.results/")
    ap.add_argument("--visualize", action="store_true", help="Enable live point cloud / trajectory view")
    ap.add_argument("--viz_update_every", type=int, default=5, help="Update visualization every N cycles")
    ap.add_argument("--max_cycles", type=int, default=None, help="Stop after N completed cycles (priming included)")
    ap.add_argument("--log_every", type=int, default=50, help="Log progress every N cycles")
    args = ap.parse_args()
    if args.viz_update_every < 1:
        ap.error("--viz_update_every must be >= 1")

    print(f"[INFO] Loading config: {args.config}")
    cfg, dcfg, rig = load_config(args.config)
    print(f"[INFO] Cameras (processing order): {rig.labels}")

    out_dir = Path(args.out_dir) / Path(dcfg.filename).stem
    out_dir.mkdir(parents=True, exist_ok=True)
    print(f"[INFO] Output dir: {out_dir}")

    writer = None
    if args.save_results:
        try:
            writer = TrajectoryWriter(create_results_file(str(out_dir)))
        except ResultsFileError as ex:
            print(f"[WARN] {ex}; continuing without saving results.")

    visualizer = None
    if args.visualize:
        from mcdo.viz.scene import SceneVisualizer
        visualizer = SceneVisualizer()

    def on_snapshot(snap):
        if visualizer is None:
            return
        if snap.cycle % args.viz_update_every == 0:
            visualizer.update(snap)
        else:
            visualizer.record(snap)

    telemetry = Telemetry()
    runner = DifodoRunner.from_config(
        dcfg, rig, ConstVelEstimator(),
        writer=writer, telemetry=telemetry, on_snapshot=on_snapshot,
    )
    g = runner.geometry
    print(f"[INFO] Working resolution {g.height}x{g.width}, target {g.rows}x{g.cols}, "
          f"levels={g.num_levels} repr_level={g.repr_level}")

    if runner.reset() is not CycleStatus.OK:
        print("[WARN] Log ended before a full cycle could be read; nothing to estimate.")
    else:
        while args.max_cycles is None or runner.cycles_completed < args.max_cycles:
            if runner.step() is not CycleStatus.OK:
                print(f"[INFO] End of stream after {runner.cycles_completed} cycles")
                break
            if args.log_every > 0 and runner.cycles_completed % args.log_every == 0:
                print(f"[INFO] Cycle {runner.cycles_completed} position: {runner.pose_state.pose[:3, 3]}")

    if writer is not None:
        writer.close()
        print(f"[OK] wrote: {writer.path} ({writer.lines} poses)")

    metrics_path = out_dir / "metrics.json"
    cfg_path = out_dir / "config_used.yaml"
    with open(metrics_path, "w", encoding="utf-8") as f:
        json.dump(telemetry.cycles, f, indent=2)
    with open(cfg_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(cfg, f, sort_keys=False)
    print(f"[OK] wrote: {metrics_path}")

    if visualizer is not None:
        print("[INFO] Showing final view. Close the window to exit.")
        if runner.last_snapshot is not None:
            visualizer.update(runner.last_snapshot)
        visualizer.close()


if __name__ == "__main__":
    main()

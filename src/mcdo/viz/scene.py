from __future__ import annotations

import numpy as np
import matplotlib.pyplot as plt

from ..system.state import SceneSnapshot


class SceneVisualizer:
    """Top-down (X-Y) live view of per-camera points and the rig trajectory."""

    def __init__(self, max_points_per_cam: int = 4000):
        plt.ion()
        self.fig = plt.figure(figsize=(12, 5))
        self.ax1 = self.fig.add_subplot(121)
        self.ax2 = self.fig.add_subplot(122)
        self.max_points_per_cam = max_points_per_cam
        self.trajectory: list[np.ndarray] = []
        self._last_cycle: int | None = None

    def _world_points(self, cam) -> tuple[np.ndarray, np.ndarray]:
        # camera frame: depth along x, xx lateral, yy vertical
        valid = cam.depth > 0.0
        P = np.stack([cam.depth[valid], cam.xx[valid], cam.yy[valid], np.ones(int(valid.sum()))], axis=0)
        w = cam.weights[valid]
        if P.shape[1] > self.max_points_per_cam:
            sel = np.linspace(0, P.shape[1] - 1, self.max_points_per_cam).astype(int)
            P, w = P[:, sel], w[sel]
        return (cam.T_w_cam @ P)[:3].T, w

    def record(self, snap: SceneSnapshot) -> None:
        """Extend the trajectory; call for every snapshot, redrawn or not."""
        if snap.segment is None or snap.cycle == self._last_cycle:
            return
        if not self.trajectory:
            self.trajectory.append(np.asarray(snap.segment[0], dtype=np.float64))
        self.trajectory.append(np.asarray(snap.segment[1], dtype=np.float64))
        self._last_cycle = snap.cycle

    @property
    def path_length(self) -> float:
        if len(self.trajectory) < 2:
            return 0.0
        return float(np.linalg.norm(np.diff(np.array(self.trajectory), axis=0), axis=1).sum())

    def update(self, snap: SceneSnapshot):
        self.record(snap)

        self.ax1.clear()
        self.ax1.set_xlabel('X (m)')
        self.ax1.set_ylabel('Y (m)')
        self.ax1.set_title(f'Points (cycle {snap.cycle}, ts {snap.ts:.3f})')
        for cam in snap.cameras:
            pts, w = self._world_points(cam)
            if pts.shape[0] == 0:
                continue
            sw = np.sqrt(np.clip(w, 0.0, 1.0))
            colors = np.stack([1.0 - sw, sw, np.zeros_like(sw)], axis=1)
            self.ax1.scatter(pts[:, 0], pts[:, 1], c=colors, s=1)
            self.ax1.scatter(cam.T_w_cam[0, 3], cam.T_w_cam[1, 3], c='k', s=30, marker='s')
        self.ax1.axis('equal')

        self.ax2.clear()
        self.ax2.set_xlabel('X (m)')
        self.ax2.set_ylabel('Y (m)')
        self.ax2.grid(True)
        if len(self.trajectory) >= 2:
            positions = np.array(self.trajectory)
            self.ax2.set_title(f'Trajectory (traveled: {self.path_length:.2f}m)')
            self.ax2.plot(positions[:, 0], positions[:, 1], 'g-', linewidth=1.5, alpha=0.7)
            self.ax2.scatter(positions[0, 0], positions[0, 1], c='g', s=100, marker='o', label='Start')
            self.ax2.scatter(positions[-1, 0], positions[-1, 1], c='r', s=100, marker='o', label='Current')
            self.ax2.legend()
        self.ax2.axis('equal')

        plt.pause(0.001)

    def close(self):
        plt.ioff()
        plt.show()

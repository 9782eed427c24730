# src/mcdo/dataset/rawlog.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Sequence

import cv2
import numpy as np

RANGE_SCAN = "range_scan"


class LogOpenError(OSError):
    """The sensor log cannot be opened or parsed."""


@dataclass
class SensorRecord:
    """
    One entry of a heterogeneous sensor log.

    kind is the cheap type tag; the payload (if any) is only read by load().
    Records built in memory carry their array in `data` and ignore unload().
    """
    ts: float
    kind: str
    label: str = ""
    path: str | None = None
    data: np.ndarray | None = None
    depth_scale: float = 5000.0

    @property
    def is_loaded(self) -> bool:
        return self.data is not None

    def load(self) -> np.ndarray:
        if self.data is not None:
            return self.data
        if self.path is None:
            raise ValueError(f"Record '{self.kind}' at ts={self.ts} has no payload.")
        self.data = _read_range_image(self.path, self.depth_scale)
        return self.data

    def unload(self) -> None:
        # in-memory payloads have nowhere to be reloaded from
        if self.path is not None:
            self.data = None


def _read_range_image(path: str, depth_scale: float) -> np.ndarray:
    ext = os.path.splitext(path)[1].lower()
    if ext == ".npy":
        arr = np.load(path)
        if arr.ndim != 2:
            raise ValueError(f"Range payload must be 2D, got shape {arr.shape}: {path}")
        return arr.astype(np.float32, copy=False)

    img = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if img is None:
        raise FileNotFoundError(f"Failed to read depth image: {path}")
    if img.ndim != 2:
        raise ValueError(f"Depth image must be single channel, got shape {img.shape}: {path}")
    return img.astype(np.float32) / np.float32(depth_scale)


class RawLog(Sequence[SensorRecord]):
    """Ordered, read-only collection of sensor records."""

    def __init__(self, records: List[SensorRecord], source: str = "<memory>"):
        self.records = list(records)
        self.source = source

    def __len__(self) -> int:
        return len(self.records)

    def __getitem__(self, idx):
        return self.records[idx]

    def count_kind(self, kind: str) -> int:
        return sum(1 for r in self.records if r.kind == kind)

    @classmethod
    def from_file(cls, index_path: str, *, depth_scale: float = 5000.0) -> "RawLog":
        """
        Parse a log index: one record per line, `timestamp kind label [payload]`.

        Payload paths are relative to the index directory. Lines that are
        empty or start with '#' are skipped. Timestamps must not decrease.
        """
        if not os.path.isfile(index_path):
            raise LogOpenError(f"Couldn't open rawlog index: {index_path}")

        base = os.path.dirname(index_path)
        records: List[SensorRecord] = []
        last_ts = -np.inf
        try:
            with open(index_path, "r", encoding="utf-8") as f:
                for lineno, line in enumerate(f, start=1):
                    line = line.strip()
                    if (not line) or line.startswith("#"):
                        continue
                    parts = line.split()
                    if len(parts) < 3:
                        raise LogOpenError(f"{index_path}:{lineno}: expected 'timestamp kind label [payload]'")
                    try:
                        ts = float(parts[0])
                    except ValueError as ex:
                        raise LogOpenError(f"{index_path}:{lineno}: bad timestamp {parts[0]!r}") from ex
                    if ts < last_ts:
                        raise LogOpenError(f"{index_path}:{lineno}: timestamp {ts} goes backwards")
                    last_ts = ts
                    path = os.path.join(base, parts[3]) if len(parts) > 3 else None
                    if parts[1] == RANGE_SCAN and path is None:
                        raise LogOpenError(f"{index_path}:{lineno}: range_scan record without payload")
                    if path is not None and not os.path.isfile(path):
                        raise LogOpenError(f"{index_path}:{lineno}: missing payload {path}")
                    records.append(SensorRecord(ts=ts, kind=parts[1], label=parts[2], path=path, depth_scale=depth_scale))
        except UnicodeDecodeError as ex:
            raise LogOpenError(f"Rawlog index is not text: {index_path}") from ex

        log = cls(records, source=index_path)
        print(f"[RAWLOG] {index_path}: {len(log)} records, {log.count_kind(RANGE_SCAN)} range scans")
        return log

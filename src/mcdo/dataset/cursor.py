# src/mcdo/dataset/cursor.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import numpy as np

from .rawlog import RANGE_SCAN, RawLog, SensorRecord


class DatasetCursor:
    """
    Sequential reader over a RawLog.

    position only moves forward and `finished` is sticky: once the end of the
    log has been reached no further record is returned.
    """

    def __init__(self, log: RawLog, kind: str = RANGE_SCAN):
        self.log = log
        self.kind = kind
        self.position = 0
        self.finished = len(log) == 0

    def next_relevant(self) -> SensorRecord | None:
        if self.finished:
            return None
        rec = self.log[self.position]
        while rec.kind != self.kind:
            self.position += 1
            if self.position >= len(self.log):
                self.finished = True
                return None
            rec = self.log[self.position]
        return rec

    def advance(self) -> None:
        if self.finished:
            return
        self.position += 1
        if self.position >= len(self.log):
            self.finished = True

    @contextmanager
    def loaded(self, rec: SensorRecord) -> Iterator[np.ndarray]:
        """Payload is resident only inside the with-block."""
        data = rec.load()
        try:
            yield data
        finally:
            rec.unload()

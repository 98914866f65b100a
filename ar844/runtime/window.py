# ar844/runtime/window.py
from __future__ import annotations

from typing import Optional

from ar844.model.reading import Reading, Snapshot, Weighting


def next_boundary(now: float, period_s: int) -> int:
    """First multiple of period_s strictly after now (whole epoch seconds)."""
    return (int(now) // period_s + 1) * period_s


class AggregationWindow:
    """
    Running min/max/average over readings, emitted once per wall-clock period.

    Boundaries are absolute multiples of period_s (e.g. whole minutes for a
    60 s period), so published windows line up across restarts. The snapshot
    is emitted by the first observe() at or after the boundary; after a stall
    the next boundary is taken from the current time, so one widened window is
    emitted instead of a backlog.
    """

    def __init__(self, period_s: int, now: float):
        if period_s <= 0:
            raise ValueError("period_s must be > 0")
        self.period_s = int(period_s)
        self.period_end = next_boundary(now, self.period_s)

        self.count = 0
        self.sum = 0
        self.min = 0
        self.max = 0
        self._weighting: Optional[Weighting] = None

    def observe(self, reading: Reading, now: float) -> Optional[Snapshot]:
        level = reading.level_tenths

        if self.count == 0:
            self.min = self.max = self.sum = level
        else:
            self.sum += level
            if level < self.min:
                self.min = level
            elif level > self.max:
                self.max = level
        self.count += 1
        self._weighting = reading.weighting

        if now < self.period_end:
            return None

        snap = Snapshot(
            period_end=self.period_end,
            avg=self.sum // self.count,
            min=self.min,
            max=self.max,
            weighting=self._weighting,
            count=self.count,
        )
        self._reset(now)
        return snap

    def _reset(self, now: float) -> None:
        self.count = 0
        self.sum = 0
        self.min = 0
        self.max = 0
        self._weighting = None
        self.period_end = next_boundary(now, self.period_s)

# ar844/model/reading.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class Weighting(Enum):
    """Frequency-weighting curve reported by the meter."""
    A = "A"
    C = "C"

    @property
    def code(self) -> str:
        # The published record has always used 'Z' for the non-A curve.
        return "A" if self is Weighting.A else "Z"


def format_tenths(value: int) -> str:
    """Render a tenths-of-dB integer as 'tens.ones' without rounding."""
    value = int(value)
    return f"{value // 10}.{value % 10}"


@dataclass(frozen=True)
class Reading:
    """
    One decoded meter response.

    level_tenths: sound level in tenths of a decibel
    fast:         fast (True) or slow integration
    weighting:    frequency-weighting curve
    range_code:   meter range (0..7), informational only
    """
    level_tenths: int
    fast: bool
    weighting: Weighting
    range_code: int

    @property
    def level_db(self) -> float:
        return self.level_tenths / 10.0

    def as_dict(self) -> dict:
        return {
            "level_db": format_tenths(self.level_tenths),
            "speed": "FAST" if self.fast else "SLOW",
            "weighting": self.weighting.value,
            "range": self.range_code,
        }


@dataclass(frozen=True)
class Snapshot:
    """
    Aggregate of all readings in one period, emitted once and then discarded.

    Levels are tenths of a dB; avg is the truncated integer mean.
    """
    period_end: int
    avg: int
    min: int
    max: int
    weighting: Weighting
    count: int

    @property
    def time_iso(self) -> str:
        ts = datetime.fromtimestamp(self.period_end, tz=timezone.utc)
        return ts.strftime("%Y-%m-%dT%H:%M:%SZ")

    def to_payload(self) -> str:
        return (
            f'{{"time": "{self.time_iso}", '
            f'"avg": {format_tenths(self.avg)}, '
            f'"min": {format_tenths(self.min)}, '
            f'"max": {format_tenths(self.max)}, '
            f'"weight": "{self.weighting.code}"}}'
        )

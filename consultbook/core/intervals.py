"""
Half-open time-range arithmetic.

Every interval here is ``[start, end)``: start inclusive, end exclusive.
Endpoints may be ``datetime``, ``time`` or plain minute offsets (int/float);
both ends of one interval must be of the same kind.
"""
from __future__ import annotations

from datetime import datetime, time
from typing import Iterable, List, NamedTuple, Union

Point = Union[datetime, time, int, float]


class Interval(NamedTuple):
    start: Point
    end: Point

    @property
    def is_valid(self) -> bool:
        return is_valid_interval(self.start, self.end)

    @property
    def minutes(self) -> float:
        return minutes_between(self.start, self.end)


def is_valid_interval(start: Point, end: Point) -> bool:
    """An interval is usable only when its end is strictly after its start.

    A duration that wraps past midnight as a bare time-of-day ends up with
    ``end < start`` and is invalid, never "free".
    """
    return start < end


def overlaps(a_start: Point, a_end: Point, b_start: Point, b_end: Point) -> bool:
    """True iff the two half-open intervals share any instant.

    Touching endpoints do not overlap: ``[10:00, 10:30)`` and ``[10:30, 11:00)``
    are disjoint.
    """
    return a_start < b_end and b_start < a_end


def minutes_between(start: Point, end: Point) -> float:
    if isinstance(start, datetime):
        return (end - start).total_seconds() / 60
    if isinstance(start, time):
        return _time_to_minutes(end) - _time_to_minutes(start)
    return end - start


def _time_to_minutes(t: time) -> float:
    return t.hour * 60 + t.minute + t.second / 60


def merge_intervals(intervals: Iterable[Interval | tuple]) -> List[Interval]:
    """Merge overlapping or adjacent intervals into a sorted, disjoint list."""
    items = [Interval(*iv) for iv in intervals]
    for iv in items:
        if not iv.is_valid:
            raise ValueError(f"Invalid interval: end {iv.end} is not after start {iv.start}")

    merged: List[Interval] = []
    for iv in sorted(items, key=lambda x: x.start):
        if merged and iv.start <= merged[-1].end:
            last = merged[-1]
            if iv.end > last.end:
                merged[-1] = Interval(last.start, iv.end)
        else:
            merged.append(iv)
    return merged


def total_covered_minutes(merged: Iterable[Interval | tuple]) -> float:
    """Sum of ``end - start`` in minutes over an already merged set."""
    return sum(minutes_between(start, end) for start, end in merged)

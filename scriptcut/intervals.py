"""Interval calculus over TimeRange sequences.

Pure functions: none of them mutate their inputs.
"""

from typing import Iterable, List

from .exceptions import DegenerateIntervalError
from .models import TimeRange


def sort_ranges(ranges: Iterable[TimeRange]) -> List[TimeRange]:
    """Return ranges ordered by start time; ties keep input order."""
    return sorted(ranges, key=lambda r: r.start)


def merge_ranges(ranges: Iterable[TimeRange], threshold: float = 0.0) -> List[TimeRange]:
    """Coalesce ranges whose start falls within ``threshold`` of the previous end.

    Ranges are stably sorted by start first. Applying the merge twice with the
    same threshold yields the same result.
    """
    merged: List[TimeRange] = []
    for r in sort_ranges(ranges):
        if not merged:
            merged.append(TimeRange(r.start, r.end))
            continue
        last = merged[-1]
        if r.start <= last.end + threshold:
            last.end = max(last.end, r.end)
        else:
            merged.append(TimeRange(r.start, r.end))
    return merged


def invert_time_ranges(ranges: Iterable[TimeRange], total_duration: float) -> List[TimeRange]:
    """Complement of ``ranges`` within [0, total_duration].

    Overlapping inputs are not merged first, so gaps between overlapping
    ranges come out with start > end. Callers feeding unmerged ranges should
    merge beforehand or filter with :func:`drop_degenerate`.
    """
    ordered = sort_ranges(ranges)
    if not ordered:
        return [TimeRange(0.0, total_duration)]

    inverted: List[TimeRange] = []
    if ordered[0].start > 0:
        inverted.append(TimeRange(0.0, ordered[0].start))

    for current, following in zip(ordered, ordered[1:]):
        inverted.append(TimeRange(current.end, following.start))

    if ordered[-1].end < total_duration:
        inverted.append(TimeRange(ordered[-1].end, total_duration))

    return inverted


def pad_ranges(ranges: Iterable[TimeRange], pad: float, floor: float = 0.0) -> List[TimeRange]:
    """Widen each range by ``pad`` seconds on both sides, clamping the start at ``floor``."""
    return [TimeRange(max(floor, r.start - pad), r.end + pad) for r in ranges]


def drop_degenerate(ranges: Iterable[TimeRange]) -> List[TimeRange]:
    """Keep only ranges with positive length."""
    return [r for r in ranges if r.end > r.start]


def validate_ranges(ranges: Iterable[TimeRange]) -> List[TimeRange]:
    """Return ranges as a list, raising on the first one with start > end."""
    checked = list(ranges)
    for r in checked:
        if r.is_degenerate:
            raise DegenerateIntervalError(r.start, r.end)
    return checked


def total_length(ranges: Iterable[TimeRange]) -> float:
    """Sum of range durations (degenerate ranges contribute nothing)."""
    return sum(max(0.0, r.duration) for r in ranges)

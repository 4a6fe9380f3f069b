"""
Half-open time range arithmetic used by the slot generator.

An interval is a `(start, end)` tuple with `start < end`, covering
`[start, end)`. Values only need to be mutually comparable, in practice
they are datetimes on a single calendar day.
"""

from datetime import datetime, timedelta, time


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    """
    Overlap exists when: a_start < b_end AND b_start < a_end.
    Ranges that only touch (a_end == b_start) do not overlap.
    """
    return a_start < b_end and b_start < a_end


def merge_intervals(intervals) -> list[tuple]:
    """Union of `intervals`, sorted, with overlapping and touching ranges joined."""
    merged = []
    for start, end in sorted(intervals):
        if start >= end:
            continue
        if merged and start <= merged[-1][1]:
            last_start, last_end = merged[-1]
            merged[-1] = (last_start, max(last_end, end))
        else:
            merged.append((start, end))
    return merged


def subtract_intervals(base, blocked) -> list[tuple]:
    """
    Remove every blocked range from `base`.

    Returns the remaining disjoint sub-ranges of `base` in ascending order.
    `blocked` is merged first so a range is never subtracted twice.
    """
    base_start, base_end = base
    remaining = []
    cursor = base_start

    for block_start, block_end in merge_intervals(blocked):
        if block_end <= cursor:
            continue
        if block_start >= base_end:
            break
        if block_start > cursor:
            remaining.append((cursor, block_start))
        cursor = max(cursor, block_end)

    if cursor < base_end:
        remaining.append((cursor, base_end))
    return remaining


def carve(interval, duration: timedelta) -> list[tuple]:
    """
    Split `interval` into back-to-back slots of exactly `duration`.

    Walks forward from the interval start; a trailing remainder shorter
    than `duration` is dropped.
    """
    if duration <= timedelta(0):
        return []

    start, end = interval
    slots = []
    current = start
    while current + duration <= end:
        slots.append((current, current + duration))
        current += duration
    return slots


def day_range(target_date, start: time, end: time, tz=None) -> tuple[datetime, datetime]:
    """Combine a date with a pair of wall-clock times."""
    return (
        datetime.combine(target_date, start, tzinfo=tz),
        datetime.combine(target_date, end, tzinfo=tz),
    )

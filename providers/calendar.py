"""
Read-only snapshots of a provider's schedule.

`ScheduleCalendar` answers "is the primary location open on this date and
when", `ExceptionRegistry` answers "which parts of an open day are blocked".
Both are plain values built from the ORM rows in `providers.services`, so
the slot generator can run on them without touching the database.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from appointments.exceptions import InvalidIntervalError

from .intervals import day_range, merge_intervals

WEEKDAYS = range(7)  # Python's weekday(): 0 = Monday, 6 = Sunday


def validate_time_range(start: time, end: time, label="Interval"):
    """Raise InvalidIntervalError unless start < end."""
    if start is None or end is None:
        raise InvalidIntervalError(f"{label} needs both a start and an end time.")
    if start >= end:
        raise InvalidIntervalError(
            f"{label} start {start:%H:%M} must be before end {end:%H:%M}."
        )


def validate_date_range(start_date: date, end_date: date, label="Closure"):
    """Raise InvalidIntervalError unless start_date <= end_date."""
    if start_date is None or end_date is None:
        raise InvalidIntervalError(f"{label} needs both a start and an end date.")
    if start_date > end_date:
        raise InvalidIntervalError(
            f"{label} start date {start_date.isoformat()} is after end date {end_date.isoformat()}."
        )


@dataclass(frozen=True)
class DayRule:
    """Opening hours for one weekday."""

    is_open: bool
    open_time: time | None = None
    close_time: time | None = None

    def __post_init__(self):
        if self.is_open:
            validate_time_range(self.open_time, self.close_time, label="Working hours")


CLOSED_DAY = DayRule(is_open=False)


@dataclass(frozen=True)
class ClosureSpan:
    start_date: date
    end_date: date
    reason: str = ""

    def __post_init__(self):
        validate_date_range(self.start_date, self.end_date)

    def covers(self, target_date: date) -> bool:
        return self.start_date <= target_date <= self.end_date


@dataclass(frozen=True)
class ExceptionRegistry:
    """
    Daily breaks plus dated closures.

    Breaks apply to every open day; overlapping breaks are allowed and are
    merged before use.
    """

    breaks: tuple = ()
    closures: tuple = ()

    def __post_init__(self):
        for start, end in self.breaks:
            validate_time_range(start, end, label="Break")

    def closure_for(self, target_date: date) -> ClosureSpan | None:
        for closure in self.closures:
            if closure.covers(target_date):
                return closure
        return None

    def is_closed(self, target_date: date) -> bool:
        return self.closure_for(target_date) is not None

    def blocked_intervals(self, target_date: date, tz=None) -> list[tuple[datetime, datetime]]:
        """Merged blocked ranges for `target_date`; the whole day when a closure applies."""
        if self.is_closed(target_date):
            day_start = datetime.combine(target_date, time.min, tzinfo=tz)
            return [(day_start, day_start + timedelta(days=1))]
        return merge_intervals(
            day_range(target_date, start, end, tz) for start, end in self.breaks
        )


@dataclass(frozen=True)
class ScheduleCalendar:
    """Recurring weekly hours with closures layered on top."""

    rules: dict = field(default_factory=dict)
    exceptions: ExceptionRegistry = field(default_factory=ExceptionRegistry)

    def __post_init__(self):
        unknown = set(self.rules) - set(WEEKDAYS)
        if unknown:
            raise InvalidIntervalError(f"Unknown weekday(s): {sorted(unknown)}.")

    def rule_for(self, target_date: date) -> DayRule:
        return self.rules.get(target_date.weekday(), CLOSED_DAY)

    def is_open(self, target_date: date) -> bool:
        if self.exceptions.is_closed(target_date):
            return False
        return self.rule_for(target_date).is_open

    def open_interval(self, target_date: date, tz=None) -> tuple[datetime, datetime] | None:
        if not self.is_open(target_date):
            return None
        rule = self.rule_for(target_date)
        return day_range(target_date, rule.open_time, rule.close_time, tz)

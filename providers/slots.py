"""
Slot generation engine.

Generates bookable time slots for one provider on one date from:
1. The weekly calendar and closures (ScheduleCalendar)
2. Daily breaks (ExceptionRegistry), applied at every location
3. Confirmed guest visits at other locations (AffiliationWindow)
4. Existing Requested/Confirmed appointments at any location (BookedRange)

Everything here is pure: no ORM access, no clock, no errors. An empty
list is a valid answer for a closed or fully booked day.
"""

from datetime import date, datetime, time, timedelta
from typing import NamedTuple

from .calendar import ExceptionRegistry, ScheduleCalendar
from .intervals import carve, day_range, overlaps, subtract_intervals


class Slot(NamedTuple):
    start: datetime
    end: datetime
    location_id: int
    guest_affiliation_id: int | None = None

    @property
    def is_guest_visit(self):
        return self.guest_affiliation_id is not None


class AffiliationWindow(NamedTuple):
    """A Confirmed guest visit as seen by the generator."""

    id: int
    location_id: int
    date: date
    window_start: time
    window_end: time
    slot_duration_minutes: int


class BookedRange(NamedTuple):
    """An active appointment occupying `[start, start + duration_minutes)`."""

    start: datetime
    duration_minutes: int

    @property
    def end(self):
        return self.start + timedelta(minutes=self.duration_minutes)


def primary_slots(
    calendar: ScheduleCalendar,
    exceptions: ExceptionRegistry,
    target_date: date,
    duration_minutes: int,
    location_id: int,
    tz=None,
) -> list[Slot]:
    """Steps 1-3: open interval minus breaks, carved into whole slots."""
    base = calendar.open_interval(target_date, tz)
    if base is None:
        return []

    duration = timedelta(minutes=duration_minutes)
    free_ranges = subtract_intervals(base, exceptions.blocked_intervals(target_date, tz))

    slots = []
    for free_range in free_ranges:
        for start, end in carve(free_range, duration):
            slots.append(Slot(start, end, location_id))
    return slots


def guest_visit_slots(
    window: AffiliationWindow,
    exceptions: ExceptionRegistry,
    duration_minutes=None,
    tz=None,
) -> list[Slot]:
    """
    Carve a guest visit window at its own slot duration unless one is forced.

    Daily breaks and closures block the window the same way they block the
    primary open interval.
    """
    duration = timedelta(minutes=duration_minutes or window.slot_duration_minutes)
    bounds = day_range(window.date, window.window_start, window.window_end, tz)
    free_ranges = subtract_intervals(bounds, exceptions.blocked_intervals(window.date, tz))

    slots = []
    for free_range in free_ranges:
        for start, end in carve(free_range, duration):
            slots.append(Slot(start, end, window.location_id, window.id))
    return slots


def generate_slots(
    *,
    calendar: ScheduleCalendar,
    exceptions: ExceptionRegistry,
    target_date: date,
    duration_minutes: int,
    primary_location_id: int,
    affiliations=(),
    bookings=(),
    guest_duration_minutes=None,
    tz=None,
) -> list[Slot]:
    """
    Generate bookable slots for a provider on `target_date`.

    Args:
        calendar: Weekly hours with closures.
        exceptions: Breaks and closures.
        target_date: The date to generate slots for.
        duration_minutes: Slot length at the primary location.
        primary_location_id: Location tag for primary slots.
        affiliations: Confirmed guest visits (AffiliationWindow). Windows on
            other dates or at the primary location are ignored.
        bookings: Active appointments (BookedRange) of this provider on the date.
        guest_duration_minutes: Forces the slot length inside guest visit
            windows; each window's own duration is used when None.
        tz: tzinfo attached to generated datetimes.

    Returns:
        Slots sorted by start time, no two overlapping.
    """
    candidates = primary_slots(
        calendar, exceptions, target_date, duration_minutes, primary_location_id, tz
    )

    windows = [
        w for w in affiliations
        if w.date == target_date and w.location_id != primary_location_id
    ]
    for window in windows:
        window_start, window_end = day_range(
            window.date, window.window_start, window.window_end, tz
        )
        # A provider cannot be offered at two places at once.
        candidates = [
            slot for slot in candidates
            if slot.is_guest_visit or not overlaps(slot.start, slot.end, window_start, window_end)
        ]
        candidates.extend(guest_visit_slots(window, exceptions, guest_duration_minutes, tz))

    booked = [(b.start, b.end) for b in bookings]
    available = [
        slot for slot in candidates
        if not any(overlaps(slot.start, slot.end, b_start, b_end) for b_start, b_end in booked)
    ]

    unique = {(slot.start, slot.location_id): slot for slot in available}
    return sorted(unique.values(), key=lambda s: (s.start, s.location_id))

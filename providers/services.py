"""
Provider schedule services.

Two halves:
- Reads: load a provider's calendar, breaks, closures, confirmed guest
  visits and active appointments for one date, and run the pure slot
  generator over them (`get_availability`). No locking; the reservation
  path re-derives under its own lock.
- Writes: the only way schedule rows are changed from the API. Every
  interval is validated here and rejected with InvalidIntervalError
  before it reaches the database.
"""

import logging
from datetime import date, time

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from appointments.exceptions import BookingError, InvalidIntervalError, NotFoundError
from appointments.models import Appointment
from guest_visits.models import GuestAffiliation

from .calendar import (
    ClosureSpan,
    DayRule,
    ExceptionRegistry,
    ScheduleCalendar,
    validate_date_range,
    validate_time_range,
)
from .models import Break, Closure, Provider, Service, WorkingDay
from .slots import AffiliationWindow, BookedRange, Slot, generate_slots

logger = logging.getLogger(__name__)


# ── Loaders ──────────────────────────────────────────────────────────────────


def get_provider(provider_id) -> Provider:
    try:
        return Provider.objects.select_related("primary_location").get(id=provider_id, is_active=True)
    except Provider.DoesNotExist:
        raise NotFoundError("Provider not found or inactive.")


def load_exceptions(provider: Provider) -> ExceptionRegistry:
    breaks = tuple((b.start_time, b.end_time) for b in provider.breaks.all())
    closures = tuple(
        ClosureSpan(c.start_date, c.end_date, c.reason) for c in provider.closures.all()
    )
    return ExceptionRegistry(breaks=breaks, closures=closures)


def load_calendar(provider: Provider, exceptions: ExceptionRegistry | None = None) -> ScheduleCalendar:
    if exceptions is None:
        exceptions = load_exceptions(provider)
    rules = {
        day.weekday: DayRule(day.is_open, day.open_time, day.close_time)
        for day in provider.working_days.all()
    }
    return ScheduleCalendar(rules=rules, exceptions=exceptions)


def load_affiliation_windows(provider: Provider, target_date: date) -> list[AffiliationWindow]:
    affiliations = GuestAffiliation.objects.filter(
        provider=provider,
        date=target_date,
        status=GuestAffiliation.Status.CONFIRMED,
    ).exclude(host_location_id=provider.primary_location_id)
    return [
        AffiliationWindow(
            id=a.id,
            location_id=a.host_location_id,
            date=a.date,
            window_start=a.window_start,
            window_end=a.window_end,
            slot_duration_minutes=a.slot_duration_minutes,
        )
        for a in affiliations
    ]


def load_booked_ranges(provider: Provider, target_date: date) -> list[BookedRange]:
    """Active appointments at ANY location for this provider on this date."""
    appointments = Appointment.objects.filter(
        provider=provider,
        slot_date=target_date,
        status__in=Appointment.ACTIVE_STATUSES,
    ).only("slot_start", "duration_minutes")
    return [BookedRange(a.slot_start, a.duration_minutes) for a in appointments]


def resolve_duration(provider: Provider, duration_minutes=None, service_id=None):
    """
    Pick the slot length for a query.

    Returns (duration, forced): `forced` is True when the caller asked for a
    specific length (explicitly or through a service), in which case guest
    visit windows are carved at that length too.
    """
    if duration_minutes:
        return duration_minutes, True
    if service_id:
        service = get_service(provider, service_id)
        return service.duration_minutes, True
    return provider.slot_duration_minutes, False


def get_service(provider: Provider, service_id) -> Service:
    try:
        return Service.objects.get(id=service_id, provider=provider, is_active=True)
    except Service.DoesNotExist:
        raise BookingError("Service not found for this provider.", code="invalid_service")


def derive_slots(provider: Provider, target_date: date, duration_minutes: int, forced=True) -> list[Slot]:
    """Fresh slot list straight from the database for (provider, date, duration)."""
    exceptions = load_exceptions(provider)
    return generate_slots(
        calendar=load_calendar(provider, exceptions),
        exceptions=exceptions,
        target_date=target_date,
        duration_minutes=duration_minutes,
        primary_location_id=provider.primary_location_id,
        affiliations=load_affiliation_windows(provider, target_date),
        bookings=load_booked_ranges(provider, target_date),
        guest_duration_minutes=duration_minutes if forced else None,
        tz=timezone.get_current_timezone(),
    )


def get_availability(provider_id, target_date: date, duration_minutes=None, service_id=None) -> list[Slot]:
    """
    Bookable slots for a provider on a date, primary and guest-visit locations.

    Args:
        provider_id: The provider's ID.
        target_date: The date to list slots for.
        duration_minutes: Optional slot length override.
        service_id: Optional service whose duration sizes the slots.

    Returns:
        Slots sorted by start; empty for closed or fully booked days.
    """
    provider = get_provider(provider_id)
    duration, forced = resolve_duration(provider, duration_minutes, service_id)
    return derive_slots(provider, target_date, duration, forced=forced)


# ── Writes ───────────────────────────────────────────────────────────────────


def check_slot_minutes(value):
    low = getattr(settings, "BOOKING_MIN_SLOT_MINUTES", 5)
    high = getattr(settings, "BOOKING_MAX_SLOT_MINUTES", 480)
    if value is None or not low <= int(value) <= high:
        raise BookingError(
            f"Slot duration must be between {low} and {high} minutes.",
            code="invalid_duration",
        )


def set_working_hours(provider: Provider, rules: dict[int, dict]) -> list[WorkingDay]:
    """
    Replace the hours of the given weekdays.

    `rules` maps weekday (0 = Monday) to
    {"is_open": bool, "open_time": time | None, "close_time": time | None}.
    Weekdays not mentioned keep their current rule. All-or-nothing: one
    invalid day rejects the whole update.
    """
    for weekday, rule in rules.items():
        if weekday not in range(7):
            raise InvalidIntervalError(f"Unknown weekday: {weekday}.")
        if rule.get("is_open"):
            validate_time_range(rule.get("open_time"), rule.get("close_time"), label="Working hours")

    provider.ensure_week()
    with transaction.atomic():
        days = {d.weekday: d for d in provider.working_days.select_for_update()}
        for weekday, rule in rules.items():
            day = days[weekday]
            day.is_open = bool(rule.get("is_open"))
            day.open_time = rule.get("open_time") if day.is_open else None
            day.close_time = rule.get("close_time") if day.is_open else None
            day.save()

    logger.info("[SCHEDULE] Working hours updated provider_id=%s days=%s", provider.id, sorted(rules))
    return list(provider.working_days.order_by("weekday"))


def add_break(provider: Provider, start_time: time, end_time: time, label="") -> Break:
    validate_time_range(start_time, end_time, label="Break")
    item = Break.objects.create(provider=provider, start_time=start_time, end_time=end_time, label=label)
    logger.info(
        "[SCHEDULE] Break added provider_id=%s %s-%s", provider.id, start_time, end_time,
    )
    return item


def remove_break(provider: Provider, break_id) -> None:
    deleted, _ = Break.objects.filter(id=break_id, provider=provider).delete()
    if not deleted:
        raise NotFoundError("Break not found.")
    logger.info("[SCHEDULE] Break removed provider_id=%s break_id=%s", provider.id, break_id)


def add_closure(provider: Provider, start_date: date, end_date: date, reason="") -> Closure:
    validate_date_range(start_date, end_date)
    closure = Closure.objects.create(
        provider=provider, start_date=start_date, end_date=end_date, reason=reason,
    )
    logger.info(
        "[SCHEDULE] Closure added provider_id=%s %s..%s", provider.id, start_date, end_date,
    )
    return closure


def remove_closure(provider: Provider, closure_id) -> None:
    deleted, _ = Closure.objects.filter(id=closure_id, provider=provider).delete()
    if not deleted:
        raise NotFoundError("Closure not found.")
    logger.info("[SCHEDULE] Closure removed provider_id=%s closure_id=%s", provider.id, closure_id)


def update_provider_settings(provider: Provider, *, slot_duration_minutes=None, auto_confirm=None) -> Provider:
    update_fields = []
    if slot_duration_minutes is not None:
        check_slot_minutes(slot_duration_minutes)
        provider.slot_duration_minutes = int(slot_duration_minutes)
        update_fields.append("slot_duration_minutes")
    if auto_confirm is not None:
        provider.auto_confirm = bool(auto_confirm)
        update_fields.append("auto_confirm")
    if update_fields:
        provider.save(update_fields=update_fields)
        logger.info("[SCHEDULE] Settings updated provider_id=%s fields=%s", provider.id, update_fields)
    return provider

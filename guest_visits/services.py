"""
Guest visit ledger.

A guest visit is proposed by one party (host clinic or provider) and
finalized by the other. Confirming it opens a bookable window at the host
clinic for one day; cancelling a confirmed visit cancels every appointment
already placed inside it and reports them back to the caller.

Responses run under the provider-day lock for the visit's date. That key
covers the provider's bookings at every location, so the primary clinic
and the host clinic are both protected while the overlap check and the
cascade run.
"""

import logging
from datetime import date, time
from typing import NamedTuple

from django.utils import timezone

from appointments.exceptions import (
    BookingError,
    InvalidTransitionError,
    LocationMismatchError,
    NotFoundError,
    OverlapsExistingCommitmentError,
)
from appointments.models import Appointment
from appointments.services import AFFILIATION_TRANSITIONS, cancel_locked, provider_day_lock, transition
from clinics.models import Clinic
from providers.calendar import validate_time_range
from providers.intervals import overlaps
from providers.services import check_slot_minutes, get_provider

from .models import GuestAffiliation

logger = logging.getLogger(__name__)


class AffiliationDecision(NamedTuple):
    affiliation: GuestAffiliation
    cancelled_appointments: list


def get_affiliation(affiliation_id) -> GuestAffiliation:
    try:
        return GuestAffiliation.objects.select_related("provider", "host_location").get(id=affiliation_id)
    except GuestAffiliation.DoesNotExist:
        raise NotFoundError("Guest visit not found.")


def propose_affiliation(
    *,
    provider_id: int,
    host_location_id: int,
    visit_date: date,
    window_start: time,
    window_end: time,
    initiated_by: str,
    slot_duration_minutes: int | None = None,
    note: str = "",
) -> GuestAffiliation:
    """
    Create a PENDING guest visit.

    Raises:
        NotFoundError: Unknown provider or inactive host clinic.
        InvalidIntervalError: window_start is not before window_end.
        LocationMismatchError: The host clinic is the provider's primary location.
        BookingError: Unknown initiating party or slot duration out of range.
    """
    provider = get_provider(provider_id)
    validate_time_range(window_start, window_end, label="Guest visit window")

    if initiated_by not in GuestAffiliation.Party.values:
        raise BookingError("Unknown initiating party.", code="invalid_party")

    try:
        host = Clinic.objects.get(id=host_location_id, is_active=True)
    except Clinic.DoesNotExist:
        raise NotFoundError("Host location not found or inactive.")

    if host.id == provider.primary_location_id:
        raise LocationMismatchError(
            "A guest visit must be at a location other than the provider's primary one."
        )

    duration = slot_duration_minutes or provider.slot_duration_minutes
    check_slot_minutes(duration)

    affiliation = GuestAffiliation.objects.create(
        provider=provider,
        host_location=host,
        date=visit_date,
        window_start=window_start,
        window_end=window_end,
        slot_duration_minutes=duration,
        initiated_by=initiated_by,
        note=note or "",
    )
    logger.info(
        "[GUEST_VISIT] Proposed affiliation_id=%s provider_id=%s host_id=%s date=%s by=%s",
        affiliation.id,
        provider.id,
        host.id,
        visit_date,
        initiated_by,
    )
    return affiliation


def _check_no_overlap(affiliation: GuestAffiliation):
    """Reject confirmation if the provider is already committed during the window."""
    window_start, window_end = affiliation.window_bounds()

    others = GuestAffiliation.objects.filter(
        provider_id=affiliation.provider_id,
        date=affiliation.date,
        status=GuestAffiliation.Status.CONFIRMED,
    ).exclude(id=affiliation.id)
    for other in others:
        if overlaps(other.window_start, other.window_end, affiliation.window_start, affiliation.window_end):
            raise OverlapsExistingCommitmentError(
                f"The provider already has a confirmed guest visit at {other.host_location.name} "
                f"from {other.window_start:%H:%M} to {other.window_end:%H:%M}."
            )

    bookings = Appointment.objects.filter(
        provider_id=affiliation.provider_id,
        slot_date=affiliation.date,
        status__in=Appointment.ACTIVE_STATUSES,
    ).exclude(location_id=affiliation.host_location_id)
    for booking in bookings:
        if overlaps(booking.slot_start, booking.slot_end, window_start, window_end):
            raise OverlapsExistingCommitmentError(
                "The provider already has appointments booked during this window."
            )


def _cascade_cancel(affiliation: GuestAffiliation, responded_by, note, now) -> list[Appointment]:
    cancelled = []
    rows = Appointment.objects.select_for_update().filter(
        guest_affiliation=affiliation,
        status__in=Appointment.ACTIVE_STATUSES,
    ).order_by("slot_start")
    reason = "Guest visit cancelled."
    if note:
        reason = f"{reason} {note}"
    for appointment in rows:
        cancelled.append(cancel_locked(appointment, reason=reason, cancelled_by=responded_by, now=now))
    return cancelled


def respond_to_affiliation(
    affiliation_id,
    decision: str,
    responded_by: str,
    note: str = "",
    now=None,
) -> AffiliationDecision:
    """
    Confirm or cancel a guest visit.

    Args:
        affiliation_id: The guest visit.
        decision: GuestAffiliation.Status.CONFIRMED or CANCELLED.
        responded_by: GuestAffiliation.Party of the responding side.
        note: Optional message stored with the response.
        now: Reference time (defaults to timezone.now()).

    Returns:
        AffiliationDecision with the updated visit and, when a confirmed
        visit was cancelled, the appointments cancelled along with it.

    Raises:
        NotFoundError: Unknown guest visit.
        InvalidTransitionError: Terminal visit, wrong party confirming, or a
            confirmed visit that has already started.
        OverlapsExistingCommitmentError: Confirming would double-book the provider.
    """
    if decision not in (GuestAffiliation.Status.CONFIRMED, GuestAffiliation.Status.CANCELLED):
        raise InvalidTransitionError("A guest visit can only be confirmed or cancelled.")
    if responded_by not in GuestAffiliation.Party.values:
        raise BookingError("Unknown responding party.", code="invalid_party")

    affiliation = get_affiliation(affiliation_id)
    now = now or timezone.now()
    cancelled = []

    with provider_day_lock(affiliation.provider_id, affiliation.date):
        affiliation = (
            GuestAffiliation.objects.select_for_update()
            .select_related("provider", "host_location")
            .get(id=affiliation_id)
        )

        if decision == GuestAffiliation.Status.CONFIRMED:
            if responded_by == affiliation.initiated_by:
                raise InvalidTransitionError("Only the invited party can confirm a guest visit.")
            transition(affiliation, GuestAffiliation.Status.CONFIRMED, AFFILIATION_TRANSITIONS)
            _check_no_overlap(affiliation)
            affiliation.responded_at = now
        else:
            was_confirmed = affiliation.is_confirmed
            if was_confirmed and now >= affiliation.window_bounds()[0]:
                raise InvalidTransitionError("A guest visit that has already started cannot be cancelled.")
            transition(affiliation, GuestAffiliation.Status.CANCELLED, AFFILIATION_TRANSITIONS)
            affiliation.cancelled_at = now
            if not was_confirmed:
                affiliation.responded_at = now
            if was_confirmed:
                cancelled = _cascade_cancel(affiliation, responded_by, note, now)

        affiliation.response_note = note or ""
        affiliation.save()

    logger.info(
        "[GUEST_VISIT] affiliation_id=%s -> %s by=%s",
        affiliation.id,
        affiliation.status,
        responded_by,
    )
    if cancelled:
        logger.warning(
            "[GUEST_VISIT] Cancelling affiliation_id=%s cascaded to appointment_ids=%s",
            affiliation.id,
            [a.id for a in cancelled],
        )
    return AffiliationDecision(affiliation, cancelled)


def list_provider_affiliations(provider_id, upcoming=False, today=None):
    """All guest visits of a provider, optionally only those from today on."""
    qs = GuestAffiliation.objects.filter(provider_id=provider_id).select_related("host_location")
    if upcoming:
        today = today or timezone.localdate()
        qs = qs.filter(date__gte=today).exclude(status=GuestAffiliation.Status.CANCELLED)
    return qs.order_by("date", "window_start")


def list_location_schedule(location_id, from_date=None):
    """Confirmed guest visits hosted by a clinic from `from_date` (today by default)."""
    from_date = from_date or timezone.localdate()
    return (
        GuestAffiliation.objects.filter(
            host_location_id=location_id,
            status=GuestAffiliation.Status.CONFIRMED,
            date__gte=from_date,
        )
        .select_related("provider")
        .order_by("date", "window_start")
    )

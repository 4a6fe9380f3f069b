"""
Appointment reservation service.

Handles the complete booking flow:
1. Resolve the provider, the optional service and the slot duration
2. Validate the subject (registered patient or guest contact)
3. Acquire the (provider, date) lock
4. Re-derive the slot list from the database under the lock
5. Reject stale, past or wrong-location requests
6. Create the appointment record

Client-side slot lists are never trusted: the only availability that
counts is the one derived in step 4, and nothing else can write to the
same (provider, date) until the lock is released.
"""

import logging
from datetime import date, datetime

from django.utils import timezone

from appointments.exceptions import (
    BookingError,
    LocationMismatchError,
    PastSlotError,
    SlotNoLongerAvailableError,
)
from appointments.models import Appointment
from providers.services import derive_slots, get_provider, get_service, resolve_duration

from .locking import provider_day_lock
from .state_machine import initial_appointment_status

logger = logging.getLogger(__name__)

GUEST_REQUIRED_FIELDS = ("first_name", "last_name", "phone")


def _subject_fields(patient, guest) -> dict:
    if patient is not None:
        return {"patient": patient}

    guest = guest or {}
    missing = [name for name in GUEST_REQUIRED_FIELDS if not str(guest.get(name, "")).strip()]
    if missing:
        raise BookingError(
            "A registered patient or guest contact details (first name, last name, phone) are required.",
            code="invalid_subject",
        )
    return {
        "guest_first_name": guest["first_name"].strip(),
        "guest_last_name": guest["last_name"].strip(),
        "guest_phone": guest["phone"].strip(),
        "guest_email": (guest.get("email") or "").strip(),
    }


def reserve(
    *,
    provider_id: int,
    location_id: int,
    slot_date: date,
    slot_start: datetime,
    duration_minutes: int | None = None,
    patient=None,
    guest: dict | None = None,
    service_id: int | None = None,
    reason: str = "",
    created_by=None,
    now: datetime | None = None,
) -> Appointment:
    """
    Reserve one slot for a subject.

    Args:
        provider_id: The provider being booked.
        location_id: Primary clinic or the host clinic of a confirmed guest visit.
        slot_date: The date the slot belongs to.
        slot_start: Slot start time (naive values are read in the current timezone).
        duration_minutes: Slot length; defaults to the service's, then the provider's
            (inside a guest visit window, the window's own length).
        patient: Registered subject (User), or None for a guest.
        guest: Guest contact {"first_name", "last_name", "phone", "email"?}.
        service_id: Optional service the appointment is for.
        reason: Optional reason for visit.
        created_by: User placing the booking (a provider may book for a subject).
        now: Issue time of the request (defaults to timezone.now()).

    Returns:
        The created Appointment (REQUESTED, or CONFIRMED when the provider
        auto-confirms).

    Raises:
        NotFoundError: Unknown or inactive provider.
        BookingError: Invalid service or subject.
        SlotNoLongerAvailableError: The slot is not in the fresh slot list.
        PastSlotError: The slot does not start strictly after `now`.
        LocationMismatchError: The slot is not offered at `location_id`.
    """
    provider = get_provider(provider_id)

    service = get_service(provider, service_id) if service_id else None
    duration_minutes, forced = resolve_duration(provider, duration_minutes, service_id)

    subject = _subject_fields(patient, guest)

    if timezone.is_naive(slot_start):
        slot_start = timezone.make_aware(slot_start)
    if timezone.localtime(slot_start).date() != slot_date:
        raise SlotNoLongerAvailableError("The selected time does not fall on the selected date.")

    now = now or timezone.now()

    with provider_day_lock(provider.id, slot_date):
        # ── 1. Fresh availability under the lock ─────────────────────
        slots = derive_slots(provider, slot_date, duration_minutes, forced=forced)
        matching = [slot for slot in slots if slot.start == slot_start]

        # ── 2. Still free? ───────────────────────────────────────────
        if not matching:
            logger.info(
                "[BOOKING] Rejected slot_unavailable provider_id=%s start=%s",
                provider.id,
                slot_start.isoformat(),
            )
            raise SlotNoLongerAvailableError()

        # ── 3. In the future? ────────────────────────────────────────
        if slot_start <= now:
            raise PastSlotError()

        # ── 4. Offered at this location? ─────────────────────────────
        slot = next((s for s in matching if s.location_id == location_id), None)
        if slot is None:
            logger.info(
                "[BOOKING] Rejected location_mismatch provider_id=%s location_id=%s start=%s",
                provider.id,
                location_id,
                slot_start.isoformat(),
            )
            raise LocationMismatchError()

        # ── 5. Create the appointment ────────────────────────────────
        status = initial_appointment_status(provider.auto_confirm)
        appointment = Appointment.objects.create(
            provider=provider,
            location_id=slot.location_id,
            guest_affiliation_id=slot.guest_affiliation_id,
            service=service,
            slot_start=slot_start,
            slot_date=slot_date,
            duration_minutes=int((slot.end - slot.start).total_seconds() // 60),
            status=status,
            confirmed_at=now if status == Appointment.Status.CONFIRMED else None,
            reason=reason or "",
            created_by=created_by,
            **subject,
        )

    logger.info(
        "[BOOKING] Appointment created appointment_id=%s provider_id=%s location_id=%s status=%s",
        appointment.id,
        provider.id,
        appointment.location_id,
        appointment.status,
    )
    return appointment

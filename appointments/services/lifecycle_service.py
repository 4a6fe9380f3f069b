"""
Appointment lifecycle after creation: confirm, cancel, complete.

Confirm and cancel run under the provider-day lock so they can never
interleave with a reservation for the same (provider, date). Cancelling
keeps the record and frees the slot for the next reservation.
"""

import logging
from collections import defaultdict

from django.utils import timezone

from appointments.exceptions import NotFoundError
from appointments.models import Appointment

from .locking import provider_day_lock
from .state_machine import APPOINTMENT_TRANSITIONS, transition

logger = logging.getLogger(__name__)


def get_appointment(appointment_id) -> Appointment:
    try:
        return Appointment.objects.select_related("provider", "location").get(id=appointment_id)
    except Appointment.DoesNotExist:
        raise NotFoundError("Appointment not found.")


def _reload_for_update(appointment_id) -> Appointment:
    return Appointment.objects.select_for_update().get(id=appointment_id)


def confirm_appointment(appointment_id, now=None) -> Appointment:
    """
    Provider-side acceptance: REQUESTED → CONFIRMED.

    Raises:
        NotFoundError: Unknown appointment.
        InvalidTransitionError: The appointment is not REQUESTED.
    """
    appointment = get_appointment(appointment_id)
    now = now or timezone.now()

    with provider_day_lock(appointment.provider_id, appointment.slot_date):
        appointment = _reload_for_update(appointment_id)
        transition(appointment, Appointment.Status.CONFIRMED, APPOINTMENT_TRANSITIONS)
        appointment.confirmed_at = now
        appointment.save(update_fields=["status", "confirmed_at", "updated_at"])

    logger.info("[BOOKING] Appointment confirmed appointment_id=%s", appointment.id)
    return appointment


def cancel_locked(appointment: Appointment, *, reason="", cancelled_by="", now=None) -> Appointment:
    """Cancel an appointment whose provider-day lock the caller already holds."""
    transition(appointment, Appointment.Status.CANCELLED, APPOINTMENT_TRANSITIONS)
    appointment.cancellation_reason = reason or ""
    appointment.cancelled_by = cancelled_by or ""
    appointment.cancelled_at = now or timezone.now()
    appointment.save(
        update_fields=["status", "cancellation_reason", "cancelled_by", "cancelled_at", "updated_at"]
    )
    return appointment


def cancel_appointment(appointment_id, reason="", cancelled_by=Appointment.Party.SUBJECT, now=None) -> Appointment:
    """
    Cancel a non-terminal appointment, whatever its timing.

    Raises:
        NotFoundError: Unknown appointment.
        InvalidTransitionError: The appointment is already cancelled or completed.
    """
    appointment = get_appointment(appointment_id)

    with provider_day_lock(appointment.provider_id, appointment.slot_date):
        appointment = _reload_for_update(appointment_id)
        cancel_locked(appointment, reason=reason, cancelled_by=cancelled_by, now=now)

    logger.info(
        "[BOOKING] Appointment cancelled appointment_id=%s by=%s",
        appointment.id,
        cancelled_by,
    )
    return appointment


def sweep_completions(provider_id=None, now=None) -> list[Appointment]:
    """
    Move every CONFIRMED appointment whose slot has ended to COMPLETED.

    Idempotent: completed appointments are no longer CONFIRMED, so a second
    run finds nothing to do.

    Args:
        provider_id: Restrict the sweep to one provider.
        now: Reference time (defaults to timezone.now()).

    Returns:
        The appointments completed by this run.
    """
    now = now or timezone.now()
    candidates = Appointment.objects.filter(
        status=Appointment.Status.CONFIRMED,
        slot_start__lt=now,
    )
    if provider_id is not None:
        candidates = candidates.filter(provider_id=provider_id)

    keys = defaultdict(list)
    for appointment_id, key_provider, key_date in candidates.values_list("id", "provider_id", "slot_date"):
        keys[(key_provider, key_date)].append(appointment_id)

    completed = []
    for (key_provider, key_date), ids in sorted(keys.items()):
        with provider_day_lock(key_provider, key_date):
            rows = Appointment.objects.select_for_update().filter(
                id__in=ids, status=Appointment.Status.CONFIRMED,
            ).order_by("slot_start")
            for appointment in rows:
                if appointment.slot_end > now:
                    continue
                transition(appointment, Appointment.Status.COMPLETED, APPOINTMENT_TRANSITIONS)
                appointment.completed_at = now
                appointment.save(update_fields=["status", "completed_at", "updated_at"])
                completed.append(appointment)

    logger.info(
        "[SWEEP] Completed %s appointment(s) provider_id=%s", len(completed), provider_id,
    )
    return completed

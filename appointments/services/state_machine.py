"""
Lifecycle tables for appointments and guest visits.

    Appointment:     REQUESTED → {CONFIRMED, CANCELLED}
                     CONFIRMED → {CANCELLED, COMPLETED}
    Guest visit:     PENDING   → {CONFIRMED, CANCELLED}
                     CONFIRMED → {CANCELLED}

CANCELLED and COMPLETED are terminal. Both machines go through the same
`transition()` helper; statuses are the models' TextChoices, so an
unknown status value never gets this far.
"""

from appointments.exceptions import InvalidTransitionError
from appointments.models import Appointment
from guest_visits.models import GuestAffiliation

_A = Appointment.Status
_G = GuestAffiliation.Status

APPOINTMENT_TRANSITIONS = {
    _A.REQUESTED: frozenset({_A.CONFIRMED, _A.CANCELLED}),
    _A.CONFIRMED: frozenset({_A.CANCELLED, _A.COMPLETED}),
    _A.CANCELLED: frozenset(),
    _A.COMPLETED: frozenset(),
}

AFFILIATION_TRANSITIONS = {
    _G.PENDING: frozenset({_G.CONFIRMED, _G.CANCELLED}),
    _G.CONFIRMED: frozenset({_G.CANCELLED}),
    _G.CANCELLED: frozenset(),
}


def initial_appointment_status(auto_confirm: bool) -> str:
    return _A.CONFIRMED if auto_confirm else _A.REQUESTED


def is_terminal(status, table) -> bool:
    return not table[status]


def can_transition(current, target, table) -> bool:
    return target in table.get(current, frozenset())


def transition(instance, target, table):
    """
    Move `instance.status` to `target` or raise InvalidTransitionError.

    Only mutates the in-memory instance; the caller saves it.
    """
    current = instance.status
    if not can_transition(current, target, table):
        if is_terminal(current, table):
            raise InvalidTransitionError(
                f"{instance._meta.verbose_name} is already {current.lower()} and cannot change."
            )
        raise InvalidTransitionError(
            f"Cannot move {instance._meta.verbose_name} from {current.lower()} to {str(target).lower()}."
        )
    instance.status = target
    return instance

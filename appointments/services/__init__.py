# appointments/services package
#
# All symbols from the sub-modules are re-exported here so callers can
# import from one place:
#
#   from appointments.services import reserve, cancel_appointment
#   from appointments.services import provider_day_lock

from appointments.services.booking_service import reserve  # noqa: F401

from appointments.services.lifecycle_service import (  # noqa: F401
    cancel_appointment,
    cancel_locked,
    confirm_appointment,
    get_appointment,
    sweep_completions,
)

from appointments.services.locking import provider_day_lock  # noqa: F401

from appointments.services.state_machine import (  # noqa: F401
    AFFILIATION_TRANSITIONS,
    APPOINTMENT_TRANSITIONS,
    transition,
)

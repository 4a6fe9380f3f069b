"""
Per-provider-per-date exclusion scope.

Every write that can change what is bookable for (provider, date) runs
inside `provider_day_lock`. Two layers:

1. An in-process re-entrant lock per key, so threads of one worker queue up
   even on databases that ignore SELECT ... FOR UPDATE (SQLite).
2. A database transaction holding a row lock on the matching
   ScheduleLock rows, so separate worker processes queue up on PostgreSQL.

Keys are always taken in sorted order. Different providers, or the same
provider on different dates, never share a key.
"""

import logging
import threading
from contextlib import ExitStack, contextmanager

from django.db import transaction

from appointments.models import ScheduleLock

logger = logging.getLogger(__name__)

_registry_guard = threading.Lock()
_local_locks: dict = {}


class _LockEntry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.RLock()
        self.holders = 0


@contextmanager
def _local_lock(key):
    """
    Hold the in-process lock for `key`.

    The entry stays registered while any thread holds or waits for it and is
    dropped when the last one leaves.
    """
    with _registry_guard:
        entry = _local_locks.get(key)
        if entry is None:
            entry = _local_locks[key] = _LockEntry()
        entry.holders += 1
    try:
        with entry.lock:
            yield entry.lock
    finally:
        with _registry_guard:
            entry.holders -= 1
            if entry.holders == 0:
                del _local_locks[key]


@contextmanager
def provider_day_lock(provider_id, *dates):
    """
    Serialize writers for `provider_id` on each of `dates`.

    Yields inside an open `transaction.atomic()` block; the row locks are
    released when it commits or rolls back.
    """
    days = sorted(set(dates))
    with ExitStack() as stack:
        for day in days:
            stack.enter_context(_local_lock((provider_id, day)))

        with transaction.atomic():
            for day in days:
                ScheduleLock.objects.get_or_create(provider_id=provider_id, date=day)
            # Force query evaluation to acquire the row locks
            list(
                ScheduleLock.objects.select_for_update()
                .filter(provider_id=provider_id, date__in=days)
                .order_by("date")
            )
            logger.debug("[LOCK] acquired provider_id=%s dates=%s", provider_id, days)
            yield

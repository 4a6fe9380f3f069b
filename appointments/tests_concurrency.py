"""
Concurrent reservations for the same (provider, date).

The threaded tests run on every backend: on SQLite the in-process lock
serializes the threads, on PostgreSQL the row locks do as well.
"""

import threading
import time
from datetime import timedelta

from django.db import connection
from django.test import SimpleTestCase, TransactionTestCase

from appointments.exceptions import SlotNoLongerAvailableError
from appointments.models import Appointment, ScheduleLock
from appointments.services import locking, provider_day_lock, reserve
from appointments.tests import BookingTestMixin, local


class LocalLockRegistryTests(SimpleTestCase):

    def test_same_key_shares_one_lock(self):
        with locking._local_lock((1, "d")) as outer:
            with locking._local_lock((1, "d")) as inner:
                self.assertIs(outer, inner)

    def test_different_keys_do_not_share(self):
        with locking._local_lock((1, "d")) as first:
            with locking._local_lock((2, "d")) as other_provider:
                with locking._local_lock((1, "e")) as other_date:
                    self.assertIsNot(first, other_provider)
                    self.assertIsNot(first, other_date)

    def test_entry_dropped_after_release(self):
        with locking._local_lock((1, "d")):
            with locking._local_lock((1, "d")):
                self.assertIn((1, "d"), locking._local_locks)
            self.assertIn((1, "d"), locking._local_locks)
        self.assertNotIn((1, "d"), locking._local_locks)

    def test_entry_dropped_after_error(self):
        with self.assertRaises(RuntimeError):
            with locking._local_lock((1, "d")):
                raise RuntimeError("boom")
        self.assertNotIn((1, "d"), locking._local_locks)

    def test_waiting_thread_keeps_entry_alive(self):
        key = (1, "d")
        acquired = threading.Event()

        def waiter():
            with locking._local_lock(key):
                acquired.set()

        with locking._local_lock(key) as held:
            thread = threading.Thread(target=waiter)
            thread.start()
            # The waiter registers itself before blocking on the lock
            while locking._local_locks[key].holders < 2:
                time.sleep(0.001)
            self.assertIs(locking._local_locks[key].lock, held)
            self.assertFalse(acquired.is_set())
        thread.join()

        self.assertTrue(acquired.is_set())
        self.assertNotIn(key, locking._local_locks)


class ProviderDayLockTests(BookingTestMixin, TransactionTestCase):

    def test_lock_row_created_once(self):
        with provider_day_lock(self.provider.id, self.next_monday):
            pass
        with provider_day_lock(self.provider.id, self.next_monday, self.next_monday):
            pass
        self.assertEqual(ScheduleLock.objects.filter(provider=self.provider).count(), 1)

    def test_no_local_locks_left_behind(self):
        days = [self.next_monday + timedelta(days=offset) for offset in range(50)]
        for day in days:
            with provider_day_lock(self.provider.id, day):
                pass
        with provider_day_lock(self.provider.id, *days[:3]):
            pass
        self.assertFalse(
            any((self.provider.id, day) in locking._local_locks for day in days)
        )

    def test_error_inside_lock_rolls_back(self):
        with self.assertRaises(RuntimeError):
            with provider_day_lock(self.provider.id, self.next_monday):
                Appointment.objects.create(
                    provider=self.provider,
                    location=self.clinic,
                    patient=self.patient,
                    slot_start=local(self.next_monday, 9),
                    slot_date=self.next_monday,
                    duration_minutes=30,
                )
                raise RuntimeError("boom")
        self.assertFalse(Appointment.objects.exists())


class ConcurrentReserveTests(BookingTestMixin, TransactionTestCase):
    """N clients race for one slot: exactly one wins."""

    CLIENTS = 8

    def test_exactly_one_reservation_wins(self):
        start = local(self.next_monday, 10)
        barrier = threading.Barrier(self.CLIENTS)
        results = []
        results_guard = threading.Lock()

        def attempt(index):
            try:
                barrier.wait()
                try:
                    appointment = reserve(
                        provider_id=self.provider.id,
                        location_id=self.clinic.id,
                        slot_date=self.next_monday,
                        slot_start=start,
                        guest={"first_name": "Guest", "last_name": str(index), "phone": f"09100000{index:02d}"},
                    )
                    outcome = ("ok", appointment.id)
                except SlotNoLongerAvailableError:
                    outcome = ("taken", None)
                with results_guard:
                    results.append(outcome)
            finally:
                connection.close()

        threads = [threading.Thread(target=attempt, args=(i,)) for i in range(self.CLIENTS)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        winners = [r for r in results if r[0] == "ok"]
        self.assertEqual(len(results), self.CLIENTS)
        self.assertEqual(len(winners), 1)
        self.assertEqual(
            Appointment.objects.filter(provider=self.provider, slot_start=start).count(), 1
        )

    def test_different_slots_all_succeed(self):
        starts = [local(self.next_monday, 9), local(self.next_monday, 9, 30), local(self.next_monday, 10)]
        errors = []

        def attempt(slot_start):
            try:
                reserve(
                    provider_id=self.provider.id,
                    location_id=self.clinic.id,
                    slot_date=self.next_monday,
                    slot_start=slot_start,
                    patient=self.patient,
                )
            except Exception as e:  # noqa: BLE001
                errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=attempt, args=(s,)) for s in starts]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(Appointment.objects.filter(provider=self.provider).count(), 3)

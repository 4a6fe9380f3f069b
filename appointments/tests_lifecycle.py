"""
Tests for the appointment lifecycle: confirm, cancel, complete.
"""

from datetime import timedelta
from io import StringIO

from django.core.management import call_command
from django.test import SimpleTestCase, TestCase

from appointments.exceptions import InvalidTransitionError, NotFoundError
from appointments.models import Appointment
from appointments.services import (
    APPOINTMENT_TRANSITIONS,
    cancel_appointment,
    confirm_appointment,
    sweep_completions,
    transition,
)
from appointments.services.state_machine import (
    AFFILIATION_TRANSITIONS,
    can_transition,
    initial_appointment_status,
    is_terminal,
)
from appointments.tests import BookingTestMixin, local
from guest_visits.models import GuestAffiliation

S = Appointment.Status


class StateMachineTests(SimpleTestCase):

    def test_initial_status(self):
        self.assertEqual(initial_appointment_status(False), S.REQUESTED)
        self.assertEqual(initial_appointment_status(True), S.CONFIRMED)

    def test_allowed_appointment_moves(self):
        self.assertTrue(can_transition(S.REQUESTED, S.CONFIRMED, APPOINTMENT_TRANSITIONS))
        self.assertTrue(can_transition(S.REQUESTED, S.CANCELLED, APPOINTMENT_TRANSITIONS))
        self.assertTrue(can_transition(S.CONFIRMED, S.COMPLETED, APPOINTMENT_TRANSITIONS))
        self.assertTrue(can_transition(S.CONFIRMED, S.CANCELLED, APPOINTMENT_TRANSITIONS))

    def test_forbidden_appointment_moves(self):
        self.assertFalse(can_transition(S.REQUESTED, S.COMPLETED, APPOINTMENT_TRANSITIONS))
        self.assertFalse(can_transition(S.CONFIRMED, S.REQUESTED, APPOINTMENT_TRANSITIONS))
        self.assertFalse(can_transition(S.CANCELLED, S.CONFIRMED, APPOINTMENT_TRANSITIONS))

    def test_terminal_statuses(self):
        self.assertTrue(is_terminal(S.CANCELLED, APPOINTMENT_TRANSITIONS))
        self.assertTrue(is_terminal(S.COMPLETED, APPOINTMENT_TRANSITIONS))
        self.assertFalse(is_terminal(S.REQUESTED, APPOINTMENT_TRANSITIONS))
        self.assertTrue(is_terminal(GuestAffiliation.Status.CANCELLED, AFFILIATION_TRANSITIONS))

    def test_transition_mutates_only_in_memory(self):
        appointment = Appointment(status=S.REQUESTED)
        transition(appointment, S.CONFIRMED, APPOINTMENT_TRANSITIONS)
        self.assertEqual(appointment.status, S.CONFIRMED)
        self.assertIsNone(appointment.pk)

    def test_transition_out_of_terminal_raises(self):
        appointment = Appointment(status=S.COMPLETED)
        with self.assertRaises(InvalidTransitionError) as ctx:
            transition(appointment, S.CANCELLED, APPOINTMENT_TRANSITIONS)
        self.assertEqual(ctx.exception.code, "invalid_transition")
        self.assertEqual(appointment.status, S.COMPLETED)


class ConfirmCancelTests(BookingTestMixin, TestCase):

    def test_confirm_requested(self):
        appointment = confirm_appointment(self.book().id)
        self.assertEqual(appointment.status, S.CONFIRMED)
        self.assertIsNotNone(appointment.confirmed_at)

    def test_confirm_twice_raises(self):
        appointment = self.book()
        confirm_appointment(appointment.id)
        with self.assertRaises(InvalidTransitionError):
            confirm_appointment(appointment.id)

    def test_confirm_cancelled_raises(self):
        appointment = self.book()
        cancel_appointment(appointment.id)
        with self.assertRaises(InvalidTransitionError):
            confirm_appointment(appointment.id)

    def test_cancel_records_who_and_why(self):
        appointment = cancel_appointment(
            self.book().id, reason="Doctor is ill", cancelled_by=Appointment.Party.PROVIDER,
        )
        self.assertEqual(appointment.status, S.CANCELLED)
        self.assertEqual(appointment.cancellation_reason, "Doctor is ill")
        self.assertEqual(appointment.cancelled_by, Appointment.Party.PROVIDER)
        self.assertIsNotNone(appointment.cancelled_at)

    def test_cancel_keeps_the_record(self):
        appointment = self.book()
        cancel_appointment(appointment.id)
        self.assertTrue(Appointment.objects.filter(id=appointment.id).exists())

    def test_cancel_twice_raises(self):
        appointment = self.book()
        cancel_appointment(appointment.id)
        with self.assertRaises(InvalidTransitionError):
            cancel_appointment(appointment.id)

    def test_cancel_after_start_allowed(self):
        """Cancelling is allowed whatever the timing."""
        appointment = self.book()
        cancelled = cancel_appointment(appointment.id, now=appointment.slot_end + timedelta(hours=1))
        self.assertEqual(cancelled.status, S.CANCELLED)

    def test_unknown_appointment(self):
        with self.assertRaises(NotFoundError):
            cancel_appointment(9999)
        with self.assertRaises(NotFoundError):
            confirm_appointment(9999)


class SweepCompletionsTests(BookingTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.confirmed = confirm_appointment(self.book().id)
        self.requested = self.book(start=local(self.next_monday, 9, 30), patient=self.patient2)

    def test_completes_ended_confirmed_only(self):
        now = local(self.next_monday, 10)
        completed = sweep_completions(now=now)

        self.assertEqual([a.id for a in completed], [self.confirmed.id])
        self.confirmed.refresh_from_db()
        self.requested.refresh_from_db()
        self.assertEqual(self.confirmed.status, S.COMPLETED)
        self.assertEqual(self.confirmed.completed_at, now)
        self.assertEqual(self.requested.status, S.REQUESTED)

    def test_boundary_end_equals_now(self):
        self.assertEqual(len(sweep_completions(now=self.confirmed.slot_end)), 1)

    def test_not_yet_ended(self):
        self.assertEqual(sweep_completions(now=local(self.next_monday, 9, 20)), [])
        self.confirmed.refresh_from_db()
        self.assertEqual(self.confirmed.status, S.CONFIRMED)

    def test_idempotent(self):
        now = local(self.next_monday, 12)
        self.assertEqual(len(sweep_completions(now=now)), 1)
        self.assertEqual(sweep_completions(now=now), [])

    def test_restricted_to_provider(self):
        self.assertEqual(sweep_completions(provider_id=self.provider.id + 1, now=local(self.next_monday, 12)), [])

    def test_completed_cannot_be_cancelled(self):
        sweep_completions(now=local(self.next_monday, 12))
        with self.assertRaises(InvalidTransitionError):
            cancel_appointment(self.confirmed.id)

    def test_management_command(self):
        out = StringIO()
        call_command("sweep_completions", stdout=out)
        # The slots are next week, nothing has ended yet.
        self.assertIn("No appointments to complete", out.getvalue())
        self.confirmed.refresh_from_db()
        self.assertEqual(self.confirmed.status, S.CONFIRMED)

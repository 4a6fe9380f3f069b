"""
Tests for the reservation service.

Covers:
- Happy path for registered patients and guests
- Auto-confirm providers
- Stale, past and wrong-location requests
- Slots freed by cancellation
- Guest visit slots and cross-location conflicts
"""

from datetime import datetime, time, timedelta

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone

from appointments.exceptions import (
    BookingError,
    LocationMismatchError,
    NotFoundError,
    PastSlotError,
    SlotNoLongerAvailableError,
)
from appointments.models import Appointment
from appointments.services import cancel_appointment, reserve
from clinics.models import Clinic
from guest_visits.models import GuestAffiliation
from providers import services as provider_services
from providers.models import Provider, Service

User = get_user_model()


def local(day, hour, minute=0):
    return datetime.combine(day, time(hour, minute), tzinfo=timezone.get_current_timezone())


class BookingTestMixin:
    """Shared setup for booking tests."""

    def setUp(self):
        # Users
        self.main_doctor = User.objects.create_user(
            phone="0591000001",
            password="testpass123",
            name="Dr. Owner",
            role="MAIN_DOCTOR",
        )
        self.doctor = User.objects.create_user(
            phone="0591000002",
            password="testpass123",
            name="Dr. Ahmad",
            role="DOCTOR",
        )
        self.patient = User.objects.create_user(
            phone="0591000003",
            password="testpass123",
            name="Patient Ali",
            role="PATIENT",
        )
        self.patient2 = User.objects.create_user(
            phone="0591000004",
            password="testpass123",
            name="Patient Sara",
            role="PATIENT",
        )

        # Clinics
        self.clinic = Clinic.objects.create(
            name="Test Clinic",
            address="Test Address",
            phone="0591111111",
            email="test@clinic.com",
            main_doctor=self.main_doctor,
        )
        self.host_clinic = Clinic.objects.create(
            name="Host Clinic",
            address="Host Address",
            phone="0592222222",
            email="host@clinic.com",
            main_doctor=self.main_doctor,
        )

        # Find next Monday for consistent test dates
        today = timezone.localdate()
        days_ahead = 0 - today.weekday()  # Monday is 0
        if days_ahead <= 0:
            days_ahead += 7
        self.next_monday = today + timedelta(days=days_ahead)
        self.next_tuesday = self.next_monday + timedelta(days=1)

        # Provider: Mon-Fri 09:00-12:00, 30 minute slots
        self.provider = Provider.objects.create(
            name="Dr. Ahmad",
            user=self.doctor,
            primary_location=self.clinic,
            slot_duration_minutes=30,
        )
        provider_services.set_working_hours(
            self.provider,
            {day: {"is_open": True, "open_time": time(9, 0), "close_time": time(12, 0)} for day in range(5)},
        )

    def book(self, start=None, **overrides):
        params = {
            "provider_id": self.provider.id,
            "location_id": self.clinic.id,
            "slot_date": self.next_monday,
            "slot_start": start or local(self.next_monday, 9),
            "patient": self.patient,
        }
        params.update(overrides)
        return reserve(**params)

    def confirm_guest_visit(self, day=None, start=time(10, 0), end=time(11, 0), minutes=20):
        return GuestAffiliation.objects.create(
            provider=self.provider,
            host_location=self.host_clinic,
            date=day or self.next_tuesday,
            window_start=start,
            window_end=end,
            slot_duration_minutes=minutes,
            initiated_by=GuestAffiliation.Party.HOST,
            status=GuestAffiliation.Status.CONFIRMED,
        )


# ═══════════════════════════════════════════════════════════════════
#  Service Layer Tests
# ═══════════════════════════════════════════════════════════════════


class ReserveServiceTests(BookingTestMixin, TestCase):
    """Tests for the reserve service function."""

    def test_successful_booking(self):
        """Happy path: patient books an available slot."""
        appointment = self.book(reason="Annual checkup", created_by=self.patient)

        self.assertIsNotNone(appointment.id)
        self.assertEqual(appointment.patient, self.patient)
        self.assertEqual(appointment.provider, self.provider)
        self.assertEqual(appointment.location, self.clinic)
        self.assertEqual(appointment.slot_start, local(self.next_monday, 9))
        self.assertEqual(appointment.slot_date, self.next_monday)
        self.assertEqual(appointment.duration_minutes, 30)
        self.assertEqual(appointment.status, Appointment.Status.REQUESTED)
        self.assertIsNone(appointment.confirmed_at)
        self.assertEqual(appointment.reason, "Annual checkup")
        self.assertEqual(appointment.created_by, self.patient)

    def test_auto_confirm_provider(self):
        self.provider.auto_confirm = True
        self.provider.save()

        appointment = self.book()
        self.assertEqual(appointment.status, Appointment.Status.CONFIRMED)
        self.assertIsNotNone(appointment.confirmed_at)

    def test_guest_booking(self):
        appointment = self.book(
            patient=None,
            guest={"first_name": "Ana", "last_name": "Horvat", "phone": "0911234567"},
        )
        self.assertTrue(appointment.is_guest_subject)
        self.assertEqual(appointment.subject_name, "Ana Horvat")
        self.assertEqual(appointment.guest_phone, "0911234567")

    def test_guest_without_phone_rejected(self):
        with self.assertRaises(BookingError) as ctx:
            self.book(patient=None, guest={"first_name": "Ana", "last_name": "Horvat"})
        self.assertEqual(ctx.exception.code, "invalid_subject")
        self.assertFalse(Appointment.objects.exists())

    def test_booked_slot_disappears_from_availability(self):
        self.book()
        starts = [s.start for s in provider_services.get_availability(self.provider.id, self.next_monday)]
        self.assertNotIn(local(self.next_monday, 9), starts)
        self.assertEqual(len(starts), 5)

    def test_slot_already_booked_raises_error(self):
        """Second booking for the same slot is rejected."""
        self.book()
        with self.assertRaises(SlotNoLongerAvailableError):
            self.book(patient=self.patient2)
        self.assertEqual(Appointment.objects.count(), 1)

    def test_stale_snapshot_rejected(self):
        """A slot taken between listing and reserving is no longer available."""
        snapshot = provider_services.get_availability(self.provider.id, self.next_monday)
        self.book(start=snapshot[0].start)

        with self.assertRaises(SlotNoLongerAvailableError) as ctx:
            self.book(start=snapshot[0].start, patient=self.patient2)
        self.assertEqual(ctx.exception.code, "slot_unavailable")

    def test_overlapping_longer_booking_rejected(self):
        """A 60 minute booking at 09:00 would overlap the 09:30 appointment."""
        self.book(start=local(self.next_monday, 9, 30))
        with self.assertRaises(SlotNoLongerAvailableError):
            self.book(start=local(self.next_monday, 9), duration_minutes=60, patient=self.patient2)

    def test_off_grid_start_rejected(self):
        with self.assertRaises(SlotNoLongerAvailableError):
            self.book(start=local(self.next_monday, 9, 15))

    def test_start_on_other_date_rejected(self):
        with self.assertRaises(SlotNoLongerAvailableError):
            self.book(start=local(self.next_tuesday, 9))

    def test_closed_day_rejected(self):
        saturday = self.next_monday + timedelta(days=5)
        with self.assertRaises(SlotNoLongerAvailableError):
            self.book(slot_date=saturday, start=local(saturday, 9))

    def test_past_slot_raises_error(self):
        """A slot that already started cannot be booked even if it is free."""
        now = local(self.next_monday, 9, 10)
        with self.assertRaises(PastSlotError) as ctx:
            self.book(now=now)
        self.assertEqual(ctx.exception.code, "past_slot")

    def test_slot_starting_exactly_now_is_past(self):
        with self.assertRaises(PastSlotError):
            self.book(now=local(self.next_monday, 9))

    def test_wrong_location_raises_error(self):
        with self.assertRaises(LocationMismatchError):
            self.book(location_id=self.host_clinic.id)

    def test_unknown_provider(self):
        with self.assertRaises(NotFoundError):
            self.book(provider_id=9999)

    def test_cancelled_slot_can_be_rebooked(self):
        appointment = self.book()
        cancel_appointment(appointment.id, reason="Changed plans")

        rebooked = self.book(patient=self.patient2)
        self.assertEqual(rebooked.slot_start, appointment.slot_start)
        self.assertEqual(Appointment.objects.filter(status=Appointment.Status.CANCELLED).count(), 1)

    def test_service_duration_used(self):
        service = Service.objects.create(provider=self.provider, name="Long consult", duration_minutes=60)
        appointment = self.book(service_id=service.id)
        self.assertEqual(appointment.duration_minutes, 60)
        self.assertEqual(appointment.service, service)

    def test_different_time_same_day_ok(self):
        self.book()
        second = self.book(start=local(self.next_monday, 9, 30), patient=self.patient2)
        self.assertEqual(second.status, Appointment.Status.REQUESTED)


class GuestVisitBookingTests(BookingTestMixin, TestCase):
    """Bookings inside a confirmed guest visit window."""

    def test_guest_visit_slot_tagged_with_host(self):
        visit = self.confirm_guest_visit()
        appointment = self.book(
            location_id=self.host_clinic.id,
            slot_date=self.next_tuesday,
            start=local(self.next_tuesday, 10, 20),
        )
        self.assertEqual(appointment.location, self.host_clinic)
        self.assertEqual(appointment.guest_affiliation, visit)
        self.assertEqual(appointment.duration_minutes, 20)

    def test_primary_location_blocked_during_guest_visit(self):
        self.confirm_guest_visit()
        with self.assertRaises(LocationMismatchError):
            self.book(slot_date=self.next_tuesday, start=local(self.next_tuesday, 10, 0))

    def test_host_booking_blocks_primary_slot(self):
        """Booking at the host clinic occupies the provider everywhere."""
        self.confirm_guest_visit(start=time(9, 0), end=time(10, 0), minutes=30)
        self.book(
            location_id=self.host_clinic.id,
            slot_date=self.next_tuesday,
            start=local(self.next_tuesday, 9, 30),
        )
        slots = provider_services.get_availability(self.provider.id, self.next_tuesday)
        self.assertNotIn(local(self.next_tuesday, 9, 30), [s.start for s in slots])
        self.assertIn(local(self.next_tuesday, 10), [s.start for s in slots])

    def test_pending_guest_visit_not_bookable(self):
        visit = self.confirm_guest_visit()
        visit.status = GuestAffiliation.Status.PENDING
        visit.save()
        with self.assertRaises(SlotNoLongerAvailableError):
            self.book(
                location_id=self.host_clinic.id,
                slot_date=self.next_tuesday,
                start=local(self.next_tuesday, 10, 20),
            )


class ReserveDateHandlingTests(BookingTestMixin, TestCase):

    def test_naive_start_read_in_current_timezone(self):
        naive = datetime.combine(self.next_monday, time(9, 0))
        appointment = self.book(start=naive)
        self.assertEqual(appointment.slot_start, local(self.next_monday, 9))

    def test_availability_for_past_date_is_not_an_error(self):
        past_monday = self.next_monday - timedelta(days=14)
        self.assertIsInstance(provider_services.get_availability(self.provider.id, past_monday), list)

    def test_far_future_date(self):
        far = self.next_monday + timedelta(weeks=52)
        appointment = self.book(slot_date=far, start=local(far, 11, 30))
        self.assertEqual(appointment.slot_date, far)

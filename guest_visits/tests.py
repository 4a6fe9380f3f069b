from datetime import datetime, time, timedelta

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from appointments.exceptions import (
    BookingError,
    InvalidIntervalError,
    InvalidTransitionError,
    LocationMismatchError,
    OverlapsExistingCommitmentError,
)
from appointments.models import Appointment
from appointments.services import cancel_appointment, reserve
from clinics.models import Clinic
from providers import services as provider_services
from providers.models import Provider

from . import services
from .models import GuestAffiliation

User = get_user_model()

HOST = GuestAffiliation.Party.HOST
PROVIDER = GuestAffiliation.Party.PROVIDER


def local(day, hour, minute=0):
    return datetime.combine(day, time(hour, minute), tzinfo=timezone.get_current_timezone())


class GuestVisitTestMixin:
    """A doctor at Primary Clinic, and Host Clinic run by someone else."""

    def setUp(self):
        self.primary_owner = User.objects.create_user(
            phone="0591000001", password="testpass123", name="Dr. Owner", role="MAIN_DOCTOR",
        )
        self.host_owner = User.objects.create_user(
            phone="0591000005", password="testpass123", name="Dr. Host", role="MAIN_DOCTOR",
        )
        self.doctor = User.objects.create_user(
            phone="0591000002", password="testpass123", name="Dr. Ahmad", role="DOCTOR",
        )
        self.patient = User.objects.create_user(
            phone="0591000003", password="testpass123", name="Patient Ali", role="PATIENT",
        )
        self.primary = Clinic.objects.create(
            name="Primary Clinic",
            address="Address A",
            phone="0591111111",
            email="a@clinic.com",
            main_doctor=self.primary_owner,
        )
        self.host = Clinic.objects.create(
            name="Host Clinic",
            address="Address B",
            phone="0592222222",
            email="b@clinic.com",
            main_doctor=self.host_owner,
        )
        self.other_host = Clinic.objects.create(
            name="Third Clinic",
            address="Address C",
            phone="0593333333",
            email="c@clinic.com",
            main_doctor=self.host_owner,
        )
        self.provider = Provider.objects.create(
            name="Dr. Ahmad", user=self.doctor, primary_location=self.primary, slot_duration_minutes=30,
        )
        provider_services.set_working_hours(
            self.provider,
            {day: {"is_open": True, "open_time": time(8, 0), "close_time": time(16, 0)} for day in range(5)},
        )

        today = timezone.localdate()
        days_ahead = 1 - today.weekday()  # Tuesday is 1
        if days_ahead <= 0:
            days_ahead += 7
        self.visit_date = today + timedelta(days=days_ahead)

    def propose(self, initiated_by=HOST, host=None, start=time(10, 0), end=time(12, 0), minutes=20):
        return services.propose_affiliation(
            provider_id=self.provider.id,
            host_location_id=(host or self.host).id,
            visit_date=self.visit_date,
            window_start=start,
            window_end=end,
            slot_duration_minutes=minutes,
            initiated_by=initiated_by,
            note="Monthly visit",
        )

    def confirmed_visit(self, **kwargs):
        visit = self.propose(**kwargs)
        responder = PROVIDER if visit.initiated_by == HOST else HOST
        return services.respond_to_affiliation(visit.id, GuestAffiliation.Status.CONFIRMED, responder).affiliation

    def book_host(self, hour, minute=0, **kwargs):
        return reserve(
            provider_id=self.provider.id,
            location_id=self.host.id,
            slot_date=self.visit_date,
            slot_start=local(self.visit_date, hour, minute),
            patient=self.patient,
            **kwargs,
        )


class ProposeAffiliationTests(GuestVisitTestMixin, TestCase):

    def test_propose_creates_pending(self):
        visit = self.propose()
        self.assertEqual(visit.status, GuestAffiliation.Status.PENDING)
        self.assertEqual(visit.initiated_by, HOST)
        self.assertEqual(visit.slot_duration_minutes, 20)

    def test_default_duration_from_provider(self):
        visit = self.propose(minutes=None)
        self.assertEqual(visit.slot_duration_minutes, 30)

    def test_inverted_window_rejected(self):
        with self.assertRaises(InvalidIntervalError):
            self.propose(start=time(12, 0), end=time(10, 0))

    def test_primary_location_rejected(self):
        with self.assertRaises(LocationMismatchError):
            self.propose(host=self.primary)

    def test_unknown_party_rejected(self):
        with self.assertRaises(BookingError) as ctx:
            self.propose(initiated_by="PATIENT")
        self.assertEqual(ctx.exception.code, "invalid_party")

    def test_model_rejects_primary_host(self):
        visit = GuestAffiliation(
            provider=self.provider,
            host_location=self.primary,
            date=self.visit_date,
            window_start=time(10, 0),
            window_end=time(11, 0),
            initiated_by=HOST,
        )
        with self.assertRaises(ValidationError):
            visit.full_clean()

    def test_pending_visit_offers_no_slots(self):
        self.propose()
        slots = provider_services.get_availability(self.provider.id, self.visit_date)
        self.assertTrue(all(s.location_id == self.primary.id for s in slots))


class RespondAffiliationTests(GuestVisitTestMixin, TestCase):

    def test_invited_party_confirms(self):
        visit = self.propose(initiated_by=HOST)
        result = services.respond_to_affiliation(visit.id, GuestAffiliation.Status.CONFIRMED, PROVIDER, note="See you")

        self.assertEqual(result.affiliation.status, GuestAffiliation.Status.CONFIRMED)
        self.assertEqual(result.affiliation.response_note, "See you")
        self.assertIsNotNone(result.affiliation.responded_at)
        self.assertEqual(result.cancelled_appointments, [])

        slots = provider_services.get_availability(self.provider.id, self.visit_date)
        host_slots = [s for s in slots if s.location_id == self.host.id]
        self.assertEqual(len(host_slots), 6)
        self.assertTrue(all(s.guest_affiliation_id == visit.id for s in host_slots))

    def test_provider_initiated_confirmed_by_host(self):
        visit = self.propose(initiated_by=PROVIDER)
        result = services.respond_to_affiliation(visit.id, GuestAffiliation.Status.CONFIRMED, HOST)
        self.assertTrue(result.affiliation.is_confirmed)

    def test_initiator_cannot_confirm(self):
        visit = self.propose(initiated_by=HOST)
        with self.assertRaises(InvalidTransitionError):
            services.respond_to_affiliation(visit.id, GuestAffiliation.Status.CONFIRMED, HOST)
        visit.refresh_from_db()
        self.assertEqual(visit.status, GuestAffiliation.Status.PENDING)

    def test_initiator_may_withdraw(self):
        visit = self.propose(initiated_by=HOST)
        result = services.respond_to_affiliation(visit.id, GuestAffiliation.Status.CANCELLED, HOST)
        self.assertEqual(result.affiliation.status, GuestAffiliation.Status.CANCELLED)
        self.assertIsNotNone(result.affiliation.cancelled_at)

    def test_confirm_overlapping_visit_rejected(self):
        self.confirmed_visit()
        second = self.propose(host=self.other_host, start=time(11, 0), end=time(13, 0))
        with self.assertRaises(OverlapsExistingCommitmentError):
            services.respond_to_affiliation(second.id, GuestAffiliation.Status.CONFIRMED, PROVIDER)
        second.refresh_from_db()
        self.assertEqual(second.status, GuestAffiliation.Status.PENDING)

    def test_touching_visits_allowed(self):
        self.confirmed_visit()
        second = self.propose(host=self.other_host, start=time(12, 0), end=time(13, 0))
        result = services.respond_to_affiliation(second.id, GuestAffiliation.Status.CONFIRMED, PROVIDER)
        self.assertTrue(result.affiliation.is_confirmed)

    def test_confirm_over_primary_booking_rejected(self):
        reserve(
            provider_id=self.provider.id,
            location_id=self.primary.id,
            slot_date=self.visit_date,
            slot_start=local(self.visit_date, 10, 30),
            patient=self.patient,
        )
        visit = self.propose()
        with self.assertRaises(OverlapsExistingCommitmentError):
            services.respond_to_affiliation(visit.id, GuestAffiliation.Status.CONFIRMED, PROVIDER)

    def test_primary_booking_outside_window_allowed(self):
        reserve(
            provider_id=self.provider.id,
            location_id=self.primary.id,
            slot_date=self.visit_date,
            slot_start=local(self.visit_date, 9),
            patient=self.patient,
        )
        self.assertTrue(self.confirmed_visit().is_confirmed)

    def test_respond_to_cancelled_raises(self):
        visit = self.propose()
        services.respond_to_affiliation(visit.id, GuestAffiliation.Status.CANCELLED, PROVIDER)
        with self.assertRaises(InvalidTransitionError):
            services.respond_to_affiliation(visit.id, GuestAffiliation.Status.CONFIRMED, PROVIDER)

    def test_unknown_decision_rejected(self):
        visit = self.propose()
        with self.assertRaises(InvalidTransitionError):
            services.respond_to_affiliation(visit.id, GuestAffiliation.Status.PENDING, PROVIDER)


class CascadeCancellationTests(GuestVisitTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.visit = self.confirmed_visit()
        self.inside = self.book_host(10, 20)
        self.other = self.book_host(11, 0)

    def test_cancelling_confirmed_visit_cancels_its_bookings(self):
        result = services.respond_to_affiliation(
            self.visit.id, GuestAffiliation.Status.CANCELLED, HOST, note="Room unavailable",
        )

        self.assertEqual(
            sorted(a.id for a in result.cancelled_appointments), sorted([self.inside.id, self.other.id])
        )
        for appointment in (self.inside, self.other):
            appointment.refresh_from_db()
            self.assertEqual(appointment.status, Appointment.Status.CANCELLED)
            self.assertEqual(appointment.cancelled_by, Appointment.Party.HOST)
            self.assertIn("Room unavailable", appointment.cancellation_reason)

    def test_host_slots_disappear_after_cancel(self):
        services.respond_to_affiliation(self.visit.id, GuestAffiliation.Status.CANCELLED, PROVIDER)
        slots = provider_services.get_availability(self.provider.id, self.visit_date)
        self.assertFalse(any(s.location_id == self.host.id for s in slots))
        # Primary hours come back for the window.
        self.assertIn(local(self.visit_date, 10), [s.start for s in slots])

    def test_already_cancelled_bookings_untouched(self):
        cancel_appointment(self.other.id, reason="Patient cancelled")
        result = services.respond_to_affiliation(self.visit.id, GuestAffiliation.Status.CANCELLED, HOST)
        self.assertEqual([a.id for a in result.cancelled_appointments], [self.inside.id])
        self.other.refresh_from_db()
        self.assertEqual(self.other.cancelled_by, Appointment.Party.SUBJECT)

    def test_started_visit_cannot_be_cancelled(self):
        with self.assertRaises(InvalidTransitionError):
            services.respond_to_affiliation(
                self.visit.id,
                GuestAffiliation.Status.CANCELLED,
                HOST,
                now=local(self.visit_date, 10, 5),
            )
        self.inside.refresh_from_db()
        self.assertEqual(self.inside.status, Appointment.Status.REQUESTED)


class AffiliationListingTests(GuestVisitTestMixin, TestCase):

    def test_upcoming_excludes_past_and_cancelled(self):
        upcoming = self.confirmed_visit()
        withdrawn = self.propose(host=self.other_host, start=time(13, 0), end=time(14, 0))
        services.respond_to_affiliation(withdrawn.id, GuestAffiliation.Status.CANCELLED, HOST)

        ids = [a.id for a in services.list_provider_affiliations(self.provider.id, upcoming=True)]
        self.assertEqual(ids, [upcoming.id])

        later = self.visit_date + timedelta(days=1)
        self.assertEqual(list(services.list_provider_affiliations(self.provider.id, upcoming=True, today=later)), [])
        self.assertEqual(services.list_provider_affiliations(self.provider.id).count(), 2)

    def test_location_schedule_confirmed_only(self):
        confirmed = self.confirmed_visit()
        self.propose(host=self.host, start=time(13, 0), end=time(14, 0))
        self.assertEqual([a.id for a in services.list_location_schedule(self.host.id)], [confirmed.id])


class GuestVisitAPITests(GuestVisitTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.client = APIClient()

    def _propose_payload(self, **overrides):
        payload = {
            "provider_id": self.provider.id,
            "host_location_id": self.host.id,
            "date": self.visit_date.isoformat(),
            "window_start": "10:00",
            "window_end": "12:00",
            "slot_duration_minutes": 20,
        }
        payload.update(overrides)
        return payload

    def test_host_proposes_doctor_confirms(self):
        self.client.force_authenticate(user=self.host_owner)
        response = self.client.post(reverse("guest_visits:api_propose"), self._propose_payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["initiated_by"], HOST)

        self.client.force_authenticate(user=self.doctor)
        response = self.client.post(
            reverse("guest_visits:api_respond", args=[response.data["id"]]),
            {"decision": "CONFIRMED"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "CONFIRMED")
        self.assertEqual(response.data["cancelled_appointment_ids"], [])

    def test_initiator_confirm_returns_409(self):
        visit = self.propose(initiated_by=HOST)
        self.client.force_authenticate(user=self.host_owner)
        response = self.client.post(
            reverse("guest_visits:api_respond", args=[visit.id]), {"decision": "CONFIRMED"}, format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "invalid_transition")

    def test_stranger_cannot_propose(self):
        self.client.force_authenticate(user=self.patient)
        response = self.client.post(reverse("guest_visits:api_propose"), self._propose_payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_dual_role_must_name_party(self):
        admin = User.objects.create_superuser(phone="0590000000", password="adminpass", name="Admin")
        self.client.force_authenticate(user=admin)
        response = self.client.post(reverse("guest_visits:api_propose"), self._propose_payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(
            reverse("guest_visits:api_propose"), self._propose_payload(party="PROVIDER"), format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_cancel_reports_cascaded_bookings(self):
        visit = self.confirmed_visit()
        appointment = self.book_host(10, 0)

        self.client.force_authenticate(user=self.doctor)
        response = self.client.post(
            reverse("guest_visits:api_respond", args=[visit.id]),
            {"decision": "CANCELLED", "note": "Sick"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["cancelled_appointment_ids"], [appointment.id])

    def test_provider_list_requires_provider_side(self):
        self.propose()
        url = reverse("guest_visits:api_provider_affiliations", args=[self.provider.id])

        self.client.force_authenticate(user=self.host_owner)
        self.assertEqual(self.client.get(url).status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.doctor)
        response = self.client.get(url, {"upcoming": "1"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["results"]), 1)

    def test_public_location_schedule(self):
        self.confirmed_visit()
        response = self.client.get(reverse("guest_visits:api_location_schedule", args=[self.host.id]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["results"][0]["provider_name"], "Dr. Ahmad")

"""
Tests for the appointments API endpoints.
"""

from django.contrib.auth import get_user_model
from django.urls import reverse
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from appointments.models import Appointment
from appointments.services import confirm_appointment
from appointments.tests import BookingTestMixin, local
from clinics.models import ClinicStaff

User = get_user_model()


class ReserveAPITests(BookingTestMixin, TestCase):
    """Tests for POST /appointments/api/reserve/"""

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.url = reverse("appointments:api_reserve")

    def _payload(self, **overrides):
        payload = {
            "provider_id": self.provider.id,
            "location_id": self.clinic.id,
            "slot_date": self.next_monday.isoformat(),
            "slot_start": local(self.next_monday, 9).isoformat(),
            "reason": "Test booking",
        }
        payload.update(overrides)
        return payload

    def _guest(self):
        return {"first_name": "Ana", "last_name": "Horvat", "phone": "0911234567"}

    def test_patient_books_for_self(self):
        self.client.force_authenticate(user=self.patient)
        response = self.client.post(self.url, self._payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["status"], "REQUESTED")
        self.assertEqual(response.data["patient"], self.patient.id)
        self.assertEqual(response.data["provider_name"], "Dr. Ahmad")
        self.assertEqual(response.data["location_name"], "Test Clinic")

    def test_anonymous_guest_booking(self):
        response = self.client.post(self.url, self._payload(guest=self._guest()), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(response.data["patient"])
        self.assertEqual(response.data["subject_name"], "Ana Horvat")

    def test_anonymous_without_guest_rejected(self):
        response = self.client.post(self.url, self._payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_subject")

    def test_anonymous_cannot_name_a_patient(self):
        response = self.client.post(self.url, self._payload(patient_id=self.patient.id), format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_provider_books_for_patient(self):
        self.client.force_authenticate(user=self.doctor)
        response = self.client.post(self.url, self._payload(patient_id=self.patient.id), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["patient"], self.patient.id)

    def test_patient_cannot_book_for_guest(self):
        self.client.force_authenticate(user=self.patient)
        response = self.client.post(self.url, self._payload(guest=self._guest()), format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_missing_fields_returns_400(self):
        response = self.client.post(self.url, {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("provider_id", response.data)

    def test_slot_unavailable_returns_409(self):
        self.client.force_authenticate(user=self.patient)
        self.client.post(self.url, self._payload(), format="json")

        self.client.force_authenticate(user=self.patient2)
        response = self.client.post(self.url, self._payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "slot_unavailable")

    def test_location_mismatch_returns_400(self):
        self.client.force_authenticate(user=self.patient)
        response = self.client.post(
            self.url, self._payload(location_id=self.host_clinic.id), format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "location_mismatch")

    def test_unknown_provider_returns_404(self):
        self.client.force_authenticate(user=self.patient)
        response = self.client.post(self.url, self._payload(provider_id=9999), format="json")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["code"], "not_found")


class AppointmentLifecycleAPITests(BookingTestMixin, TestCase):
    """Tests for cancel / confirm / sweep endpoints."""

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.appointment = self.book()

    def _cancel(self, user, **data):
        self.client.force_authenticate(user=user)
        url = reverse("appointments:api_cancel", args=[self.appointment.id])
        return self.client.post(url, data, format="json")

    def test_subject_cancels(self):
        response = self._cancel(self.patient, reason="Cannot make it")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "CANCELLED")
        self.assertEqual(response.data["cancelled_by"], Appointment.Party.SUBJECT)
        self.assertEqual(response.data["cancellation_reason"], "Cannot make it")

    def test_provider_cancels(self):
        response = self._cancel(self.doctor)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["cancelled_by"], Appointment.Party.PROVIDER)

    def test_clinic_staff_cancels_as_provider_side(self):
        secretary = User.objects.create_user(
            phone="0591000009", password="testpass123", name="Sec", role="SECRETARY",
        )
        ClinicStaff.objects.create(clinic=self.clinic, user=secretary, role="SECRETARY")
        response = self._cancel(secretary)
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_stranger_cannot_cancel(self):
        response = self._cancel(self.patient2)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_cancel_twice_returns_409(self):
        self._cancel(self.patient)
        response = self._cancel(self.patient)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "invalid_transition")

    def test_cancel_requires_login(self):
        url = reverse("appointments:api_cancel", args=[self.appointment.id])
        response = self.client.post(url, {}, format="json")
        self.assertIn(response.status_code, [status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN])

    def test_provider_confirms(self):
        self.client.force_authenticate(user=self.doctor)
        url = reverse("appointments:api_confirm", args=[self.appointment.id])
        response = self.client.post(url, {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "CONFIRMED")

    def test_patient_cannot_confirm(self):
        self.client.force_authenticate(user=self.patient)
        url = reverse("appointments:api_confirm", args=[self.appointment.id])
        response = self.client.post(url, {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_sweep_requires_staff(self):
        self.client.force_authenticate(user=self.doctor)
        response = self.client.post(reverse("appointments:api_sweep_completions"), {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_staff_sweep(self):
        confirm_appointment(self.appointment.id)
        admin = User.objects.create_superuser(phone="0590000000", password="adminpass", name="Admin")
        self.client.force_authenticate(user=admin)
        response = self.client.post(
            reverse("appointments:api_sweep_completions"), {"provider_id": self.provider.id}, format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        # Appointment is next week, nothing to complete yet.
        self.assertEqual(response.data["completed"], 0)

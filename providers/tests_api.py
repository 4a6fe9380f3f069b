from datetime import time

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from guest_visits.models import GuestAffiliation

from .models import Service
from .tests import MONDAY, TUESDAY, ProviderTestMixin

User = get_user_model()


class AvailabilityAPITests(ProviderTestMixin, TestCase):
    """Tests for GET /providers/api/<provider_id>/availability/"""

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.url = reverse("providers:api_provider_availability", args=[self.provider.id])

    def test_public_availability(self):
        response = self.client.get(self.url, {"date": MONDAY.isoformat()})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["day_of_week"], "Monday")
        self.assertEqual(response.data["duration_minutes"], 30)
        self.assertEqual(len(response.data["results"]), 16)
        self.assertEqual(response.data["results"][0]["location_name"], "Clinic A")
        self.assertIsNone(response.data["results"][0]["guest_affiliation_id"])

    def test_missing_date_returns_400(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_bad_date_returns_400(self):
        response = self.client.get(self.url, {"date": "07/01/2030"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_duration_override(self):
        response = self.client.get(self.url, {"date": MONDAY.isoformat(), "duration_minutes": "60"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["results"]), 8)

    def test_duration_out_of_range(self):
        response = self.client.get(self.url, {"date": MONDAY.isoformat(), "duration_minutes": "1000"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_duration")

    def test_service_duration(self):
        service = Service.objects.create(provider=self.provider, name="Check", duration_minutes=45)
        response = self.client.get(self.url, {"date": MONDAY.isoformat(), "service_id": service.id})
        self.assertEqual(response.data["duration_minutes"], 45)

    def test_non_numeric_service_id_returns_400(self):
        response = self.client.get(self.url, {"date": MONDAY.isoformat(), "service_id": "abc"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("service_id", response.data)

    def test_unknown_service_returns_400(self):
        response = self.client.get(self.url, {"date": MONDAY.isoformat(), "service_id": 9999})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_service")

    def test_closure_reason_reported(self):
        self.provider.closures.create(start_date=MONDAY, end_date=MONDAY, reason="Public holiday")
        response = self.client.get(self.url, {"date": MONDAY.isoformat()})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["results"], [])
        self.assertEqual(response.data["closure_reason"], "Public holiday")

    def test_guest_visit_slots_named_by_host(self):
        GuestAffiliation.objects.create(
            provider=self.provider,
            host_location=self.clinic_b,
            date=TUESDAY,
            window_start=time(10, 0),
            window_end=time(12, 0),
            slot_duration_minutes=20,
            initiated_by=GuestAffiliation.Party.HOST,
            status=GuestAffiliation.Status.CONFIRMED,
        )
        response = self.client.get(self.url, {"date": TUESDAY.isoformat()})
        names = {slot["location_name"] for slot in response.data["results"]}
        self.assertEqual(names, {"Clinic A", "Clinic B"})

    def test_unknown_provider_returns_404(self):
        url = reverse("providers:api_provider_availability", args=[9999])
        response = self.client.get(url, {"date": MONDAY.isoformat()})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class ScheduleManagementAPITests(ProviderTestMixin, TestCase):
    """Schedule writes are limited to the provider's side."""

    def setUp(self):
        super().setUp()
        self.client = APIClient()

    def test_schedule_is_public(self):
        response = self.client.get(reverse("providers:api_provider_schedule", args=[self.provider.id]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["working_days"]), 7)
        self.assertEqual(response.data["primary_location_name"], "Clinic A")

    def test_doctor_updates_working_hours(self):
        self.client.force_authenticate(user=self.doctor)
        response = self.client.put(
            reverse("providers:api_working_hours", args=[self.provider.id]),
            {"days": [{"weekday": 5, "is_open": True, "open_time": "09:00", "close_time": "13:00"}]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        saturday = self.provider.working_days.get(weekday=5)
        self.assertTrue(saturday.is_open)
        self.assertEqual(saturday.close_time, time(13, 0))

    def test_inverted_hours_return_invalid_interval(self):
        self.client.force_authenticate(user=self.doctor)
        response = self.client.put(
            reverse("providers:api_working_hours", args=[self.provider.id]),
            {"days": [{"weekday": 0, "is_open": True, "open_time": "13:00", "close_time": "09:00"}]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_interval")

    def test_duplicate_weekday_rejected(self):
        self.client.force_authenticate(user=self.doctor)
        response = self.client.put(
            reverse("providers:api_working_hours", args=[self.provider.id]),
            {"days": [{"weekday": 0, "is_open": False}, {"weekday": 0, "is_open": False}]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_clinic_owner_manages_affiliated_doctor(self):
        self.client.force_authenticate(user=self.main_doctor)
        response = self.client.post(
            reverse("providers:api_breaks", args=[self.provider.id]),
            {"start_time": "12:00", "end_time": "13:00", "label": "Lunch"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.delete(
            reverse("providers:api_break_detail", args=[self.provider.id, response.data["id"]])
        )
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(self.provider.breaks.exists())

    def test_outsider_cannot_add_closure(self):
        outsider = User.objects.create_user(
            phone="0591000099", password="testpass123", name="Other", role="DOCTOR",
        )
        self.client.force_authenticate(user=outsider)
        response = self.client.post(
            reverse("providers:api_closures", args=[self.provider.id]),
            {"start_date": MONDAY.isoformat(), "end_date": MONDAY.isoformat()},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_closure_round_trip(self):
        self.client.force_authenticate(user=self.doctor)
        response = self.client.post(
            reverse("providers:api_closures", args=[self.provider.id]),
            {"start_date": MONDAY.isoformat(), "end_date": TUESDAY.isoformat(), "reason": "Vacation"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        availability = self.client.get(
            reverse("providers:api_provider_availability", args=[self.provider.id]),
            {"date": TUESDAY.isoformat()},
        )
        self.assertEqual(availability.data["results"], [])

        response = self.client.delete(
            reverse("providers:api_closure_detail", args=[self.provider.id, response.data["id"]])
        )
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_settings_patch(self):
        self.client.force_authenticate(user=self.doctor)
        response = self.client.patch(
            reverse("providers:api_provider_settings", args=[self.provider.id]),
            {"auto_confirm": True},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["auto_confirm"])
        self.assertEqual(response.data["slot_duration_minutes"], 30)

    def test_write_requires_login(self):
        response = self.client.patch(
            reverse("providers:api_provider_settings", args=[self.provider.id]),
            {"auto_confirm": True},
            format="json",
        )
        self.assertIn(response.status_code, [status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN])

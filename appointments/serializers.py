from rest_framework import serializers
from .models import Appointment


class GuestContactSerializer(serializers.Serializer):
    """Contact details for a subject without an account."""

    first_name = serializers.CharField(max_length=100)
    last_name = serializers.CharField(max_length=100)
    phone = serializers.CharField(max_length=20)
    email = serializers.EmailField(required=False, allow_blank=True, default="")


class ReserveSerializer(serializers.Serializer):
    """
    Request serializer for reserving a slot.

    Only shape is checked here; whether the slot is still free is decided
    by the reservation service under the provider-day lock.
    """

    provider_id = serializers.IntegerField()
    location_id = serializers.IntegerField()
    slot_date = serializers.DateField(
        help_text="Date of the slot in YYYY-MM-DD format.",
    )
    slot_start = serializers.DateTimeField(
        help_text="Slot start as returned by the availability endpoint.",
    )
    duration_minutes = serializers.IntegerField(required=False, min_value=1)
    service_id = serializers.IntegerField(required=False)
    patient_id = serializers.IntegerField(
        required=False,
        help_text="Registered subject, when staff book on a patient's behalf.",
    )
    guest = GuestContactSerializer(required=False)
    reason = serializers.CharField(
        required=False,
        allow_blank=True,
        default="",
        help_text="Optional reason for visit.",
    )


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class AppointmentResponseSerializer(serializers.ModelSerializer):
    """Full appointment details returned after every lifecycle call."""

    provider_name = serializers.CharField(source="provider.name", read_only=True)
    location_name = serializers.CharField(source="location.name", read_only=True)
    subject_name = serializers.CharField(read_only=True)
    service_name = serializers.CharField(source="service.name", read_only=True, default=None)
    slot_end = serializers.DateTimeField(read_only=True)
    status_display = serializers.CharField(source="get_status_display", read_only=True)

    class Meta:
        model = Appointment
        fields = [
            "id",
            "provider",
            "provider_name",
            "location",
            "location_name",
            "guest_affiliation",
            "service",
            "service_name",
            "patient",
            "subject_name",
            "guest_phone",
            "guest_email",
            "slot_date",
            "slot_start",
            "slot_end",
            "duration_minutes",
            "status",
            "status_display",
            "reason",
            "cancellation_reason",
            "cancelled_by",
            "confirmed_at",
            "cancelled_at",
            "completed_at",
            "created_at",
        ]

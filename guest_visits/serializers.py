from rest_framework import serializers

from .models import GuestAffiliation


class ProposeAffiliationSerializer(serializers.Serializer):
    """
    Request serializer for proposing a guest visit.

    `party` is only needed when the caller can act for both sides (for
    example the main doctor of both clinics).
    """

    provider_id = serializers.IntegerField()
    host_location_id = serializers.IntegerField()
    date = serializers.DateField(help_text="Visit date in YYYY-MM-DD format.")
    window_start = serializers.TimeField(help_text="Start of the window in HH:MM format.")
    window_end = serializers.TimeField(help_text="End of the window in HH:MM format.")
    slot_duration_minutes = serializers.IntegerField(required=False, min_value=1)
    note = serializers.CharField(required=False, allow_blank=True, default="")
    party = serializers.ChoiceField(choices=GuestAffiliation.Party.choices, required=False)


class RespondAffiliationSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(
        choices=[GuestAffiliation.Status.CONFIRMED, GuestAffiliation.Status.CANCELLED],
    )
    note = serializers.CharField(required=False, allow_blank=True, default="")
    party = serializers.ChoiceField(choices=GuestAffiliation.Party.choices, required=False)


class GuestAffiliationSerializer(serializers.ModelSerializer):
    provider_name = serializers.CharField(source="provider.name", read_only=True)
    host_location_name = serializers.CharField(source="host_location.name", read_only=True)
    status_display = serializers.CharField(source="get_status_display", read_only=True)

    class Meta:
        model = GuestAffiliation
        fields = [
            "id",
            "provider",
            "provider_name",
            "host_location",
            "host_location_name",
            "date",
            "window_start",
            "window_end",
            "slot_duration_minutes",
            "status",
            "status_display",
            "initiated_by",
            "note",
            "response_note",
            "responded_at",
            "cancelled_at",
            "created_at",
        ]

from rest_framework import serializers

from .models import Break, Closure, Provider, Service, WorkingDay


class SlotSerializer(serializers.Serializer):
    """
    Serializer for computed time slots.
    These are not database records — they are generated on-the-fly
    from the provider's calendar, guest visits and existing appointments.
    """

    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    location_id = serializers.IntegerField()
    guest_affiliation_id = serializers.IntegerField(allow_null=True)
    location_name = serializers.SerializerMethodField()

    def get_location_name(self, slot):
        names = self.context.get("location_names", {})
        return names.get(slot.location_id, "")


class WorkingDaySerializer(serializers.ModelSerializer):
    day_name = serializers.CharField(source="get_weekday_display", read_only=True)

    class Meta:
        model = WorkingDay
        fields = ["id", "weekday", "day_name", "is_open", "open_time", "close_time"]


class BreakSerializer(serializers.ModelSerializer):
    class Meta:
        model = Break
        fields = ["id", "start_time", "end_time", "label"]


class ClosureSerializer(serializers.ModelSerializer):
    class Meta:
        model = Closure
        fields = ["id", "start_date", "end_date", "reason"]


class ServiceSerializer(serializers.ModelSerializer):
    effective_price = serializers.DecimalField(max_digits=8, decimal_places=2, read_only=True)

    class Meta:
        model = Service
        fields = [
            "id",
            "name",
            "duration_minutes",
            "price",
            "discount_price",
            "effective_price",
            "description",
            "is_active",
        ]


class ProviderScheduleSerializer(serializers.ModelSerializer):
    """Everything that shapes a provider's availability, in one payload."""

    primary_location_name = serializers.CharField(source="primary_location.name", read_only=True)
    working_days = WorkingDaySerializer(many=True, read_only=True)
    breaks = BreakSerializer(many=True, read_only=True)
    closures = ClosureSerializer(many=True, read_only=True)
    services = serializers.SerializerMethodField()

    class Meta:
        model = Provider
        fields = [
            "id",
            "name",
            "kind",
            "primary_location",
            "primary_location_name",
            "slot_duration_minutes",
            "auto_confirm",
            "working_days",
            "breaks",
            "closures",
            "services",
        ]

    def get_services(self, obj):
        return ServiceSerializer(obj.services.filter(is_active=True), many=True).data


# --- Write payloads ---


class DayRuleInputSerializer(serializers.Serializer):
    weekday = serializers.IntegerField(min_value=0, max_value=6)
    is_open = serializers.BooleanField()
    open_time = serializers.TimeField(required=False, allow_null=True)
    close_time = serializers.TimeField(required=False, allow_null=True)


class WorkingHoursInputSerializer(serializers.Serializer):
    days = DayRuleInputSerializer(many=True)

    def validate_days(self, value):
        weekdays = [day["weekday"] for day in value]
        if len(weekdays) != len(set(weekdays)):
            raise serializers.ValidationError("Each weekday may appear only once.")
        return value


class BreakInputSerializer(serializers.Serializer):
    start_time = serializers.TimeField()
    end_time = serializers.TimeField()
    label = serializers.CharField(required=False, allow_blank=True, default="")


class ClosureInputSerializer(serializers.Serializer):
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class ProviderSettingsInputSerializer(serializers.Serializer):
    slot_duration_minutes = serializers.IntegerField(required=False, min_value=1)
    auto_confirm = serializers.BooleanField(required=False)

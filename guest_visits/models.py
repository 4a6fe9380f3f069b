from datetime import datetime

from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from appointments.exceptions import InvalidIntervalError
from clinics.models import Clinic
from providers.calendar import validate_time_range
from providers.models import Provider, default_slot_duration, validate_slot_minutes


class GuestAffiliation(models.Model):
    """
    A one-day guest visit: the provider becomes bookable at a host clinic
    other than their primary one, inside a single time window.

    Created by either party (host clinic or provider) and finalized only by
    the other party's response. A Confirmed visit is layered on top of the
    provider's weekly calendar; it does not need that day to be open.
    """

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        CONFIRMED = "CONFIRMED", "Confirmed"
        CANCELLED = "CANCELLED", "Cancelled"

    class Party(models.TextChoices):
        HOST = "HOST", "Host location"
        PROVIDER = "PROVIDER", "Provider"

    provider = models.ForeignKey(Provider, on_delete=models.CASCADE, related_name="guest_affiliations")
    host_location = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name="guest_affiliations")
    date = models.DateField()
    window_start = models.TimeField()
    window_end = models.TimeField()
    slot_duration_minutes = models.PositiveIntegerField(
        default=default_slot_duration,
        validators=[validate_slot_minutes],
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    initiated_by = models.CharField(max_length=20, choices=Party.choices)
    note = models.TextField(blank=True, help_text="Message from the party that proposed the visit.")
    response_note = models.TextField(blank=True, help_text="Message attached to the latest response.")
    responded_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Guest Visit"
        verbose_name_plural = "Guest Visits"
        ordering = ["date", "window_start"]
        indexes = [
            models.Index(fields=["provider", "date", "status"], name="guest_provider_day_status"),
        ]

    def __str__(self):
        return (
            f"{self.provider.name} @ {self.host_location.name} on {self.date} "
            f"({self.window_start:%H:%M}-{self.window_end:%H:%M}) [{self.status}]"
        )

    def clean(self):
        super().clean()
        try:
            validate_time_range(self.window_start, self.window_end, label="Guest visit window")
        except InvalidIntervalError as e:
            raise ValidationError({"window_end": e.message})
        if self.provider_id and self.host_location_id:
            if self.host_location_id == self.provider.primary_location_id:
                raise ValidationError({"host_location": "A guest visit must be at a location other than the primary one."})

    def window_bounds(self, tz=None):
        """Aware start/end datetimes of the window in `tz` (current timezone by default)."""
        tz = tz or timezone.get_current_timezone()
        return (
            datetime.combine(self.date, self.window_start, tzinfo=tz),
            datetime.combine(self.date, self.window_end, tzinfo=tz),
        )

    @property
    def is_confirmed(self):
        return self.status == self.Status.CONFIRMED

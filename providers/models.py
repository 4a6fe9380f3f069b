from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from appointments.exceptions import InvalidIntervalError
from clinics.models import Clinic

from .calendar import validate_date_range, validate_time_range


def default_slot_duration():
    return getattr(settings, "BOOKING_DEFAULT_SLOT_MINUTES", 30)


def validate_slot_minutes(value):
    low = getattr(settings, "BOOKING_MIN_SLOT_MINUTES", 5)
    high = getattr(settings, "BOOKING_MAX_SLOT_MINUTES", 480)
    if value is None or not low <= value <= high:
        raise ValidationError(f"Slot duration must be between {low} and {high} minutes.")


class Provider(models.Model):
    """
    A doctor or clinic that owns a schedule and receives bookings.

    Doctors are owned by their user account. Clinic providers (and doctors
    whose primary location is a clinic) can also be managed by that
    clinic's main doctor and active staff.
    """

    class Kind(models.TextChoices):
        DOCTOR = "DOCTOR", "Doctor"
        CLINIC = "CLINIC", "Clinic"

    kind = models.CharField(max_length=10, choices=Kind.choices, default=Kind.DOCTOR)
    name = models.CharField(max_length=255)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="providers",
        help_text="Account that owns this provider (the doctor).",
    )
    primary_location = models.ForeignKey(
        Clinic,
        on_delete=models.PROTECT,
        related_name="primary_providers",
    )
    slot_duration_minutes = models.PositiveIntegerField(
        default=default_slot_duration,
        validators=[validate_slot_minutes],
        help_text="Default slot length when a booking is not tied to a service.",
    )
    auto_confirm = models.BooleanField(
        default=False,
        help_text="New bookings skip the Requested state.",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.get_kind_display()})"

    def save(self, *args, **kwargs):
        creating = self._state.adding
        super().save(*args, **kwargs)
        if creating:
            self.ensure_week()

    def ensure_week(self):
        """Make sure all seven weekday rows exist; missing days start closed."""
        existing = set(self.working_days.values_list("weekday", flat=True))
        WorkingDay.objects.bulk_create(
            [WorkingDay(provider=self, weekday=day, is_open=False) for day in range(7) if day not in existing]
        )


class WorkingDay(models.Model):
    """
    Recurring weekly hours for one weekday.

    weekday uses Python's weekday() convention:
        0 = Monday, 1 = Tuesday, ..., 6 = Sunday
    """

    DAY_CHOICES = [
        (0, "Monday"),
        (1, "Tuesday"),
        (2, "Wednesday"),
        (3, "Thursday"),
        (4, "Friday"),
        (5, "Saturday"),
        (6, "Sunday"),
    ]

    provider = models.ForeignKey(Provider, on_delete=models.CASCADE, related_name="working_days")
    weekday = models.IntegerField(choices=DAY_CHOICES)
    is_open = models.BooleanField(default=False)
    open_time = models.TimeField(null=True, blank=True)
    close_time = models.TimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Working Day"
        verbose_name_plural = "Working Days"
        ordering = ["provider", "weekday"]
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "weekday"],
                name="unique_working_day_per_provider",
            )
        ]

    def __str__(self):
        day = self.get_weekday_display()
        if not self.is_open:
            return f"{self.provider.name} - {day} (closed)"
        return f"{self.provider.name} - {day} ({self.open_time:%H:%M}-{self.close_time:%H:%M})"

    def clean(self):
        super().clean()
        if self.is_open:
            try:
                validate_time_range(self.open_time, self.close_time, label="Working hours")
            except InvalidIntervalError as e:
                raise ValidationError({"close_time": e.message})

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class Break(models.Model):
    """Daily closed interval (e.g. lunch) applied to every open day."""

    provider = models.ForeignKey(Provider, on_delete=models.CASCADE, related_name="breaks")
    start_time = models.TimeField()
    end_time = models.TimeField()
    label = models.CharField(max_length=100, blank=True)

    class Meta:
        ordering = ["provider", "start_time"]

    def __str__(self):
        return f"{self.provider.name} break {self.start_time:%H:%M}-{self.end_time:%H:%M}"

    def clean(self):
        super().clean()
        try:
            validate_time_range(self.start_time, self.end_time, label="Break")
        except InvalidIntervalError as e:
            raise ValidationError({"end_time": e.message})

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class Closure(models.Model):
    """A closed date range (vacation, holiday), inclusive on both ends."""

    provider = models.ForeignKey(Provider, on_delete=models.CASCADE, related_name="closures")
    start_date = models.DateField()
    end_date = models.DateField()
    reason = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["provider", "start_date"]

    def __str__(self):
        return f"{self.provider.name} closed {self.start_date} → {self.end_date}"

    def clean(self):
        super().clean()
        try:
            validate_date_range(self.start_date, self.end_date)
        except InvalidIntervalError as e:
            raise ValidationError({"end_date": e.message})

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class Service(models.Model):
    """A bookable service; its duration sizes the slot when a booking names it."""

    provider = models.ForeignKey(Provider, on_delete=models.CASCADE, related_name="services")
    name = models.CharField(max_length=100)
    duration_minutes = models.PositiveIntegerField(validators=[validate_slot_minutes])
    price = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    discount_price = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "name"],
                name="unique_service_per_provider",
            )
        ]

    def __str__(self):
        return f"{self.name} ({self.duration_minutes}min) - {self.provider.name}"

    def clean(self):
        super().clean()
        if self.price is not None and self.discount_price is not None:
            if self.discount_price > self.price:
                raise ValidationError({"discount_price": "Discount price cannot exceed the price."})

    @property
    def effective_price(self):
        return self.discount_price if self.discount_price is not None else self.price

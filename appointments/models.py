from datetime import timedelta

from django.conf import settings
from django.db import models

from clinics.models import Clinic
from providers.models import Provider, Service


class Appointment(models.Model):
    """
    Core appointment booking record.

    The subject is either a registered patient or a guest identified by
    contact details. Records are never deleted by the engine: cancelled
    and completed appointments stay for history.
    """

    class Status(models.TextChoices):
        REQUESTED = "REQUESTED", "Requested"
        CONFIRMED = "CONFIRMED", "Confirmed"
        CANCELLED = "CANCELLED", "Cancelled"
        COMPLETED = "COMPLETED", "Completed"

    class Party(models.TextChoices):
        SUBJECT = "SUBJECT", "Subject"
        PROVIDER = "PROVIDER", "Provider"
        HOST = "HOST", "Host location"
        SYSTEM = "SYSTEM", "System"

    # Statuses that occupy time on the provider's calendar
    ACTIVE_STATUSES = (Status.REQUESTED, Status.CONFIRMED)
    TERMINAL_STATUSES = (Status.CANCELLED, Status.COMPLETED)

    provider = models.ForeignKey(Provider, on_delete=models.PROTECT, related_name="appointments")
    location = models.ForeignKey(Clinic, on_delete=models.PROTECT, related_name="appointments")
    guest_affiliation = models.ForeignKey(
        "guest_visits.GuestAffiliation",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="appointments",
        help_text="Set when the slot was offered by a guest visit.",
    )
    service = models.ForeignKey(
        Service, on_delete=models.SET_NULL, null=True, blank=True, related_name="appointments",
    )
    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="appointments_as_patient",
    )
    guest_first_name = models.CharField(max_length=100, blank=True)
    guest_last_name = models.CharField(max_length=100, blank=True)
    guest_phone = models.CharField(max_length=20, blank=True)
    guest_email = models.EmailField(blank=True)

    slot_start = models.DateTimeField()
    slot_date = models.DateField(db_index=True)
    duration_minutes = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.REQUESTED)
    reason = models.TextField(blank=True, help_text="Reason for visit")

    cancellation_reason = models.TextField(blank=True)
    cancelled_by = models.CharField(max_length=20, choices=Party.choices, blank=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="appointments_created",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["slot_start"]
        verbose_name = "Appointment"
        verbose_name_plural = "Appointments"
        indexes = [
            models.Index(fields=["provider", "slot_date", "status"], name="appt_provider_day_status"),
        ]

    def __str__(self):
        return f"{self.subject_name} - {self.provider.name} at {self.slot_start:%Y-%m-%d %H:%M}"

    @property
    def slot_end(self):
        return self.slot_start + timedelta(minutes=self.duration_minutes)

    @property
    def is_guest_subject(self):
        return self.patient_id is None

    @property
    def subject_name(self):
        if self.patient_id:
            return self.patient.name
        return f"{self.guest_first_name} {self.guest_last_name}".strip()

    @property
    def is_active(self):
        return self.status in self.ACTIVE_STATUSES


class ScheduleLock(models.Model):
    """
    One row per (provider, date) that has ever been written to.

    Writers lock it with select_for_update() so that re-deriving slots and
    inserting the appointment happen as one step.
    """

    provider = models.ForeignKey(Provider, on_delete=models.CASCADE, related_name="schedule_locks")
    date = models.DateField()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["provider", "date"], name="unique_schedule_lock_per_provider_day"),
        ]

    def __str__(self):
        return f"lock {self.provider_id}@{self.date}"

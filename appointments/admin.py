from django.contrib import admin
from .models import Appointment, ScheduleLock


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "subject_name",
        "provider",
        "location",
        "service",
        "slot_start",
        "duration_minutes",
        "status",
        "created_at",
    ]
    list_filter = ["status", "location", "slot_date"]
    search_fields = [
        "patient__name",
        "patient__phone",
        "guest_first_name",
        "guest_last_name",
        "guest_phone",
        "provider__name",
        "location__name",
    ]
    raw_id_fields = ["patient", "provider", "location", "guest_affiliation", "service", "created_by"]
    # Status moves only through the booking services.
    readonly_fields = [
        "status",
        "confirmed_at",
        "cancelled_at",
        "cancelled_by",
        "completed_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "slot_date"


@admin.register(ScheduleLock)
class ScheduleLockAdmin(admin.ModelAdmin):
    list_display = ["provider", "date"]
    list_filter = ["provider"]
    date_hierarchy = "date"

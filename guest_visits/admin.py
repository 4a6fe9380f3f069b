from django.contrib import admin
from .models import GuestAffiliation


@admin.register(GuestAffiliation)
class GuestAffiliationAdmin(admin.ModelAdmin):
    list_display = [
        "provider",
        "host_location",
        "date",
        "window_start",
        "window_end",
        "slot_duration_minutes",
        "status",
        "initiated_by",
    ]
    list_filter = ["status", "initiated_by", "host_location", "date"]
    search_fields = ["provider__name", "host_location__name", "note"]
    raw_id_fields = ["provider", "host_location"]
    # Responses go through the guest visit services so cancellations cascade.
    readonly_fields = ["status", "responded_at", "cancelled_at", "created_at", "updated_at"]
    date_hierarchy = "date"
    ordering = ["-date", "window_start"]

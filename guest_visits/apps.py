from django.apps import AppConfig


class GuestVisitsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "guest_visits"
    verbose_name = "Guest Visits"

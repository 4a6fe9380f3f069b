from django.urls import path
from . import api_views

app_name = "appointments"

urlpatterns = [
    path(
        "api/reserve/",
        api_views.ReserveAPIView.as_view(),
        name="api_reserve",
    ),
    path(
        "api/<int:appointment_id>/cancel/",
        api_views.CancelAppointmentAPIView.as_view(),
        name="api_cancel",
    ),
    path(
        "api/<int:appointment_id>/confirm/",
        api_views.ConfirmAppointmentAPIView.as_view(),
        name="api_confirm",
    ),
    path(
        "api/sweep-completions/",
        api_views.SweepCompletionsAPIView.as_view(),
        name="api_sweep_completions",
    ),
]

from django.urls import path
from . import api_views

app_name = "providers"

urlpatterns = [
    # --- Public ---
    path(
        "api/<int:provider_id>/availability/",
        api_views.ProviderAvailabilityAPIView.as_view(),
        name="api_provider_availability",
    ),
    path(
        "api/<int:provider_id>/schedule/",
        api_views.ProviderScheduleAPIView.as_view(),
        name="api_provider_schedule",
    ),

    # --- Schedule management ---
    path(
        "api/<int:provider_id>/working-hours/",
        api_views.WorkingHoursAPIView.as_view(),
        name="api_working_hours",
    ),
    path(
        "api/<int:provider_id>/breaks/",
        api_views.BreakListAPIView.as_view(),
        name="api_breaks",
    ),
    path(
        "api/<int:provider_id>/breaks/<int:break_id>/",
        api_views.BreakDetailAPIView.as_view(),
        name="api_break_detail",
    ),
    path(
        "api/<int:provider_id>/closures/",
        api_views.ClosureListAPIView.as_view(),
        name="api_closures",
    ),
    path(
        "api/<int:provider_id>/closures/<int:closure_id>/",
        api_views.ClosureDetailAPIView.as_view(),
        name="api_closure_detail",
    ),
    path(
        "api/<int:provider_id>/settings/",
        api_views.ProviderSettingsAPIView.as_view(),
        name="api_provider_settings",
    ),
]

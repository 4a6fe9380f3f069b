from django.urls import path
from . import api_views

app_name = "guest_visits"

urlpatterns = [
    path(
        "api/propose/",
        api_views.ProposeAffiliationAPIView.as_view(),
        name="api_propose",
    ),
    path(
        "api/<int:affiliation_id>/respond/",
        api_views.RespondAffiliationAPIView.as_view(),
        name="api_respond",
    ),
    path(
        "api/provider/<int:provider_id>/",
        api_views.ProviderAffiliationsAPIView.as_view(),
        name="api_provider_affiliations",
    ),
    path(
        "api/location/<int:location_id>/",
        api_views.LocationScheduleAPIView.as_view(),
        name="api_location_schedule",
    ),
]

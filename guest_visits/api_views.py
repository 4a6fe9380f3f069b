from datetime import datetime

from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from appointments.exceptions import BookingError, NotFoundError
from clinics.models import Clinic
from providers.permissions import can_act_for_location, can_manage_provider
from providers.services import get_provider

from . import services
from .models import GuestAffiliation
from .serializers import (
    GuestAffiliationSerializer,
    ProposeAffiliationSerializer,
    RespondAffiliationSerializer,
)


def error_response(e: BookingError):
    return Response({"detail": e.message, "code": e.code}, status=e.status_code)


def allowed_parties(user, provider, host_location):
    parties = []
    if can_manage_provider(user, provider):
        parties.append(GuestAffiliation.Party.PROVIDER)
    if can_act_for_location(user, host_location):
        parties.append(GuestAffiliation.Party.HOST)
    return parties


def resolve_party(requested, parties):
    """
    Pick the side the caller acts for.

    Returns (party, error_response); the caller must name a side only when
    it is allowed to act for both.
    """
    if not parties:
        return None, Response(
            {"detail": "You are not a party to this guest visit."},
            status=status.HTTP_403_FORBIDDEN,
        )
    if requested:
        if requested not in parties:
            return None, Response(
                {"detail": f"You cannot act as {requested.lower()} for this guest visit."},
                status=status.HTTP_403_FORBIDDEN,
            )
        return requested, None
    if len(parties) > 1:
        return None, Response(
            {"party": "You can act for both sides; specify HOST or PROVIDER."},
            status=status.HTTP_400_BAD_REQUEST,
        )
    return parties[0], None


class ProposeAffiliationAPIView(APIView):
    """
    POST /guest-visits/api/propose/

    Request body:
        {
            "provider_id": 5,
            "host_location_id": 2,
            "date": "2026-02-24",
            "window_start": "10:00",
            "window_end": "12:00",
            "slot_duration_minutes": 20,   (optional, defaults to the provider's)
            "note": "Monthly cardiology day" (optional)
        }

    Either the host clinic or the provider may propose; the visit stays
    PENDING until the other side responds.
    """

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = ProposeAffiliationSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        try:
            provider = get_provider(data["provider_id"])
            host = Clinic.objects.filter(id=data["host_location_id"], is_active=True).first()
            if host is None:
                raise NotFoundError("Host location not found or inactive.")

            party, denied = resolve_party(data.get("party"), allowed_parties(request.user, provider, host))
            if denied:
                return denied

            affiliation = services.propose_affiliation(
                provider_id=provider.id,
                host_location_id=host.id,
                visit_date=data["date"],
                window_start=data["window_start"],
                window_end=data["window_end"],
                slot_duration_minutes=data.get("slot_duration_minutes"),
                initiated_by=party,
                note=data.get("note", ""),
            )
        except BookingError as e:
            return error_response(e)

        return Response(GuestAffiliationSerializer(affiliation).data, status=status.HTTP_201_CREATED)


class RespondAffiliationAPIView(APIView):
    """
    POST /guest-visits/api/<affiliation_id>/respond/

    Request body:
        {"decision": "CONFIRMED" | "CANCELLED", "note": "..."}

    Only the invited side can confirm. Either side can cancel; cancelling
    a confirmed visit cancels every appointment booked inside it, and the
    response lists them.
    """

    permission_classes = [IsAuthenticated]

    def post(self, request, affiliation_id):
        serializer = RespondAffiliationSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        try:
            affiliation = services.get_affiliation(affiliation_id)
            party, denied = resolve_party(
                data.get("party"),
                allowed_parties(request.user, affiliation.provider, affiliation.host_location),
            )
            if denied:
                return denied

            result = services.respond_to_affiliation(
                affiliation_id,
                decision=data["decision"],
                responded_by=party,
                note=data.get("note", ""),
            )
        except BookingError as e:
            return error_response(e)

        payload = GuestAffiliationSerializer(result.affiliation).data
        payload["cancelled_appointment_ids"] = [a.id for a in result.cancelled_appointments]
        return Response(payload, status=status.HTTP_200_OK)


class ProviderAffiliationsAPIView(APIView):
    """
    GET /guest-visits/api/provider/<provider_id>/?upcoming=1

    All guest visits of a provider, pending ones included. Visible to
    the provider's side only.
    """

    permission_classes = [IsAuthenticated]

    def get(self, request, provider_id):
        try:
            provider = get_provider(provider_id)
        except BookingError as e:
            return error_response(e)

        if not can_manage_provider(request.user, provider):
            return Response(
                {"detail": "You are not allowed to view this provider's guest visits."},
                status=status.HTTP_403_FORBIDDEN,
            )

        upcoming = request.query_params.get("upcoming", "").lower() in ("1", "true", "yes")
        affiliations = services.list_provider_affiliations(provider.id, upcoming=upcoming)
        return Response(
            {"results": GuestAffiliationSerializer(affiliations, many=True).data},
            status=status.HTTP_200_OK,
        )


class LocationScheduleAPIView(APIView):
    """
    GET /guest-visits/api/location/<location_id>/?from=YYYY-MM-DD

    Confirmed guest visits hosted by a clinic, from today by default.
    Public: patients use it to find visiting providers.
    """

    permission_classes = [AllowAny]

    def get(self, request, location_id):
        from_str = request.query_params.get("from")
        from_date = None
        if from_str:
            try:
                from_date = datetime.strptime(from_str, "%Y-%m-%d").date()
            except ValueError:
                return Response(
                    {"from": "Invalid date format. Use YYYY-MM-DD."},
                    status=status.HTTP_400_BAD_REQUEST,
                )

        if not Clinic.objects.filter(id=location_id, is_active=True).exists():
            return error_response(NotFoundError("Location not found or inactive."))

        affiliations = services.list_location_schedule(location_id, from_date=from_date)
        return Response(
            {"results": GuestAffiliationSerializer(affiliations, many=True).data},
            status=status.HTTP_200_OK,
        )

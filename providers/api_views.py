from datetime import datetime

from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from appointments.exceptions import BookingError
from clinics.models import Clinic

from . import services
from .permissions import can_manage_provider
from .serializers import (
    BreakInputSerializer,
    BreakSerializer,
    ClosureInputSerializer,
    ClosureSerializer,
    ProviderScheduleSerializer,
    ProviderSettingsInputSerializer,
    SlotSerializer,
    WorkingDaySerializer,
    WorkingHoursInputSerializer,
)


def error_response(e: BookingError):
    return Response({"detail": e.message, "code": e.code}, status=e.status_code)


class ProviderAvailabilityAPIView(APIView):
    """
    GET /providers/api/<provider_id>/availability/?date=YYYY-MM-DD[&duration_minutes=N][&service_id=S]

    Returns computed bookable time slots for a specific date, at the
    primary location and at any confirmed guest visit location. Public:
    the booking flow shows it before login. The list is a snapshot; the
    reservation endpoint re-checks it.
    """

    permission_classes = [AllowAny]

    def get(self, request, provider_id):
        date_str = request.query_params.get("date")
        duration_str = request.query_params.get("duration_minutes")
        service_str = request.query_params.get("service_id")

        if not date_str:
            return Response(
                {"date": "This query parameter is required (format: YYYY-MM-DD)."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            target_date = datetime.strptime(date_str, "%Y-%m-%d").date()
        except ValueError:
            return Response(
                {"date": "Invalid date format. Use YYYY-MM-DD."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        duration_minutes = None
        if duration_str:
            try:
                duration_minutes = int(duration_str)
                services.check_slot_minutes(duration_minutes)
            except ValueError:
                return Response(
                    {"duration_minutes": "Must be a whole number of minutes."},
                    status=status.HTTP_400_BAD_REQUEST,
                )
            except BookingError as e:
                return error_response(e)

        service_id = None
        if service_str:
            try:
                service_id = int(service_str)
            except ValueError:
                return Response(
                    {"service_id": "Must be a whole number."},
                    status=status.HTTP_400_BAD_REQUEST,
                )

        try:
            provider = services.get_provider(provider_id)
            duration, forced = services.resolve_duration(provider, duration_minutes, service_id)
        except BookingError as e:
            return error_response(e)

        slots = services.derive_slots(provider, target_date, duration, forced=forced)

        payload = {
            "date": date_str,
            "day_of_week": target_date.strftime("%A"),
            "provider_id": provider.id,
            "duration_minutes": duration,
        }

        if not slots:
            closure = services.load_exceptions(provider).closure_for(target_date)
            payload.update({"detail": "No availability on this date.", "results": []})
            if closure is not None:
                payload["closure_reason"] = closure.reason
            return Response(payload, status=status.HTTP_200_OK)

        location_names = dict(
            Clinic.objects.filter(id__in={s.location_id for s in slots}).values_list("id", "name")
        )
        serializer = SlotSerializer(slots, many=True, context={"location_names": location_names})
        payload["results"] = serializer.data
        return Response(payload, status=status.HTTP_200_OK)


class ProviderManageMixin:
    """Resolves the provider and checks the caller may edit its schedule."""

    permission_classes = [IsAuthenticated]

    def get_managed_provider(self, request, provider_id):
        provider = services.get_provider(provider_id)
        if not can_manage_provider(request.user, provider):
            return provider, Response(
                {"detail": "You are not allowed to manage this provider's schedule."},
                status=status.HTTP_403_FORBIDDEN,
            )
        return provider, None


class ProviderScheduleAPIView(APIView):
    """
    GET /providers/api/<provider_id>/schedule/

    Weekly hours, breaks, closures and services of a provider.
    """

    permission_classes = [AllowAny]

    def get(self, request, provider_id):
        try:
            provider = services.get_provider(provider_id)
        except BookingError as e:
            return error_response(e)
        provider.ensure_week()
        return Response(ProviderScheduleSerializer(provider).data, status=status.HTTP_200_OK)


class WorkingHoursAPIView(ProviderManageMixin, APIView):
    """
    PUT /providers/api/<provider_id>/working-hours/

    Request body:
        {"days": [{"weekday": 0, "is_open": true, "open_time": "08:00", "close_time": "16:00"}, ...]}
    """

    def put(self, request, provider_id):
        try:
            provider, denied = self.get_managed_provider(request, provider_id)
        except BookingError as e:
            return error_response(e)
        if denied:
            return denied

        serializer = WorkingHoursInputSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        rules = {day["weekday"]: day for day in serializer.validated_data["days"]}
        try:
            days = services.set_working_hours(provider, rules)
        except BookingError as e:
            return error_response(e)

        return Response({"results": WorkingDaySerializer(days, many=True).data}, status=status.HTTP_200_OK)


class BreakListAPIView(ProviderManageMixin, APIView):
    """POST /providers/api/<provider_id>/breaks/"""

    def post(self, request, provider_id):
        try:
            provider, denied = self.get_managed_provider(request, provider_id)
        except BookingError as e:
            return error_response(e)
        if denied:
            return denied

        serializer = BreakInputSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            item = services.add_break(provider, **serializer.validated_data)
        except BookingError as e:
            return error_response(e)
        return Response(BreakSerializer(item).data, status=status.HTTP_201_CREATED)


class BreakDetailAPIView(ProviderManageMixin, APIView):
    """DELETE /providers/api/<provider_id>/breaks/<break_id>/"""

    def delete(self, request, provider_id, break_id):
        try:
            provider, denied = self.get_managed_provider(request, provider_id)
            if denied:
                return denied
            services.remove_break(provider, break_id)
        except BookingError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ClosureListAPIView(ProviderManageMixin, APIView):
    """POST /providers/api/<provider_id>/closures/"""

    def post(self, request, provider_id):
        try:
            provider, denied = self.get_managed_provider(request, provider_id)
        except BookingError as e:
            return error_response(e)
        if denied:
            return denied

        serializer = ClosureInputSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            closure = services.add_closure(provider, **serializer.validated_data)
        except BookingError as e:
            return error_response(e)
        return Response(ClosureSerializer(closure).data, status=status.HTTP_201_CREATED)


class ClosureDetailAPIView(ProviderManageMixin, APIView):
    """DELETE /providers/api/<provider_id>/closures/<closure_id>/"""

    def delete(self, request, provider_id, closure_id):
        try:
            provider, denied = self.get_managed_provider(request, provider_id)
            if denied:
                return denied
            services.remove_closure(provider, closure_id)
        except BookingError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ProviderSettingsAPIView(ProviderManageMixin, APIView):
    """
    PATCH /providers/api/<provider_id>/settings/

    Request body (all optional):
        {"slot_duration_minutes": 20, "auto_confirm": true}
    """

    def patch(self, request, provider_id):
        try:
            provider, denied = self.get_managed_provider(request, provider_id)
        except BookingError as e:
            return error_response(e)
        if denied:
            return denied

        serializer = ProviderSettingsInputSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            provider = services.update_provider_settings(provider, **serializer.validated_data)
        except BookingError as e:
            return error_response(e)
        return Response(
            {
                "id": provider.id,
                "slot_duration_minutes": provider.slot_duration_minutes,
                "auto_confirm": provider.auto_confirm,
            },
            status=status.HTTP_200_OK,
        )

from django.contrib.auth import get_user_model
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from clinics.models import Clinic
from providers.permissions import can_act_for_location, can_manage_provider
from providers.services import get_provider

from .exceptions import BookingError
from .models import Appointment
from .serializers import AppointmentResponseSerializer, CancelSerializer, ReserveSerializer
from .services import cancel_appointment, confirm_appointment, get_appointment, reserve, sweep_completions

User = get_user_model()


def error_response(e: BookingError):
    return Response({"detail": e.message, "code": e.code}, status=e.status_code)


def _can_book_for_others(user, provider, location_id):
    if can_manage_provider(user, provider):
        return True
    location = Clinic.objects.filter(id=location_id).first()
    return location is not None and can_act_for_location(user, location)


class ReserveAPIView(APIView):
    """
    POST /appointments/api/reserve/

    Reserve one slot from the provider's availability.

    Request body:
        {
            "provider_id": 5,
            "location_id": 1,
            "slot_date": "2026-02-20",
            "slot_start": "2026-02-20T10:00:00+02:00",
            "duration_minutes": 30,          (optional)
            "service_id": 3,                 (optional)
            "reason": "Annual checkup",      (optional)
            "guest": {                       (anonymous callers and staff)
                "first_name": "Ana", "last_name": "Horvat",
                "phone": "0911234567", "email": ""
            },
            "patient_id": 12                 (staff booking for a registered patient)
        }

    Logged-in patients book for themselves. Anonymous callers must send
    guest contact details. Provider or clinic staff may book for a guest
    or a registered patient.

    Success Response (201):
        Full appointment details via AppointmentResponseSerializer.

    Error Responses:
        400: Validation errors, past slot, location mismatch.
        403: Booking on someone else's behalf without staff rights.
        404: Unknown provider.
        409: Slot no longer available (race condition).
    """

    permission_classes = [AllowAny]

    def post(self, request):
        serializer = ReserveSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        user = request.user if request.user.is_authenticated else None
        patient = None
        guest = data.get("guest")

        try:
            if data.get("patient_id") or (user is not None and guest):
                provider = get_provider(data["provider_id"])
                if user is None or not _can_book_for_others(user, provider, data["location_id"]):
                    return Response(
                        {"detail": "Only provider or clinic staff can book on someone else's behalf."},
                        status=status.HTTP_403_FORBIDDEN,
                    )
                if data.get("patient_id"):
                    patient = User.objects.filter(id=data["patient_id"], role=User.Role.PATIENT).first()
                    if patient is None:
                        return Response(
                            {"patient_id": "Unknown patient."},
                            status=status.HTTP_400_BAD_REQUEST,
                        )
                    guest = None
            elif user is not None and user.is_patient:
                patient = user

            appointment = reserve(
                provider_id=data["provider_id"],
                location_id=data["location_id"],
                slot_date=data["slot_date"],
                slot_start=data["slot_start"],
                duration_minutes=data.get("duration_minutes"),
                service_id=data.get("service_id"),
                patient=patient,
                guest=guest,
                reason=data.get("reason", ""),
                created_by=user,
            )
        except BookingError as e:
            return error_response(e)

        response_serializer = AppointmentResponseSerializer(appointment)
        return Response(response_serializer.data, status=status.HTTP_201_CREATED)


class CancelAppointmentAPIView(APIView):
    """
    POST /appointments/api/<appointment_id>/cancel/

    Request body:
        {"reason": "Cannot make it"}  (optional)

    The subject, the provider's side, or the host clinic of a guest visit
    may cancel. Allowed at any time before the appointment is terminal.
    """

    permission_classes = [IsAuthenticated]

    def _cancelling_party(self, user, appointment):
        if appointment.patient_id == user.id:
            return Appointment.Party.SUBJECT
        if can_manage_provider(user, appointment.provider):
            return Appointment.Party.PROVIDER
        if (
            appointment.location_id != appointment.provider.primary_location_id
            and can_act_for_location(user, appointment.location)
        ):
            return Appointment.Party.HOST
        return None

    def post(self, request, appointment_id):
        serializer = CancelSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            appointment = get_appointment(appointment_id)
            party = self._cancelling_party(request.user, appointment)
            if party is None:
                return Response(
                    {"detail": "You are not allowed to cancel this appointment."},
                    status=status.HTTP_403_FORBIDDEN,
                )
            appointment = cancel_appointment(
                appointment_id,
                reason=serializer.validated_data.get("reason", ""),
                cancelled_by=party,
            )
        except BookingError as e:
            return error_response(e)

        return Response(AppointmentResponseSerializer(appointment).data, status=status.HTTP_200_OK)


class ConfirmAppointmentAPIView(APIView):
    """
    POST /appointments/api/<appointment_id>/confirm/

    Provider-side acceptance of a Requested appointment.
    """

    permission_classes = [IsAuthenticated]

    def post(self, request, appointment_id):
        try:
            appointment = get_appointment(appointment_id)
            if not can_manage_provider(request.user, appointment.provider):
                return Response(
                    {"detail": "Only the provider can confirm this appointment."},
                    status=status.HTTP_403_FORBIDDEN,
                )
            appointment = confirm_appointment(appointment_id)
        except BookingError as e:
            return error_response(e)

        return Response(AppointmentResponseSerializer(appointment).data, status=status.HTTP_200_OK)


class SweepCompletionsAPIView(APIView):
    """
    POST /appointments/api/sweep-completions/

    Request body:
        {"provider_id": 5}  (optional)

    Marks every Confirmed appointment whose slot has ended as Completed.
    Staff only; normally run from the `sweep_completions` command.
    """

    permission_classes = [IsAuthenticated]

    def post(self, request):
        if not request.user.is_staff:
            return Response(
                {"detail": "Only staff can run the completion sweep."},
                status=status.HTTP_403_FORBIDDEN,
            )

        provider_id = request.data.get("provider_id")
        if provider_id is not None:
            try:
                provider_id = int(provider_id)
            except (TypeError, ValueError):
                return Response(
                    {"provider_id": "A valid integer is required."},
                    status=status.HTTP_400_BAD_REQUEST,
                )

        completed = sweep_completions(provider_id=provider_id)
        return Response(
            {"completed": len(completed), "appointment_ids": [a.id for a in completed]},
            status=status.HTTP_200_OK,
        )

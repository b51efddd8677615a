"""
Appointments app ViewSets.

ViewSets
--------
- ``ApplicationAppointmentViewSet`` — nested under an application:
  list / schedule / retrieve plus confirm, complete, cancel,
  reschedule and reminder-sent actions.
- ``AppointmentReminderViewSet``    — the due-reminder queue read by the
  external notifier.
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
)
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from .serializers import (
    AppointmentCancelSerializer,
    AppointmentCompleteSerializer,
    AppointmentRescheduleSerializer,
    AppointmentScheduleSerializer,
    AppointmentSerializer,
    DueRemindersQuerySerializer,
)
from .services import AppointmentService

logger = logging.getLogger(__name__)


class ApplicationAppointmentViewSet(viewsets.ViewSet):
    """
    Appointments of one application.

    Parent lookup kwarg: ``application_pk``.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List appointments",
        responses={200: OpenApiResponse(response=AppointmentSerializer(many=True))},
        tags=["Appointments"],
    )
    def list(self, request: Request, application_pk: int = None) -> Response:
        qs = AppointmentService.list_for_application(application_pk, request.user)
        return Response(AppointmentSerializer(qs, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Schedule an appointment",
        description="The assigned Junior Engineer schedules the review meeting. One live appointment per application.",
        request=AppointmentScheduleSerializer,
        responses={
            201: OpenApiResponse(response=AppointmentSerializer),
            409: OpenApiResponse(description="A live appointment already exists."),
        },
        tags=["Appointments"],
    )
    def create(self, request: Request, application_pk: int = None) -> Response:
        serializer = AppointmentScheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        appointment = AppointmentService.schedule(
            int(application_pk), request.user, serializer.validated_data,
        )
        return Response(AppointmentSerializer(appointment).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        summary="Retrieve an appointment",
        responses={200: OpenApiResponse(response=AppointmentSerializer)},
        tags=["Appointments"],
    )
    def retrieve(self, request: Request, application_pk: int = None, pk: int = None) -> Response:
        appointment = AppointmentService.get_appointment(application_pk, pk, request.user)
        return Response(AppointmentSerializer(appointment).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Confirm an appointment",
        request=None,
        responses={200: OpenApiResponse(response=AppointmentSerializer)},
        tags=["Appointments"],
    )
    @action(detail=True, methods=["post"], url_path="confirm")
    def confirm(self, request: Request, application_pk: int = None, pk: int = None) -> Response:
        appointment = AppointmentService.confirm(application_pk, pk, request.user)
        return Response(AppointmentSerializer(appointment).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Complete an appointment",
        request=AppointmentCompleteSerializer,
        responses={200: OpenApiResponse(response=AppointmentSerializer)},
        tags=["Appointments"],
    )
    @action(detail=True, methods=["post"], url_path="complete")
    def complete(self, request: Request, application_pk: int = None, pk: int = None) -> Response:
        serializer = AppointmentCompleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        appointment = AppointmentService.complete(
            application_pk, pk, request.user, notes=serializer.validated_data["notes"],
        )
        return Response(AppointmentSerializer(appointment).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Cancel an appointment",
        request=AppointmentCancelSerializer,
        responses={200: OpenApiResponse(response=AppointmentSerializer)},
        tags=["Appointments"],
    )
    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request: Request, application_pk: int = None, pk: int = None) -> Response:
        serializer = AppointmentCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        appointment = AppointmentService.cancel(
            application_pk, pk, request.user, reason=serializer.validated_data["reason"],
        )
        return Response(AppointmentSerializer(appointment).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Reschedule an appointment",
        description="Marks the appointment Rescheduled and returns the new Scheduled appointment.",
        request=AppointmentRescheduleSerializer,
        responses={
            201: OpenApiResponse(response=AppointmentSerializer, description="The new appointment."),
            409: OpenApiResponse(description="Appointment is terminal or already rescheduled."),
        },
        tags=["Appointments"],
    )
    @action(detail=True, methods=["post"], url_path="reschedule")
    def reschedule(self, request: Request, application_pk: int = None, pk: int = None) -> Response:
        serializer = AppointmentRescheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        new = AppointmentService.reschedule(
            application_pk,
            pk,
            request.user,
            new_scheduled_at=data["scheduled_at"],
            reason=data["reason"],
            place=data.get("place"),
            room_number=data.get("room_number"),
        )
        return Response(AppointmentSerializer(new).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        summary="Mark reminder sent",
        description="Records that the reminder was delivered. Succeeds once per appointment.",
        request=None,
        responses={
            200: OpenApiResponse(response=AppointmentSerializer),
            409: OpenApiResponse(description="Reminder already marked sent."),
        },
        tags=["Appointments"],
    )
    @action(detail=True, methods=["post"], url_path="reminder-sent")
    def reminder_sent(self, request: Request, application_pk: int = None, pk: int = None) -> Response:
        appointment = AppointmentService.mark_reminder_sent(pk, request.user, application_id=application_pk)
        return Response(AppointmentSerializer(appointment).data, status=status.HTTP_200_OK)


class AppointmentReminderViewSet(viewsets.ViewSet):
    """Cross-application reminder queue."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Due reminders",
        description="Live appointments starting within `hours` that have no reminder yet.",
        parameters=[
            OpenApiParameter(name="hours", type=int, location=OpenApiParameter.QUERY),
        ],
        responses={200: OpenApiResponse(response=AppointmentSerializer(many=True))},
        tags=["Appointments"],
    )
    @action(detail=False, methods=["get"], url_path="due-reminders")
    def due_reminders(self, request: Request) -> Response:
        query = DueRemindersQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        qs = AppointmentService.due_reminders(request.user, query.validated_data.get("hours"))
        return Response(AppointmentSerializer(qs, many=True).data, status=status.HTTP_200_OK)

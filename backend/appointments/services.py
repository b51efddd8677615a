"""
Appointments app Service Layer — the Appointment Scheduler.

Architecture
------------
- ``AppointmentService`` — schedule, confirm, complete, cancel,
  reschedule, reminder bookkeeping and the due-reminder queue.

The scheduler records state only.  Reminder delivery belongs to an
external notifier that reads ``due_reminders`` and calls
``mark_reminder_sent`` once per appointment.

Invariants
----------
- At most one Scheduled/Confirmed appointment per application
  (service check plus a partial unique constraint).
- Completed, Cancelled and Rescheduled are terminal.
- ``rescheduled_to`` links forward once; a rescheduled appointment can
  never be rescheduled again, so the chain has no cycles.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from applications.models import PositionApplication, Stage
from applications.services import ApplicationQueryService, WorkflowService
from core.constants import pmcrms_setting
from core.domain.access import require_permission
from core.domain.exceptions import (
    AppointmentConflictError,
    Conflict,
    DomainError,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    StaleStateError,
)
from core.domain.transactions import atomic_transition, compare_and_swap, lock_for_update
from core.permissions_constants import AppointmentsPerms

from .models import LIVE_STATUSES, Appointment, AppointmentStatus

logger = logging.getLogger(__name__)

_MANAGE_REMINDERS = f"appointments.{AppointmentsPerms.CAN_MANAGE_REMINDERS}"
_CHANGE_APPOINTMENT = f"appointments.{AppointmentsPerms.CHANGE_APPOINTMENT}"


class AppointmentService:

    # ── Queries ─────────────────────────────────────────────────────

    @staticmethod
    def list_for_application(application_id: int, user: Any) -> QuerySet[Appointment]:
        application = ApplicationQueryService.get_application(application_id, user)
        return application.appointments.select_related("scheduled_by", "rescheduled_to")

    @staticmethod
    def get_appointment(application_id: int, appointment_id: int, user: Any) -> Appointment:
        appointments = AppointmentService.list_for_application(application_id, user)
        try:
            return appointments.get(pk=appointment_id)
        except Appointment.DoesNotExist:
            raise NotFound(f"Appointment with id {appointment_id} not found.")

    @staticmethod
    def due_reminders(user: Any, hours: int | None = None) -> QuerySet[Appointment]:
        """
        Live appointments starting within ``hours`` (default
        ``REMINDER_WINDOW_HOURS``) that have no reminder yet.
        """
        require_permission(user, _MANAGE_REMINDERS)
        if hours is None:
            hours = pmcrms_setting("REMINDER_WINDOW_HOURS")
        now = timezone.now()
        return (
            Appointment.objects
            .filter(
                status__in=LIVE_STATUSES,
                reminder_sent=False,
                scheduled_at__gt=now,
                scheduled_at__lte=now + timedelta(hours=hours),
            )
            .select_related("application", "scheduled_by")
            .order_by("scheduled_at")
        )

    # ── Scheduling ──────────────────────────────────────────────────

    @staticmethod
    @transaction.atomic
    def schedule(
        application_id: int,
        officer: Any,
        validated_data: dict[str, Any],
    ) -> Appointment:
        """
        Schedule the JE review meeting.

        Raises
        ------
        StaleStateError
            The application is not in Junior Engineer review.
        UnauthorizedRoleError
            ``officer`` is not the assigned Junior Engineer.
        DomainError
            ``scheduled_at`` is not in the future.
        AppointmentConflictError
            A Scheduled or Confirmed appointment already exists.
        """
        application = lock_for_update(PositionApplication, application_id)
        if application.current_stage != Stage.JE_REVIEW:
            raise StaleStateError(expected=Stage.JE_REVIEW, actual=application.current_stage)
        WorkflowService.authorize_officer(application, Stage.JE_REVIEW, officer)

        AppointmentService._ensure_future(validated_data["scheduled_at"])
        AppointmentService._ensure_no_live_appointment(application)

        appointment = Appointment.objects.create(
            application=application,
            scheduled_by=officer,
            **validated_data,
        )
        logger.info(
            "Appointment %s scheduled for application %s at %s by %s",
            appointment.pk, application.application_number,
            appointment.scheduled_at, officer.username,
        )
        return appointment

    @staticmethod
    def confirm(application_id: int, appointment_id: int, user: Any) -> Appointment:
        """Scheduled → Confirmed.  The applicant or the scheduling officer confirms."""
        appointment = AppointmentService.get_appointment(application_id, appointment_id, user)
        AppointmentService._require_participant(appointment, user, allow_applicant=True)
        appointment = atomic_transition(
            instance=appointment,
            target_status=AppointmentStatus.CONFIRMED,
            allowed_sources={AppointmentStatus.SCHEDULED},
            extra_fields={"confirmed_at": timezone.now()},
        )
        logger.info("Appointment %s confirmed by %s", appointment.pk, user.username)
        return appointment

    @staticmethod
    def complete(
        application_id: int,
        appointment_id: int,
        user: Any,
        notes: str = "",
    ) -> Appointment:
        """Scheduled/Confirmed → Completed."""
        appointment = AppointmentService.get_appointment(application_id, appointment_id, user)
        AppointmentService._require_participant(appointment, user)
        appointment = atomic_transition(
            instance=appointment,
            target_status=AppointmentStatus.COMPLETED,
            allowed_sources=set(LIVE_STATUSES),
            extra_fields={"completed_at": timezone.now(), "completion_notes": notes},
        )
        logger.info("Appointment %s completed by %s", appointment.pk, user.username)
        return appointment

    @staticmethod
    def cancel(
        application_id: int,
        appointment_id: int,
        user: Any,
        reason: str,
    ) -> Appointment:
        """Scheduled/Confirmed → Cancelled.  A non-blank reason is required."""
        if not reason or not reason.strip():
            raise DomainError("A cancellation reason is required.")
        appointment = AppointmentService.get_appointment(application_id, appointment_id, user)
        AppointmentService._require_participant(appointment, user)
        appointment = atomic_transition(
            instance=appointment,
            target_status=AppointmentStatus.CANCELLED,
            allowed_sources=set(LIVE_STATUSES),
            extra_fields={"cancelled_at": timezone.now(), "cancellation_reason": reason},
        )
        logger.info("Appointment %s cancelled by %s: %s", appointment.pk, user.username, reason)
        return appointment

    @staticmethod
    @transaction.atomic
    def reschedule(
        application_id: int,
        appointment_id: int,
        user: Any,
        new_scheduled_at: datetime,
        reason: str = "",
        place: str | None = None,
        room_number: str | None = None,
    ) -> Appointment:
        """
        Replace a live appointment by a new Scheduled one.

        The old appointment becomes Rescheduled and links forward to the
        new one in the same transaction.

        Returns
        -------
        Appointment
            The new appointment.

        Raises
        ------
        InvalidTransition
            The appointment is terminal or was already rescheduled.
        """
        appointment = AppointmentService.get_appointment(application_id, appointment_id, user)
        AppointmentService._require_participant(appointment, user)
        AppointmentService._ensure_future(new_scheduled_at)

        old = lock_for_update(Appointment, appointment.pk)
        if not old.is_live or old.rescheduled_to_id is not None:
            raise InvalidTransition(
                current=old.status,
                target=AppointmentStatus.RESCHEDULED,
                reason="only a live appointment that was never rescheduled can be moved",
            )

        old.status = AppointmentStatus.RESCHEDULED
        old.reschedule_reason = reason
        old.save(update_fields=["status", "reschedule_reason", "updated_at"])

        new = Appointment.objects.create(
            application_id=old.application_id,
            scheduled_by=old.scheduled_by,
            scheduled_at=new_scheduled_at,
            place=place if place is not None else old.place,
            room_number=room_number if room_number is not None else old.room_number,
            contact_person=old.contact_person,
            comments=old.comments,
        )
        old.rescheduled_to = new
        old.save(update_fields=["rescheduled_to", "updated_at"])
        logger.info(
            "Appointment %s rescheduled to %s (new appointment %s) by %s",
            old.pk, new_scheduled_at, new.pk, user.username,
        )
        return new

    @staticmethod
    def mark_reminder_sent(
        appointment_id: int,
        user: Any,
        application_id: int | None = None,
    ) -> Appointment:
        """
        Record that the reminder went out.  Succeeds exactly once per
        appointment; a second call raises ``Conflict``.
        """
        require_permission(user, _MANAGE_REMINDERS)
        appointments = Appointment.objects.all()
        if application_id is not None:
            appointments = appointments.filter(application_id=application_id)
        try:
            appointment = appointments.get(pk=appointment_id)
        except Appointment.DoesNotExist:
            raise NotFound(f"Appointment with id {appointment_id} not found.")

        swapped = compare_and_swap(
            Appointment, appointment.pk,
            field="reminder_sent", expected=False, new=True,
            extra_updates={"reminder_sent_at": timezone.now()},
        )
        if not swapped:
            raise Conflict(f"The reminder for appointment {appointment.pk} was already sent.")
        appointment.refresh_from_db()
        logger.info("Reminder for appointment %s marked sent", appointment.pk)
        return appointment

    # ── Internal helpers ────────────────────────────────────────────

    @staticmethod
    def _ensure_future(scheduled_at: datetime) -> None:
        if scheduled_at <= timezone.now():
            raise DomainError("Appointments must be scheduled in the future.")

    @staticmethod
    def _ensure_no_live_appointment(application: PositionApplication) -> None:
        live = application.appointments.filter(status__in=LIVE_STATUSES).first()
        if live is not None:
            raise AppointmentConflictError(
                f"Application {application.application_number} already has a "
                f"{live.status} appointment (#{live.pk}) at {live.scheduled_at:%Y-%m-%d %H:%M}."
            )

    @staticmethod
    def _require_participant(appointment: Appointment, user: Any, allow_applicant: bool = False) -> None:
        if appointment.scheduled_by_id == user.pk or user.has_perm(_CHANGE_APPOINTMENT):
            return
        if allow_applicant and appointment.application.applicant_id == user.pk:
            return
        raise PermissionDenied("You are not a participant of this appointment.")

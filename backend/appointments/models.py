"""
Appointments app models.

An ``Appointment`` is the in-person meeting the Junior Engineer holds
with the applicant during the JE review.  At most one appointment per
application is live (Scheduled or Confirmed) at any time.
"""

from django.conf import settings
from django.db import models
from django.db.models import Q

from core.models import TimeStampedModel
from core.permissions_constants import AppointmentsPerms


class AppointmentStatus(models.TextChoices):
    SCHEDULED = "scheduled", "Scheduled"
    CONFIRMED = "confirmed", "Confirmed"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    RESCHEDULED = "rescheduled", "Rescheduled"


#: Statuses that block a second appointment for the same application.
LIVE_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)


class Appointment(TimeStampedModel):
    """
    Appointment state machine::

        SCHEDULED ──▶ CONFIRMED ──▶ COMPLETED
            │             │
            ├─────────────┴──▶ CANCELLED
            └─────────────┴──▶ RESCHEDULED ──(rescheduled_to)──▶ new SCHEDULED

    Completed, Cancelled and Rescheduled are terminal.
    """

    application = models.ForeignKey(
        "applications.PositionApplication",
        on_delete=models.CASCADE,
        related_name="appointments",
        verbose_name="Application",
    )
    scheduled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="scheduled_appointments",
        verbose_name="Scheduled By",
    )
    scheduled_at = models.DateTimeField(verbose_name="Scheduled At")
    place = models.CharField(max_length=255, verbose_name="Place")
    room_number = models.CharField(max_length=50, blank=True, default="", verbose_name="Room Number")
    contact_person = models.CharField(max_length=150, blank=True, default="", verbose_name="Contact Person")
    comments = models.TextField(blank=True, default="", verbose_name="Comments")
    status = models.CharField(
        max_length=20,
        choices=AppointmentStatus.choices,
        default=AppointmentStatus.SCHEDULED,
        db_index=True,
        verbose_name="Status",
    )
    confirmed_at = models.DateTimeField(null=True, blank=True, verbose_name="Confirmed At")
    completed_at = models.DateTimeField(null=True, blank=True, verbose_name="Completed At")
    completion_notes = models.TextField(blank=True, default="", verbose_name="Completion Notes")
    cancelled_at = models.DateTimeField(null=True, blank=True, verbose_name="Cancelled At")
    cancellation_reason = models.TextField(blank=True, default="", verbose_name="Cancellation Reason")
    reschedule_reason = models.TextField(blank=True, default="", verbose_name="Reschedule Reason")
    rescheduled_to = models.OneToOneField(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="rescheduled_from",
        verbose_name="Rescheduled To",
    )
    reminder_sent = models.BooleanField(default=False, verbose_name="Reminder Sent")
    reminder_sent_at = models.DateTimeField(null=True, blank=True, verbose_name="Reminder Sent At")

    class Meta:
        verbose_name = "Appointment"
        verbose_name_plural = "Appointments"
        ordering = ["scheduled_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["application"],
                condition=Q(status__in=["scheduled", "confirmed"]),
                name="uniq_live_appointment_per_application",
            ),
        ]
        permissions = [
            (AppointmentsPerms.CAN_MANAGE_REMINDERS, "Read due reminders and mark them sent"),
        ]

    def __str__(self):
        return f"Appointment #{self.pk} for {self.application_id} at {self.scheduled_at:%Y-%m-%d %H:%M} ({self.status})"

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

"""
core.domain.notifications — Synchronous in-app notification helper.

Centralises notification creation so every app uses one consistent
entry-point rather than directly constructing ``Notification`` objects.

Only the in-app ``Notification`` row is written here.  Email / SMS
delivery is owned by an external notifier that reads these rows.

Usage::

    from core.domain.notifications import NotificationService

    NotificationService.create(
        actor=request.user,
        recipients=officer,
        event_type="stage_assigned",
        payload={"application": application.application_number,
                 "stage": stage},
        related_object=application,
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable

from django.contrib.contenttypes.models import ContentType
from django.db import models

if TYPE_CHECKING:
    from accounts.models import User
    from core.models import Notification

logger = logging.getLogger(__name__)

# ── Event-type → (title, message template) ──────────────────────────
# Message templates are formatted with the ``payload`` dict; missing
# keys fall back to the raw template.
_EVENT_TEMPLATES: dict[str, tuple[str, str]] = {
    "stage_approved":        ("Stage Approved",            "Application {application} was approved at {stage}."),
    "stage_advanced":        ("Application Advanced",      "Application {application} moved to {stage}."),
    "application_rejected":  ("Application Rejected",      "Application {application} was rejected at {stage}."),
    "application_completed": ("Application Completed",     "Application {application} has completed all stages."),
    "stage_assigned":        ("New Assignment",            "You have been assigned application {application} at {stage}."),
    "assignment_removed":    ("Assignment Removed",        "Application {application} at {stage} was reassigned."),
    "manual_assignment":     ("Manual Assignment Needed",  "Application {application} at {stage} needs a manual assignment."),
    "assignment_delayed":    ("Pending Review Reminder",   "Application {application} has been waiting at {stage} for {hours} hours."),
    "document_verified":     ("Document Verified",         "Document '{document_type}' was marked {status}."),
}


class NotificationService:
    """
    Stateless helper for creating ``Notification`` records.

    All methods are classmethods; there is no instance state.
    """

    @classmethod
    def create(
        cls,
        *,
        actor: User | None,
        recipients: User | Iterable[User],
        event_type: str,
        payload: dict[str, Any] | None = None,
        related_object: models.Model | None = None,
    ) -> list[Notification]:
        """
        Create one ``Notification`` per recipient.

        Args:
            actor:          The user who performed the action (``None``
                            for system-driven events such as delayed
                            reminders).  Used for logging only.
            recipients:     A single ``User`` or iterable of ``User``
                            instances.  ``None`` entries are skipped.
            event_type:     Key into ``_EVENT_TEMPLATES``.  If unknown
                            the raw event_type is used as title.
            payload:        Values interpolated into the message template.
            related_object: Optional model instance linked via
                            ``GenericForeignKey``.

        Returns:
            List of created ``Notification`` instances.
        """
        from core.models import Notification  # lazy import to avoid a circular dependency

        if isinstance(recipients, models.Model):
            recipients = [recipients]
        recipients = [r for r in recipients if r is not None]

        if not recipients:
            logger.warning(
                "NotificationService.create called with empty recipients "
                "for event_type=%s by actor=%s",
                event_type,
                actor,
            )
            return []

        title, template = _EVENT_TEMPLATES.get(
            event_type,
            (event_type.replace("_", " ").title(), f"Event: {event_type}"),
        )
        try:
            message = template.format(**(payload or {}))
        except KeyError:
            message = template

        content_type = None
        object_id = None
        if related_object is not None:
            content_type = ContentType.objects.get_for_model(related_object)
            object_id = related_object.pk

        notifications = Notification.objects.bulk_create([
            Notification(
                recipient=recipient,
                title=title,
                message=message,
                event_type=event_type,
                content_type=content_type,
                object_id=object_id,
            )
            for recipient in recipients
        ])

        logger.info(
            "Created %d notification(s) [%s] by actor=%s",
            len(notifications),
            event_type,
            actor,
        )
        return notifications

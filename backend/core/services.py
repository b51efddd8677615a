"""
Core app services — **Service Layer**.

Contains the cross-app reporting projections, the system constants
listing and the notification inbox.  Views delegate all logic to the
service classes defined here.

╔══════════════════════════════════════════════════════════════════════╗
║  CROSS-APP IMPORT RULEBOOK                                         ║
║                                                                    ║
║  The core app is imported by every other app, so it must never     ║
║  import their models at the **module level**.                      ║
║                                                                    ║
║  1. Import models inside the method that needs them, preferably    ║
║     through ``apps.get_model("applications", "StageOutcome")``.     ║
║                                                                    ║
║  2. Choice/enum classes (``Stage``, ``PositionType``) live in the  ║
║     owning app's ``models.py``; import them lazily too.            ║
║                                                                    ║
║  3. Prefer ``.values().annotate()`` aggregation over Python loops. ║
╚══════════════════════════════════════════════════════════════════════╝
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from django.apps import apps
from django.db.models import Count, Q, QuerySet
from django.utils import timezone

from core.domain.access import require_permission
from core.domain.exceptions import NotFound
from core.permissions_constants import CorePerms

if TYPE_CHECKING:
    from accounts.models import User

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════
#  Reporting Service
# ════════════════════════════════════════════════════════════════════

class ReportingService:
    """
    Read-only drill-down over applications and the stage ledger:

    * **positions**  — one row per position type with totals.
    * **stages**     — for one position type, one row per stage with the
      number of applications currently there and the decisions recorded
      on it.
    * **applications** — the applications currently at one stage of one
      position type, with their assigned officers.

    Requires ``core.can_view_reports``.
    """

    def __init__(self, user: User) -> None:
        require_permission(
            user, f"core.{CorePerms.CAN_VIEW_REPORTS}",
            message="You do not have permission to view reports.",
        )
        self.user = user

    # ── Public API ──────────────────────────────────────────────────

    def position_summaries(self) -> list[dict[str, Any]]:
        """Totals per position type."""
        from applications.models import PositionType, Stage

        PositionApplication = apps.get_model("applications", "PositionApplication")

        rows = {
            row["position_type"]: row
            for row in (
                PositionApplication.objects
                .order_by()
                .values("position_type")
                .annotate(
                    total=Count("id"),
                    draft=Count("id", filter=Q(current_stage=Stage.SUBMITTED)),
                    completed=Count("id", filter=Q(current_stage=Stage.COMPLETED)),
                    rejected=Count("id", filter=Q(current_stage=Stage.REJECTED)),
                    needs_manual_assignment=Count("id", filter=Q(needs_manual_assignment=True)),
                )
            )
        }

        summaries = []
        for value, label in PositionType.choices:
            row = rows.get(value, {})
            total = row.get("total", 0)
            finished = row.get("completed", 0) + row.get("rejected", 0)
            summaries.append({
                "position_type": value,
                "label": str(label),
                "total": total,
                "in_progress": total - finished - row.get("draft", 0),
                "completed": row.get("completed", 0),
                "rejected": row.get("rejected", 0),
                "needs_manual_assignment": row.get("needs_manual_assignment", 0),
            })
        return summaries

    def stage_summaries(self, position_type: str) -> list[dict[str, Any]]:
        """Per-stage counts and ledger decisions for one position type."""
        from applications.models import Decision, Stage
        from applications.workflow import PIPELINE

        self._validate_position_type(position_type)
        PositionApplication = apps.get_model("applications", "PositionApplication")
        StageOutcome = apps.get_model("applications", "StageOutcome")

        current = dict(
            PositionApplication.objects
            .filter(position_type=position_type)
            .order_by()
            .values("current_stage")
            .annotate(n=Count("id"))
            .values_list("current_stage", "n")
        )
        decisions = {
            row["stage"]: row
            for row in (
                StageOutcome.objects
                .filter(application__position_type=position_type)
                .order_by()
                .values("stage")
                .annotate(
                    approved=Count("id", filter=Q(decision=Decision.APPROVED)),
                    rejected=Count("id", filter=Q(decision=Decision.REJECTED)),
                )
            )
        }

        summaries = []
        for index, stage in enumerate((*PIPELINE, Stage.REJECTED), start=1):
            decided = decisions.get(stage, {})
            summaries.append({
                "stage": stage,
                "label": Stage(stage).label,
                "order": index,
                "current_count": current.get(stage, 0),
                "approved_count": decided.get("approved", 0),
                "rejected_count": decided.get("rejected", 0),
            })
        return summaries

    def applications_at_stage(self, position_type: str, stage: str) -> list[dict[str, Any]]:
        """Applications of ``position_type`` currently at ``stage``."""
        from applications.models import Stage

        self._validate_position_type(position_type)
        if stage not in Stage.values:
            raise NotFound(f"Unknown stage '{stage}'.")

        PositionApplication = apps.get_model("applications", "PositionApplication")
        AssignmentRecord = apps.get_model("assignments", "AssignmentRecord")

        applications = list(
            PositionApplication.objects
            .filter(position_type=position_type, current_stage=stage)
            .order_by("stage_entered_at")
        )
        officers: dict[int, list[dict[str, Any]]] = {}
        for record in (
            AssignmentRecord.objects
            .filter(application__in=applications, stage=stage, is_active=True)
            .select_related("officer")
        ):
            officers.setdefault(record.application_id, []).append({
                "role": record.role,
                "officer_id": record.officer_id,
                "officer_name": record.officer.get_full_name(),
            })

        now = timezone.now()
        return [
            {
                "id": application.pk,
                "application_number": application.application_number,
                "applicant_name": application.applicant_name,
                "attempt_number": application.current_attempt,
                "days_at_stage": (now - application.stage_entered_at).days,
                "needs_manual_assignment": application.needs_manual_assignment,
                "assigned_officers": officers.get(application.pk, []),
            }
            for application in applications
        ]

    # ── Private helpers ─────────────────────────────────────────────

    @staticmethod
    def _validate_position_type(position_type: str) -> None:
        from applications.models import PositionType

        if position_type not in PositionType.values:
            raise NotFound(f"Unknown position type '{position_type}'.")


# ════════════════════════════════════════════════════════════════════
#  System Constants Service
# ════════════════════════════════════════════════════════════════════

class SystemConstantsService:
    """
    Gathers all system-wide choice enumerations, the pipeline and the
    stage → role table into a single dict for the frontend.

    This service is **stateless**: it does not depend on the requesting
    user.
    """

    @staticmethod
    def get_constants() -> dict[str, Any]:
        """Return all system constants as a dict."""
        from accounts.models import OfficerRole
        from applications.models import Decision, DocumentStatus, PositionType
        from applications.workflow import PIPELINE, REVIEW_STAGES, required_roles
        from appointments.models import AppointmentStatus
        from assignments.models import AssignmentStrategy
        from signatures.models import SignatureStatus

        Role = apps.get_model("accounts", "Role")

        to_list = SystemConstantsService._choices_to_list

        roles = list(
            Role.objects
            .order_by("-hierarchy_level")
            .values("id", "name", "code", "hierarchy_level")
        )
        stage_roles = {
            position: {
                stage: list(required_roles(position, stage))
                for stage in PIPELINE if stage in REVIEW_STAGES
            }
            for position in PositionType.values
        }

        return {
            "position_types": to_list(PositionType),
            "pipeline": [str(stage) for stage in PIPELINE],
            "decisions": to_list(Decision),
            "document_statuses": to_list(DocumentStatus),
            "officer_roles": to_list(OfficerRole),
            "assignment_strategies": to_list(AssignmentStrategy),
            "appointment_statuses": to_list(AppointmentStatus),
            "signature_statuses": to_list(SignatureStatus),
            "stage_roles": stage_roles,
            "role_hierarchy": roles,
        }

    @staticmethod
    def _choices_to_list(
        choices_class: type,
    ) -> list[dict[str, str]]:
        """
        Convert a Django ``TextChoices`` class to a list of
        ``{"value": ..., "label": ...}`` dicts.
        """
        return [
            {"value": str(value), "label": str(label)}
            for value, label in choices_class.choices
        ]


# ═══════════════════════════════════════════════════════════════════
#  Notification Inbox Service
# ═══════════════════════════════════════════════════════════════════

class NotificationInboxService:
    """
    Lists and marks as read the in-app notifications of one user.
    Creation lives in ``core.domain.notifications.NotificationService``.
    """

    def __init__(self, user: Any) -> None:
        self.user = user

    def list_notifications(self, unread_only: bool = False) -> QuerySet:
        """Return the notifications of ``self.user``, most recent first."""
        from core.models import Notification

        qs = (
            Notification.objects
            .filter(recipient=self.user)
            .select_related("content_type")
            .order_by("-created_at")
        )
        if unread_only:
            qs = qs.filter(is_read=False)
        return qs

    def mark_as_read(self, notification_id: int) -> Any:
        """Mark a single notification as read."""
        from core.models import Notification

        try:
            notification = Notification.objects.get(
                pk=notification_id,
                recipient=self.user,
            )
        except Notification.DoesNotExist:
            raise NotFound(f"Notification with id {notification_id} not found.")
        notification.is_read = True
        notification.save(update_fields=["is_read", "updated_at"])
        return notification

    def mark_all_as_read(self) -> int:
        """Mark every unread notification as read; returns the count."""
        from core.models import Notification

        updated = (
            Notification.objects
            .filter(recipient=self.user, is_read=False)
            .update(is_read=True, updated_at=timezone.now())
        )
        logger.info("Marked %d notification(s) read for %s", updated, self.user)
        return updated

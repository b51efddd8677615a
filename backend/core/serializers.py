"""
Core app serializers.

**Response-only** serializers for the aggregated endpoints served by the
core app.  These serializers define the *output schema* for the reports,
system constants and notification views.  They do **not** accept input
data; path parameters are validated in the service layer.

Architectural note
------------------
These serializers never import models from other apps.  They work
exclusively with plain Python dicts / lists produced by the service
layer, keeping the core app decoupled from ``applications``,
``assignments`` and ``accounts``.
"""

from __future__ import annotations

from rest_framework import serializers


# ════════════════════════════════════════════════════════════════════
#  Reports
# ════════════════════════════════════════════════════════════════════

class PositionSummarySerializer(serializers.Serializer):
    """
    One row of ``GET /api/core/reports/positions/``.

    Example::

        {"position_type": "architect", "label": "Architect", "total": 12,
         "in_progress": 7, "completed": 4, "rejected": 1,
         "needs_manual_assignment": 0}
    """

    position_type = serializers.CharField()
    label = serializers.CharField()
    total = serializers.IntegerField()
    in_progress = serializers.IntegerField(
        help_text="Submitted applications that are neither completed nor rejected.",
    )
    completed = serializers.IntegerField()
    rejected = serializers.IntegerField()
    needs_manual_assignment = serializers.IntegerField()


class StageSummarySerializer(serializers.Serializer):
    """One row of the per-stage drill-down for a position type."""

    stage = serializers.CharField()
    label = serializers.CharField()
    order = serializers.IntegerField(help_text="1-based position in the pipeline.")
    current_count = serializers.IntegerField(
        help_text="Applications currently at this stage.",
    )
    approved_count = serializers.IntegerField(
        help_text="Approve decisions ever recorded on this stage.",
    )
    rejected_count = serializers.IntegerField(
        help_text="Reject decisions ever recorded on this stage.",
    )


class AssignedOfficerSerializer(serializers.Serializer):
    role = serializers.CharField()
    officer_id = serializers.IntegerField()
    officer_name = serializers.CharField()


class StageApplicationSerializer(serializers.Serializer):
    """One application currently sitting at the requested stage."""

    id = serializers.IntegerField()
    application_number = serializers.CharField()
    applicant_name = serializers.CharField()
    attempt_number = serializers.IntegerField()
    days_at_stage = serializers.IntegerField()
    needs_manual_assignment = serializers.BooleanField()
    assigned_officers = AssignedOfficerSerializer(many=True)


# ════════════════════════════════════════════════════════════════════
#  System Constants / Enums
# ════════════════════════════════════════════════════════════════════

class ChoiceItemSerializer(serializers.Serializer):
    """
    A single key-label pair representing one choice/enum option.

    Example::

        {"value": "je_review", "label": "Junior Engineer Review"}
    """

    value = serializers.CharField(
        help_text="Machine-readable value to send in API requests.",
    )
    label = serializers.CharField(
        help_text="Human-readable display label for the UI.",
    )


class RoleHierarchyItemSerializer(serializers.Serializer):
    """
    A single role with its hierarchy level.

    Example::

        {"id": 3, "name": "Executive Engineer", "code": "executive_engineer", "hierarchy_level": 7}
    """

    id = serializers.IntegerField(help_text="Role PK.")
    name = serializers.CharField(help_text="Role display name.")
    code = serializers.CharField(allow_null=True, help_text="Officer role code (null for non-officer roles).")
    hierarchy_level = serializers.IntegerField(
        help_text="Authority level (higher = more authority).",
    )


class SystemConstantsSerializer(serializers.Serializer):
    """
    Top-level response serializer for ``GET /api/core/constants/``.

    Provides all system-wide choice enumerations, the pipeline and the
    stage → role table so the frontend can build dropdowns and labels
    **without** hardcoding values.

    Response shape::

        {
            "position_types": [{"value": "architect", "label": "Architect"}, ...],
            "pipeline": ["submitted", "je_review", ...],
            "decisions": [...],
            "document_statuses": [...],
            "officer_roles": [...],
            "assignment_strategies": [...],
            "appointment_statuses": [...],
            "signature_statuses": [...],
            "stage_roles": {"architect": {"je_review": ["junior_architect"], ...}, ...},
            "role_hierarchy": [{"id": 1, "name": "City Engineer", ...}, ...]
        }
    """

    position_types = ChoiceItemSerializer(many=True)
    pipeline = serializers.ListField(
        child=serializers.CharField(),
        help_text="Stage values in workflow order.",
    )
    decisions = ChoiceItemSerializer(many=True)
    document_statuses = ChoiceItemSerializer(many=True)
    officer_roles = ChoiceItemSerializer(many=True)
    assignment_strategies = ChoiceItemSerializer(many=True)
    appointment_statuses = ChoiceItemSerializer(many=True)
    signature_statuses = ChoiceItemSerializer(many=True)
    stage_roles = serializers.DictField(
        child=serializers.DictField(child=serializers.ListField(child=serializers.CharField())),
        help_text="Per position type, the officer roles required at each review stage.",
    )
    role_hierarchy = RoleHierarchyItemSerializer(
        many=True,
        help_text="All roles with their hierarchy levels, ordered by authority.",
    )


# ════════════════════════════════════════════════════════════════════
#  Notifications
# ════════════════════════════════════════════════════════════════════

class NotificationSerializer(serializers.Serializer):
    """
    Read-only serializer for ``Notification`` instances.

    Used by the Notification ViewSet to list the notifications of the
    authenticated user.
    """

    id = serializers.IntegerField(read_only=True, help_text="Notification PK.")
    event_type = serializers.CharField(read_only=True)
    title = serializers.CharField(
        read_only=True,
        help_text="Short notification title.",
    )
    message = serializers.CharField(
        read_only=True,
        help_text="Full notification message body.",
    )
    is_read = serializers.BooleanField(
        read_only=True,
        help_text="Whether the recipient has marked this notification as read.",
    )
    created_at = serializers.DateTimeField(
        read_only=True,
        help_text="When the notification was created.",
    )
    content_type = serializers.StringRelatedField(
        read_only=True,
        help_text="Related content type (if any).",
    )
    object_id = serializers.IntegerField(
        read_only=True,
        allow_null=True,
        help_text="PK of the related object (if any).",
    )


class MarkAllReadResponseSerializer(serializers.Serializer):
    updated = serializers.IntegerField(help_text="Number of notifications marked read.")

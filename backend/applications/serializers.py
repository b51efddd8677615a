"""
Applications app serializers.

Request and response serializers for the Applications API.  Serializers
handle field definitions and field-level validation only.  **No workflow
transitions or assignment logic live here**; those belong in
``services.py``.

Structure
---------
1. Filter / query-param serializers
2. Application read serializers
3. Application write serializers
4. Workflow action serializers
5. Sub-resource serializers (outcomes, documents, workflow status)
"""

from __future__ import annotations

from rest_framework import serializers

from .models import (
    ApplicationDocument,
    Decision,
    DocumentStatus,
    PositionApplication,
    PositionType,
    Stage,
    StageOutcome,
)


# ═══════════════════════════════════════════════════════════════════
#  1. Filter / Query-Parameter Serializers
# ═══════════════════════════════════════════════════════════════════


class ApplicationFilterSerializer(serializers.Serializer):
    """Optional query-parameter filters for ``GET /api/applications/``."""

    position_type = serializers.ChoiceField(choices=PositionType.choices, required=False)
    current_stage = serializers.ChoiceField(choices=Stage.choices, required=False)
    needs_manual_assignment = serializers.BooleanField(required=False, allow_null=True, default=None)


# ═══════════════════════════════════════════════════════════════════
#  2. Read Serializers
# ═══════════════════════════════════════════════════════════════════


class ApplicationListSerializer(serializers.ModelSerializer):
    current_stage_display = serializers.CharField(source="get_current_stage_display", read_only=True)
    position_type_display = serializers.CharField(source="get_position_type_display", read_only=True)

    class Meta:
        model = PositionApplication
        fields = [
            "id",
            "application_number",
            "applicant_name",
            "position_type",
            "position_type_display",
            "current_stage",
            "current_stage_display",
            "needs_manual_assignment",
            "created_at",
        ]
        read_only_fields = fields


class ApplicationDetailSerializer(serializers.ModelSerializer):
    current_stage_display = serializers.CharField(source="get_current_stage_display", read_only=True)
    position_type_display = serializers.CharField(source="get_position_type_display", read_only=True)

    class Meta:
        model = PositionApplication
        fields = [
            "id",
            "application_number",
            "applicant",
            "applicant_name",
            "position_type",
            "position_type_display",
            "current_stage",
            "current_stage_display",
            "current_attempt",
            "rejected_at_stage",
            "needs_manual_assignment",
            "stage_entered_at",
            "submitted_at",
            "completed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


# ═══════════════════════════════════════════════════════════════════
#  3. Write Serializers
# ═══════════════════════════════════════════════════════════════════


class ApplicationCreateSerializer(serializers.Serializer):
    position_type = serializers.ChoiceField(choices=PositionType.choices)
    applicant_name = serializers.CharField(max_length=255, required=False, allow_blank=True)


# ═══════════════════════════════════════════════════════════════════
#  4. Workflow Action Serializers
# ═══════════════════════════════════════════════════════════════════


class TransitionSerializer(serializers.Serializer):
    """
    Body of ``POST /api/applications/{id}/transition/``.

    ``stage`` is the stage the officer is acting on; a mismatch with the
    application's current stage is reported as a stale-state conflict.
    """

    stage = serializers.ChoiceField(choices=Stage.choices)
    decision = serializers.ChoiceField(choices=[Decision.APPROVED, Decision.REJECTED])
    comments = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if attrs["decision"] == Decision.REJECTED and not attrs["comments"].strip():
            raise serializers.ValidationError(
                {"comments": "A rejection reason is required."}
            )
        return attrs


class ResubmitSerializer(serializers.Serializer):
    comments = serializers.CharField(required=False, allow_blank=True, default="")


# ═══════════════════════════════════════════════════════════════════
#  5. Sub-resource Serializers
# ═══════════════════════════════════════════════════════════════════


class StageOutcomeSerializer(serializers.ModelSerializer):
    officer_name = serializers.CharField(source="officer.get_full_name", read_only=True)
    stage_display = serializers.CharField(source="get_stage_display", read_only=True)

    class Meta:
        model = StageOutcome
        fields = [
            "id",
            "stage",
            "stage_display",
            "role",
            "attempt_number",
            "decision",
            "officer",
            "officer_name",
            "comments",
            "digital_signature",
            "decided_at",
        ]
        read_only_fields = fields


class TransitionResultSerializer(serializers.Serializer):
    outcome = StageOutcomeSerializer()
    application = ApplicationDetailSerializer()


class ApplicationDocumentSerializer(serializers.ModelSerializer):
    class Meta:
        model = ApplicationDocument
        fields = [
            "id",
            "document_type",
            "file_path",
            "verification_status",
            "verified_by",
            "verified_at",
            "verification_comments",
            "created_at",
        ]
        read_only_fields = fields


class DocumentCreateSerializer(serializers.Serializer):
    document_type = serializers.CharField(max_length=100)
    file_path = serializers.CharField(max_length=500)


class DocumentVerifySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[
        DocumentStatus.APPROVED,
        DocumentStatus.REJECTED,
        DocumentStatus.REQUIRES_RESUBMISSION,
    ])
    comments = serializers.CharField(required=False, allow_blank=True, default="")


class SubReviewSerializer(serializers.Serializer):
    role = serializers.CharField()
    decision = serializers.CharField()
    officer_id = serializers.IntegerField(allow_null=True)
    officer_name = serializers.CharField(allow_null=True)
    assigned_at = serializers.DateTimeField(allow_null=True)


class WorkflowStatusSerializer(serializers.Serializer):
    application_id = serializers.IntegerField()
    application_number = serializers.CharField()
    position_type = serializers.CharField()
    current_stage = serializers.CharField()
    current_stage_display = serializers.CharField()
    next_stage = serializers.CharField(allow_null=True)
    stage_number = serializers.IntegerField()
    total_stages = serializers.IntegerField()
    attempt_number = serializers.IntegerField()
    progress_percentage = serializers.IntegerField()
    needs_manual_assignment = serializers.BooleanField()
    rejected_at_stage = serializers.CharField(allow_null=True)
    sub_reviews = SubReviewSerializer(many=True)
    pending_action = serializers.CharField()

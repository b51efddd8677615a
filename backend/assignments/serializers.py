"""
Assignments app serializers.

Request serializers validate the bodies of the assign / claim endpoints
and the rule CRUD; response serializers shape assignment records,
workload rows and escalation candidates.
"""

from __future__ import annotations

from rest_framework import serializers

from accounts.models import OfficerRole
from applications.models import PositionType, Stage

from .models import AssignmentRecord, AssignmentStrategy, AutoAssignmentRule


# ── Requests ────────────────────────────────────────────────────────


class ManualAssignSerializer(serializers.Serializer):
    application_id = serializers.IntegerField(min_value=1)
    stage = serializers.ChoiceField(choices=Stage.choices)
    officer_id = serializers.IntegerField(min_value=1, required=False, allow_null=True, default=None)
    role = serializers.ChoiceField(choices=OfficerRole.choices, required=False, allow_null=True, default=None)
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class ClaimSerializer(serializers.Serializer):
    application_id = serializers.IntegerField(min_value=1)
    stage = serializers.ChoiceField(choices=Stage.choices)


class HistoryQuerySerializer(serializers.Serializer):
    application = serializers.IntegerField(min_value=1)


class WorkloadQuerySerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=OfficerRole.choices, required=False)


class OverdueQuerySerializer(serializers.Serializer):
    hours = serializers.IntegerField(min_value=1, required=False)


# ── Responses ───────────────────────────────────────────────────────


class AssignmentRecordSerializer(serializers.ModelSerializer):
    officer_name = serializers.CharField(source="officer.get_full_name", read_only=True)
    application_number = serializers.CharField(source="application.application_number", read_only=True)

    class Meta:
        model = AssignmentRecord
        fields = [
            "id",
            "application",
            "application_number",
            "stage",
            "role",
            "officer",
            "officer_name",
            "previous_officer",
            "assigned_by",
            "strategy_used",
            "rule",
            "action",
            "reason",
            "workload_at_assignment",
            "assigned_at",
            "is_active",
            "inactivated_at",
        ]
        read_only_fields = fields


class WorkloadRowSerializer(serializers.Serializer):
    officer_id = serializers.IntegerField()
    username = serializers.CharField()
    full_name = serializers.CharField()
    role = serializers.CharField()
    open_assignments = serializers.IntegerField()


class EscalationCandidateSerializer(serializers.Serializer):
    assignment = AssignmentRecordSerializer()
    hours_waiting = serializers.IntegerField()
    escalation_role = serializers.CharField(allow_null=True)


class UnassignedApplicationSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    application_number = serializers.CharField()
    position_type = serializers.CharField()
    current_stage = serializers.CharField()
    updated_at = serializers.DateTimeField()


# ── Rules ───────────────────────────────────────────────────────────


class AutoAssignmentRuleSerializer(serializers.ModelSerializer):
    position_type = serializers.ChoiceField(
        choices=PositionType.choices, required=False, allow_blank=True,
    )
    strategy = serializers.ChoiceField(choices=AssignmentStrategy.choices, required=False)

    class Meta:
        model = AutoAssignmentRule
        fields = [
            "id",
            "name",
            "position_type",
            "target_role",
            "strategy",
            "priority",
            "max_workload_per_officer",
            "is_active",
            "effective_from",
            "effective_to",
            "escalation_time_hours",
            "escalation_role",
            "last_round_robin_index",
            "times_applied",
            "last_applied_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "id",
            "last_round_robin_index",
            "times_applied",
            "last_applied_at",
            "created_at",
            "updated_at",
        ]

    def validate(self, attrs):
        start = attrs.get("effective_from", getattr(self.instance, "effective_from", None))
        end = attrs.get("effective_to", getattr(self.instance, "effective_to", None))
        if start and end and end <= start:
            raise serializers.ValidationError(
                {"effective_to": "Must be later than effective_from."}
            )
        return attrs

"""
Assignments app ViewSets.

Thin views over ``AssignmentService`` / ``AssignmentRuleService``.

ViewSets
--------
- ``AssignmentViewSet``          — assign, claim, history, unassigned,
                                   overdue, escalations, workload.
- ``AutoAssignmentRuleViewSet``  — rule CRUD (destroy deactivates).
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

from core.domain.access import require_permission
from core.permissions_constants import AssignmentsPerms

from .serializers import (
    AssignmentRecordSerializer,
    AutoAssignmentRuleSerializer,
    ClaimSerializer,
    EscalationCandidateSerializer,
    HistoryQuerySerializer,
    ManualAssignSerializer,
    OverdueQuerySerializer,
    UnassignedApplicationSerializer,
    WorkloadQuerySerializer,
    WorkloadRowSerializer,
)
from .services import AssignmentRuleService, AssignmentService

logger = logging.getLogger(__name__)


class AssignmentViewSet(viewsets.ViewSet):
    """
    RPC-style endpoints of the Assignment Engine.  Permission checks
    live in the service layer.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Assign an officer",
        description=(
            "Admin override. With `officer_id` the sub-review is (re)assigned to "
            "that officer; without it the matching rule's strategy is run."
        ),
        request=ManualAssignSerializer,
        responses={
            200: OpenApiResponse(response=AssignmentRecordSerializer, description="Assignment recorded."),
            403: OpenApiResponse(description="Missing can_manage_assignments."),
            422: OpenApiResponse(description="No eligible officer."),
        },
        tags=["Assignments"],
    )
    @action(detail=False, methods=["post"], url_path="assign")
    def assign(self, request: Request) -> Response:
        serializer = ManualAssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        record = AssignmentService.manual_assign(
            data["application_id"],
            data["stage"],
            request.user,
            officer_id=data["officer_id"],
            role=data["role"],
            reason=data["reason"],
        )
        return Response(AssignmentRecordSerializer(record).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Claim a stage",
        description="First-to-claim assignment of an unassigned sub-review by an officer holding the role.",
        request=ClaimSerializer,
        responses={
            200: OpenApiResponse(response=AssignmentRecordSerializer),
            403: OpenApiResponse(description="Officer role is not required by the stage."),
            409: OpenApiResponse(description="Already assigned."),
        },
        tags=["Assignments"],
    )
    @action(detail=False, methods=["post"], url_path="claim")
    def claim(self, request: Request) -> Response:
        serializer = ClaimSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        record = AssignmentService.claim(
            serializer.validated_data["application_id"],
            serializer.validated_data["stage"],
            request.user,
        )
        return Response(AssignmentRecordSerializer(record).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Assignment history",
        parameters=[
            OpenApiParameter(name="application", type=int, location=OpenApiParameter.QUERY, required=True),
        ],
        responses={200: OpenApiResponse(response=AssignmentRecordSerializer(many=True))},
        tags=["Assignments"],
    )
    @action(detail=False, methods=["get"], url_path="history")
    def history(self, request: Request) -> Response:
        query = HistoryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        records = AssignmentService.list_history(request.user, query.validated_data["application"])
        return Response(AssignmentRecordSerializer(records, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Applications needing manual assignment",
        responses={200: OpenApiResponse(response=UnassignedApplicationSerializer(many=True))},
        tags=["Assignments"],
    )
    @action(detail=False, methods=["get"], url_path="unassigned")
    def unassigned(self, request: Request) -> Response:
        qs = AssignmentService.list_unassigned(request.user)
        return Response(UnassignedApplicationSerializer(qs, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Overdue assignments",
        description="Open assignments older than `hours` (default: the configured delay threshold).",
        parameters=[
            OpenApiParameter(name="hours", type=int, location=OpenApiParameter.QUERY),
        ],
        responses={200: OpenApiResponse(response=AssignmentRecordSerializer(many=True))},
        tags=["Assignments"],
    )
    @action(detail=False, methods=["get"], url_path="overdue")
    def overdue(self, request: Request) -> Response:
        require_permission(request.user, f"assignments.{AssignmentsPerms.CAN_VIEW_WORKLOAD}")
        query = OverdueQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        records = AssignmentService.find_overdue_assignments(query.validated_data.get("hours"))
        return Response(AssignmentRecordSerializer(records, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Escalation candidates",
        description="Open assignments waiting longer than their rule's escalation time. Nothing is reassigned.",
        responses={200: OpenApiResponse(response=EscalationCandidateSerializer(many=True))},
        tags=["Assignments"],
    )
    @action(detail=False, methods=["get"], url_path="escalations")
    def escalations(self, request: Request) -> Response:
        require_permission(request.user, f"assignments.{AssignmentsPerms.CAN_VIEW_WORKLOAD}")
        candidates = AssignmentService.escalation_candidates()
        return Response(EscalationCandidateSerializer(candidates, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Officer workload",
        parameters=[
            OpenApiParameter(name="role", type=str, location=OpenApiParameter.QUERY),
        ],
        responses={200: OpenApiResponse(response=WorkloadRowSerializer(many=True))},
        tags=["Assignments"],
    )
    @action(detail=False, methods=["get"], url_path="workload")
    def workload(self, request: Request) -> Response:
        query = WorkloadQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        rows = AssignmentService.workload_summary(request.user, role=query.validated_data.get("role"))
        return Response(WorkloadRowSerializer(rows, many=True).data, status=status.HTTP_200_OK)


class AutoAssignmentRuleViewSet(viewsets.ViewSet):
    """CRUD for auto-assignment rules.  ``DELETE`` deactivates the rule."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List assignment rules",
        responses={200: OpenApiResponse(response=AutoAssignmentRuleSerializer(many=True))},
        tags=["Assignments – Rules"],
    )
    def list(self, request: Request) -> Response:
        rules = AssignmentRuleService.list_rules(request.user, {
            "target_role": request.query_params.get("target_role"),
        })
        return Response(AutoAssignmentRuleSerializer(rules, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Create an assignment rule",
        request=AutoAssignmentRuleSerializer,
        responses={201: OpenApiResponse(response=AutoAssignmentRuleSerializer)},
        tags=["Assignments – Rules"],
    )
    def create(self, request: Request) -> Response:
        serializer = AutoAssignmentRuleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        rule = AssignmentRuleService.create_rule(request.user, serializer.validated_data)
        return Response(AutoAssignmentRuleSerializer(rule).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        summary="Retrieve an assignment rule",
        responses={200: OpenApiResponse(response=AutoAssignmentRuleSerializer)},
        tags=["Assignments – Rules"],
    )
    def retrieve(self, request: Request, pk: int = None) -> Response:
        rule = AssignmentRuleService.get_rule(request.user, pk)
        return Response(AutoAssignmentRuleSerializer(rule).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Update an assignment rule",
        request=AutoAssignmentRuleSerializer,
        responses={200: OpenApiResponse(response=AutoAssignmentRuleSerializer)},
        tags=["Assignments – Rules"],
    )
    def partial_update(self, request: Request, pk: int = None) -> Response:
        rule = AssignmentRuleService.get_rule(request.user, pk)
        serializer = AutoAssignmentRuleSerializer(rule, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        rule = AssignmentRuleService.update_rule(request.user, rule.pk, serializer.validated_data)
        return Response(AutoAssignmentRuleSerializer(rule).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Deactivate an assignment rule",
        responses={200: OpenApiResponse(response=AutoAssignmentRuleSerializer)},
        tags=["Assignments – Rules"],
    )
    def destroy(self, request: Request, pk: int = None) -> Response:
        rule = AssignmentRuleService.deactivate_rule(request.user, pk)
        return Response(AutoAssignmentRuleSerializer(rule).data, status=status.HTTP_200_OK)

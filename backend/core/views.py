"""
Core app views — **Thin Views**.

Each view delegates all business logic to the corresponding service in
``core.services``.  Views are responsible only for:

1. Extracting path / query parameters from the request.
2. Calling the service with the authenticated user and parameters.
3. Serialising the result and returning an HTTP ``Response``.

No model imports, no aggregation logic, no cross-app queries.
"""

from __future__ import annotations

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
)

from .serializers import (
    MarkAllReadResponseSerializer,
    NotificationSerializer,
    PositionSummarySerializer,
    StageApplicationSerializer,
    StageSummarySerializer,
    SystemConstantsSerializer,
)
from .services import (
    NotificationInboxService,
    ReportingService,
    SystemConstantsService,
)


# ════════════════════════════════════════════════════════════════════
#  Reports
# ════════════════════════════════════════════════════════════════════

class ReportPositionsView(APIView):
    """
    **GET /api/core/reports/positions/**

    Top level of the report drill-down: one row per position type.

    **Authentication**: Required, plus ``core.can_view_reports``.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Report: positions",
        description="Application totals per position type.",
        responses={
            200: OpenApiResponse(response=PositionSummarySerializer(many=True), description="Position rows."),
            403: OpenApiResponse(description="Missing the reports permission."),
        },
        tags=["Reports"],
    )
    def get(self, request: Request) -> Response:
        rows = ReportingService(request.user).position_summaries()
        return Response(PositionSummarySerializer(rows, many=True).data, status=status.HTTP_200_OK)


class ReportStagesView(APIView):
    """
    **GET /api/core/reports/positions/{position_type}/stages/**

    Second level: per-stage counts for one position type.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Report: stages of a position type",
        responses={
            200: OpenApiResponse(response=StageSummarySerializer(many=True), description="Stage rows."),
            404: OpenApiResponse(description="Unknown position type."),
        },
        tags=["Reports"],
    )
    def get(self, request: Request, position_type: str) -> Response:
        rows = ReportingService(request.user).stage_summaries(position_type)
        return Response(StageSummarySerializer(rows, many=True).data, status=status.HTTP_200_OK)


class ReportApplicationsView(APIView):
    """
    **GET /api/core/reports/positions/{position_type}/stages/{stage}/applications/**

    Third level: the applications currently sitting at one stage.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Report: applications at a stage",
        responses={
            200: OpenApiResponse(response=StageApplicationSerializer(many=True), description="Applications."),
            404: OpenApiResponse(description="Unknown position type or stage."),
        },
        tags=["Reports"],
    )
    def get(self, request: Request, position_type: str, stage: str) -> Response:
        rows = ReportingService(request.user).applications_at_stage(position_type, stage)
        return Response(StageApplicationSerializer(rows, many=True).data, status=status.HTTP_200_OK)


# ════════════════════════════════════════════════════════════════════
#  System Constants
# ════════════════════════════════════════════════════════════════════

class SystemConstantsView(APIView):
    """
    **GET /api/core/constants/**

    Return all system-wide choice enumerations, the pipeline and the
    role hierarchy so the frontend can build dropdowns, filters and
    labels without hardcoding values.

    **Authentication**: Not required (``AllowAny``).
    These constants are public configuration data.
    """

    permission_classes = [AllowAny]

    @extend_schema(
        summary="System constants",
        description=(
            "Return all system-wide choice enumerations, the stage pipeline "
            "and the role hierarchy."
        ),
        responses={200: OpenApiResponse(response=SystemConstantsSerializer, description="System constants.")},
        tags=["System"],
    )
    def get(self, request: Request) -> Response:
        data = SystemConstantsService.get_constants()
        serializer = SystemConstantsSerializer(data)
        return Response(serializer.data, status=status.HTTP_200_OK)


# ════════════════════════════════════════════════════════════════════
#  Notifications
# ════════════════════════════════════════════════════════════════════

class NotificationViewSet(viewsets.ViewSet):
    """
    **Notification API**: list and mark-as-read for the authenticated user.

    Endpoints
    ---------
    GET  /api/core/notifications/              → list notifications
    POST /api/core/notifications/{id}/read/    → mark one as read
    POST /api/core/notifications/read-all/     → mark all as read
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List notifications",
        description="Return the notifications of the authenticated user, most recent first.",
        parameters=[
            OpenApiParameter(
                name="unread",
                type=bool,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Only return unread notifications.",
            ),
        ],
        responses={200: OpenApiResponse(response=NotificationSerializer(many=True), description="Notification list.")},
        tags=["Notifications"],
    )
    def list(self, request: Request) -> Response:
        unread_only = request.query_params.get("unread", "").lower() in ("1", "true", "yes")
        service = NotificationInboxService(user=request.user)
        notifications = service.list_notifications(unread_only=unread_only)
        serializer = NotificationSerializer(notifications, many=True)
        return Response(serializer.data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Mark notification as read",
        request=None,
        responses={
            200: OpenApiResponse(response=NotificationSerializer, description="Updated notification."),
            404: OpenApiResponse(description="Not one of your notifications."),
        },
        tags=["Notifications"],
    )
    @action(detail=True, methods=["post"], url_path="read")
    def mark_as_read(self, request: Request, pk: str = None) -> Response:
        service = NotificationInboxService(user=request.user)
        notification = service.mark_as_read(notification_id=pk)
        serializer = NotificationSerializer(notification)
        return Response(serializer.data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Mark all notifications as read",
        request=None,
        responses={200: OpenApiResponse(response=MarkAllReadResponseSerializer)},
        tags=["Notifications"],
    )
    @action(detail=False, methods=["post"], url_path="read-all")
    def mark_all_as_read(self, request: Request) -> Response:
        updated = NotificationInboxService(user=request.user).mark_all_as_read()
        return Response({"updated": updated}, status=status.HTTP_200_OK)

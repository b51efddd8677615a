"""
Applications app ViewSets.

Architecture: Views are intentionally thin.
Every view follows the strict three-step pattern:

    1. Parse / validate input via a serializer.
    2. Delegate all business logic to the appropriate service class.
    3. Serialize the result and return a DRF ``Response``.

ViewSets
--------
- ``PositionApplicationViewSet`` — CRUD-lite plus the workflow @actions
  (submit, resubmit, transition, workflow-status, outcomes, documents).
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
    ApplicationCreateSerializer,
    ApplicationDetailSerializer,
    ApplicationDocumentSerializer,
    ApplicationFilterSerializer,
    ApplicationListSerializer,
    DocumentCreateSerializer,
    DocumentVerifySerializer,
    ResubmitSerializer,
    StageOutcomeSerializer,
    TransitionResultSerializer,
    TransitionSerializer,
    WorkflowStatusSerializer,
)
from .services import (
    ApplicationCreationService,
    ApplicationQueryService,
    DocumentVerificationService,
    WorkflowService,
    WorkflowStatusService,
)

logger = logging.getLogger(__name__)


class PositionApplicationViewSet(viewsets.ViewSet):
    """
    Central ViewSet for the applications app.

    The base permission is ``IsAuthenticated``.  Who may act on a stage
    (role code plus active assignment) is enforced inside
    ``WorkflowService``, never in the view.
    """

    permission_classes = [IsAuthenticated]

    # ── Standard CRUD ────────────────────────────────────────────────

    @extend_schema(
        summary="List applications",
        description=(
            "List applications visible to the user: those in the officer's "
            "permission scope plus the user's own applications."
        ),
        parameters=[
            OpenApiParameter(name="position_type", type=str, location=OpenApiParameter.QUERY, description="Filter by position type."),
            OpenApiParameter(name="current_stage", type=str, location=OpenApiParameter.QUERY, description="Filter by current stage."),
            OpenApiParameter(name="needs_manual_assignment", type=bool, location=OpenApiParameter.QUERY, description="Only flagged / unflagged applications."),
        ],
        responses={200: OpenApiResponse(response=ApplicationListSerializer(many=True))},
        tags=["Applications"],
    )
    def list(self, request: Request) -> Response:
        filter_serializer = ApplicationFilterSerializer(data=request.query_params)
        filter_serializer.is_valid(raise_exception=True)
        qs = ApplicationQueryService.get_filtered_queryset(
            request.user, filter_serializer.validated_data,
        )
        return Response(ApplicationListSerializer(qs, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Create an application",
        description="Create a position-licence application in the Submitted stage.",
        request=ApplicationCreateSerializer,
        responses={201: OpenApiResponse(response=ApplicationDetailSerializer, description="Application created.")},
        tags=["Applications"],
    )
    def create(self, request: Request) -> Response:
        serializer = ApplicationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        application = ApplicationCreationService.create_application(
            applicant=request.user,
            validated_data=serializer.validated_data,
        )
        return Response(ApplicationDetailSerializer(application).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        summary="Retrieve an application",
        responses={
            200: OpenApiResponse(response=ApplicationDetailSerializer),
            404: OpenApiResponse(description="Not found or not visible."),
        },
        tags=["Applications"],
    )
    def retrieve(self, request: Request, pk: int = None) -> Response:
        application = ApplicationQueryService.get_application(pk, request.user)
        return Response(ApplicationDetailSerializer(application).data, status=status.HTTP_200_OK)

    # ── Workflow @actions ────────────────────────────────────────────

    @extend_schema(
        summary="Submit application",
        description="Applicant submits the application. Submitted → Junior Engineer Review.",
        request=None,
        responses={
            200: OpenApiResponse(response=ApplicationDetailSerializer),
            403: OpenApiResponse(description="Not the applicant."),
            409: OpenApiResponse(description="Already submitted."),
        },
        tags=["Applications – Workflow"],
    )
    @action(detail=True, methods=["post"], url_path="submit")
    def submit(self, request: Request, pk: int = None) -> Response:
        application = WorkflowService.submit(int(pk), request.user)
        return Response(ApplicationDetailSerializer(application).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Resubmit rejected application",
        description="Applicant resubmits a rejected application. It returns to the rejecting stage with a new attempt.",
        request=ResubmitSerializer,
        responses={
            200: OpenApiResponse(response=ApplicationDetailSerializer),
            409: OpenApiResponse(description="Application is not rejected."),
        },
        tags=["Applications – Workflow"],
    )
    @action(detail=True, methods=["post"], url_path="resubmit")
    def resubmit(self, request: Request, pk: int = None) -> Response:
        serializer = ResubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        application = WorkflowService.resubmit(
            int(pk), request.user, comments=serializer.validated_data["comments"],
        )
        return Response(ApplicationDetailSerializer(application).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Decide a stage",
        description=(
            "Approve or reject the stage the officer is assigned to. "
            "Approval advances the application once every required reviewer "
            "of the stage has approved; rejection ends it immediately."
        ),
        request=TransitionSerializer,
        responses={
            200: OpenApiResponse(response=TransitionResultSerializer, description="Outcome recorded."),
            400: OpenApiResponse(description="Invalid decision, missing reason, documents or signature."),
            403: OpenApiResponse(description="Officer role or assignment does not match the stage."),
            409: OpenApiResponse(description="Stale stage or sub-review already decided."),
        },
        tags=["Applications – Workflow"],
    )
    @action(detail=True, methods=["post"], url_path="transition")
    def transition(self, request: Request, pk: int = None) -> Response:
        serializer = TransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        outcome = WorkflowService.transition(
            application_id=int(pk),
            stage=data["stage"],
            decision=data["decision"],
            officer=request.user,
            comments=data["comments"],
        )
        payload = TransitionResultSerializer({
            "outcome": outcome,
            "application": outcome.application,
        }).data
        return Response(payload, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Workflow status",
        description="Current stage, progress, assigned officers, sub-review states and the pending action.",
        responses={200: OpenApiResponse(response=WorkflowStatusSerializer)},
        tags=["Applications – Workflow"],
    )
    @action(detail=True, methods=["get"], url_path="workflow-status")
    def workflow_status(self, request: Request, pk: int = None) -> Response:
        application = ApplicationQueryService.get_application(pk, request.user)
        data = WorkflowStatusService.get_status(application)
        return Response(WorkflowStatusSerializer(data).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Stage ledger",
        description="Every recorded stage outcome of the application, oldest first.",
        responses={200: OpenApiResponse(response=StageOutcomeSerializer(many=True))},
        tags=["Applications – Workflow"],
    )
    @action(detail=True, methods=["get"], url_path="outcomes")
    def outcomes(self, request: Request, pk: int = None) -> Response:
        application = ApplicationQueryService.get_application(pk, request.user)
        qs = WorkflowStatusService.get_outcomes(application)
        return Response(StageOutcomeSerializer(qs, many=True).data, status=status.HTTP_200_OK)

    # ── Documents ────────────────────────────────────────────────────

    @extend_schema(
        methods=["GET"],
        summary="List documents",
        responses={200: OpenApiResponse(response=ApplicationDocumentSerializer(many=True))},
        tags=["Applications – Documents"],
    )
    @extend_schema(
        methods=["POST"],
        summary="Register a document",
        description="Applicant registers the storage path of an uploaded document.",
        request=DocumentCreateSerializer,
        responses={201: OpenApiResponse(response=ApplicationDocumentSerializer)},
        tags=["Applications – Documents"],
    )
    @action(detail=True, methods=["get", "post"], url_path="documents")
    def documents(self, request: Request, pk: int = None) -> Response:
        if request.method == "GET":
            application = ApplicationQueryService.get_application(pk, request.user)
            return Response(
                ApplicationDocumentSerializer(application.documents.all(), many=True).data,
                status=status.HTTP_200_OK,
            )
        serializer = DocumentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        document = DocumentVerificationService.add_document(
            int(pk), request.user, **serializer.validated_data,
        )
        return Response(ApplicationDocumentSerializer(document).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        summary="Verify a document",
        description="The assigned Junior Engineer approves, rejects or requests resubmission of a document.",
        request=DocumentVerifySerializer,
        responses={
            200: OpenApiResponse(response=ApplicationDocumentSerializer),
            403: OpenApiResponse(description="Not the assigned Junior Engineer."),
        },
        tags=["Applications – Documents"],
    )
    @action(
        detail=True,
        methods=["post"],
        url_path=r"documents/(?P<document_pk>[^/.]+)/verify",
    )
    def verify_document(self, request: Request, pk: int = None, document_pk: int = None) -> Response:
        serializer = DocumentVerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        document = DocumentVerificationService.verify_document(
            int(pk),
            int(document_pk),
            request.user,
            status=serializer.validated_data["status"],
            comments=serializer.validated_data["comments"],
        )
        return Response(ApplicationDocumentSerializer(document).data, status=status.HTTP_200_OK)

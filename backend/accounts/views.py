"""
Accounts app views.

All views follow the **Thin View** pattern: validate input via
serializers, delegate to the service layer, and return the result
wrapped in a DRF ``Response``.  **No business logic** resides here.

View Map
--------
- ``MeView``            — GET /me/
- ``OfficerViewSet``    — /officers/  (list, create, partial_update,
                          activate, deactivate)
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import (
    MeSerializer,
    OfficerCreateSerializer,
    OfficerFilterSerializer,
    OfficerListSerializer,
    OfficerUpdateSerializer,
    UserDetailSerializer,
)
from .services import CurrentUserService, OfficerDirectoryService


# ═══════════════════════════════════════════════════════════════════
#  Current User
# ═══════════════════════════════════════════════════════════════════


class MeView(APIView):
    """
    GET /api/accounts/me/ → the authenticated user's profile.

    Includes the role, the officer role code and a flat permissions
    list so the frontend can render its modules conditionally.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Current user profile",
        responses={200: OpenApiResponse(response=MeSerializer)},
        tags=["Accounts"],
    )
    def get(self, request: Request) -> Response:
        user = CurrentUserService.get_profile(request.user)
        serializer = MeSerializer(
            user,
            context={"open_assignments": CurrentUserService.get_open_assignments(user)},
        )
        return Response(serializer.data, status=status.HTTP_200_OK)


# ═══════════════════════════════════════════════════════════════════
#  Officer Directory ViewSet
# ═══════════════════════════════════════════════════════════════════


class OfficerViewSet(viewsets.ViewSet):
    """
    /api/accounts/officers/

    Officer listing, onboarding, profile updates and activation.  All heavy lifting is delegated to
    ``OfficerDirectoryService``.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List officers",
        parameters=[
            OpenApiParameter(name="role", type=str, location=OpenApiParameter.QUERY, required=False,
                             description="Officer role code."),
            OpenApiParameter(name="is_active", type=bool, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="search", type=str, location=OpenApiParameter.QUERY, required=False),
        ],
        responses={
            200: OpenApiResponse(response=OfficerListSerializer(many=True)),
            403: OpenApiResponse(description="Missing the directory permission."),
        },
        tags=["Accounts"],
    )
    def list(self, request: Request) -> Response:
        filters = OfficerFilterSerializer(data=request.query_params)
        filters.is_valid(raise_exception=True)
        officers = list(
            OfficerDirectoryService.list_officers(request.user, **filters.validated_data)
        )
        serializer = OfficerListSerializer(
            officers,
            many=True,
            context={"workloads": OfficerDirectoryService.open_workloads(officers)},
        )
        return Response(serializer.data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Create an officer",
        request=OfficerCreateSerializer,
        responses={
            201: OpenApiResponse(response=UserDetailSerializer),
            400: OpenApiResponse(description="Validation error, e.g. a duplicate employee ID."),
            403: OpenApiResponse(description="Missing permission or the role outranks the requester."),
        },
        tags=["Accounts"],
    )
    def create(self, request: Request) -> Response:
        serializer = OfficerCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        officer = OfficerDirectoryService.create_officer(request.user, serializer.validated_data)
        return Response(UserDetailSerializer(officer).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        summary="Update an officer",
        description="Profile fields and, while the officer holds no open assignments, the role.",
        request=OfficerUpdateSerializer,
        responses={
            200: OpenApiResponse(response=UserDetailSerializer),
            400: OpenApiResponse(description="Validation error or a role change with open assignments."),
        },
        tags=["Accounts"],
    )
    def partial_update(self, request: Request, pk: str = None) -> Response:
        officer = OfficerDirectoryService.get_officer(int(pk), request.user)
        serializer = OfficerUpdateSerializer(officer, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        officer = OfficerDirectoryService.update_officer(
            officer.pk, request.user, serializer.validated_data,
        )
        return Response(UserDetailSerializer(officer).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Activate an officer",
        request=None,
        responses={200: OpenApiResponse(response=UserDetailSerializer)},
        tags=["Accounts"],
    )
    @action(detail=True, methods=["patch"], url_path="activate")
    def activate(self, request: Request, pk: str = None) -> Response:
        officer = OfficerDirectoryService.activate_officer(int(pk), performed_by=request.user)
        return Response(UserDetailSerializer(officer).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Deactivate an officer",
        description="The officer stops receiving assignments and can no longer act on stages.",
        request=None,
        responses={200: OpenApiResponse(response=UserDetailSerializer)},
        tags=["Accounts"],
    )
    @action(detail=True, methods=["patch"], url_path="deactivate")
    def deactivate(self, request: Request, pk: str = None) -> Response:
        officer = OfficerDirectoryService.deactivate_officer(int(pk), performed_by=request.user)
        return Response(UserDetailSerializer(officer).data, status=status.HTTP_200_OK)

"""
Formconfigs app ViewSets.

Thin views over ``FormConfigurationService``.

ViewSets
--------
- ``FormConfigurationViewSet`` — form CRUD (destroy deactivates) and the
                                 ``fees`` fee-schedule action.
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from .serializers import (
    FeeScheduleSerializer,
    FormConfigurationDetailSerializer,
    FormConfigurationSerializer,
    FormFilterSerializer,
)
from .services import FormConfigurationService


class FormConfigurationViewSet(viewsets.ViewSet):
    """/api/forms/  Form configurations and fee schedules."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List form configurations",
        description="Users without the form permissions only see active forms.",
        parameters=[
            OpenApiParameter(name="is_active", type=bool, location=OpenApiParameter.QUERY, required=False),
        ],
        responses={200: OpenApiResponse(response=FormConfigurationSerializer(many=True))},
        tags=["Forms"],
    )
    def list(self, request: Request) -> Response:
        filters = FormFilterSerializer(data=request.query_params)
        filters.is_valid(raise_exception=True)
        forms = FormConfigurationService.list_forms(request.user, **filters.validated_data)
        return Response(FormConfigurationSerializer(forms, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Create a form configuration",
        request=FormConfigurationSerializer,
        responses={
            201: OpenApiResponse(response=FormConfigurationDetailSerializer),
            400: OpenApiResponse(description="Validation error or the position type already has a form."),
        },
        tags=["Forms"],
    )
    def create(self, request: Request) -> Response:
        serializer = FormConfigurationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        form = FormConfigurationService.create_form(request.user, serializer.validated_data)
        form = FormConfigurationService.get_form(request.user, form.pk)
        return Response(FormConfigurationDetailSerializer(form).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        summary="Retrieve a form configuration",
        responses={200: OpenApiResponse(response=FormConfigurationDetailSerializer)},
        tags=["Forms"],
    )
    def retrieve(self, request: Request, pk: int = None) -> Response:
        form = FormConfigurationService.get_form(request.user, pk)
        return Response(FormConfigurationDetailSerializer(form).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Update a form configuration",
        description="A change of the base or processing fee is recorded in the fee history.",
        request=FormConfigurationSerializer,
        responses={200: OpenApiResponse(response=FormConfigurationDetailSerializer)},
        tags=["Forms"],
    )
    def partial_update(self, request: Request, pk: int = None) -> Response:
        form = FormConfigurationService.get_form(request.user, pk)
        serializer = FormConfigurationSerializer(form, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        FormConfigurationService.update_form(request.user, form.pk, serializer.validated_data)
        form = FormConfigurationService.get_form(request.user, form.pk)
        return Response(FormConfigurationDetailSerializer(form).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Deactivate a form configuration",
        responses={200: OpenApiResponse(response=FormConfigurationSerializer)},
        tags=["Forms"],
    )
    def destroy(self, request: Request, pk: int = None) -> Response:
        form = FormConfigurationService.deactivate_form(request.user, pk)
        return Response(FormConfigurationSerializer(form).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Set the fee schedule of a form",
        description="Always records a fee history entry, effective now unless ``effective_from`` is given.",
        request=FeeScheduleSerializer,
        responses={200: OpenApiResponse(response=FormConfigurationDetailSerializer)},
        tags=["Forms"],
    )
    @action(detail=True, methods=["put"], url_path="fees")
    def fees(self, request: Request, pk: int = None) -> Response:
        serializer = FeeScheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        FormConfigurationService.update_fees(request.user, pk, serializer.validated_data)
        form = FormConfigurationService.get_form(request.user, pk)
        return Response(FormConfigurationDetailSerializer(form).data, status=status.HTTP_200_OK)

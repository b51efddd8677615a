"""
Signatures app ViewSets.

ViewSets
--------
- ``DigitalSignatureViewSet`` — audit list, ``generate-otp`` and
  ``apply`` actions.
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

from .models import SignatureStatus
from .serializers import (
    ApplySignatureSerializer,
    DigitalSignatureSerializer,
    GenerateOtpSerializer,
    SignatureQuerySerializer,
)
from .services import SignatureService

logger = logging.getLogger(__name__)


class DigitalSignatureViewSet(viewsets.ViewSet):
    """OTP-based digital signing of stage documents through the HSM."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Signature audit trail",
        parameters=[
            OpenApiParameter(name="application", type=int, location=OpenApiParameter.QUERY, required=True),
        ],
        responses={200: OpenApiResponse(response=DigitalSignatureSerializer(many=True))},
        tags=["Signatures"],
    )
    def list(self, request: Request) -> Response:
        query = SignatureQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        qs = SignatureService.list_signatures(request.user, query.validated_data["application"])
        return Response(DigitalSignatureSerializer(qs, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Request an OTP",
        description="The officer assigned to the stage asks the HSM to send a signing OTP.",
        request=GenerateOtpSerializer,
        responses={
            200: OpenApiResponse(response=DigitalSignatureSerializer, description="OTP issued."),
            409: OpenApiResponse(description="An OTP is already outstanding."),
            429: OpenApiResponse(description="Cooldown after failed attempts."),
            503: OpenApiResponse(description="HSM unavailable."),
        },
        tags=["Signatures"],
    )
    @action(detail=False, methods=["post"], url_path="generate-otp")
    def generate_otp(self, request: Request) -> Response:
        serializer = GenerateOtpSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        record = SignatureService.generate_otp(
            data["application_id"], data["stage"], request.user,
            document_path=data["document_path"],
        )
        return Response(DigitalSignatureSerializer(record).data, status=status.HTTP_200_OK)

    @extend_schema(
        summary="Apply a signature",
        description=(
            "Submit the OTP. Returns 200 when signed; 400 with the updated "
            "record when the OTP was wrong or the HSM refused to sign."
        ),
        request=ApplySignatureSerializer,
        responses={
            200: OpenApiResponse(response=DigitalSignatureSerializer, description="Signed."),
            400: OpenApiResponse(response=DigitalSignatureSerializer, description="Wrong OTP or signing failed."),
            410: OpenApiResponse(description="OTP expired."),
            429: OpenApiResponse(description="Attempts exhausted."),
            503: OpenApiResponse(description="HSM unavailable."),
        },
        tags=["Signatures"],
    )
    @action(detail=False, methods=["post"], url_path="apply")
    def apply(self, request: Request) -> Response:
        serializer = ApplySignatureSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        record = SignatureService.apply_signature(
            data["application_id"], data["stage"], request.user,
            otp=data["otp"],
            document_path=data["document_path"],
        )
        http_status = (
            status.HTTP_200_OK if record.status == SignatureStatus.SIGNED
            else status.HTTP_400_BAD_REQUEST
        )
        return Response(DigitalSignatureSerializer(record).data, status=http_status)

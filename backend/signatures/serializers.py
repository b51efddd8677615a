"""
Signatures app serializers.
"""

from __future__ import annotations

from rest_framework import serializers

from applications.models import Stage
from core.constants import pmcrms_setting

from .models import DigitalSignature


class GenerateOtpSerializer(serializers.Serializer):
    application_id = serializers.IntegerField(min_value=1)
    stage = serializers.ChoiceField(choices=Stage.choices)
    document_path = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class ApplySignatureSerializer(serializers.Serializer):
    application_id = serializers.IntegerField(min_value=1)
    stage = serializers.ChoiceField(choices=Stage.choices)
    otp = serializers.RegexField(regex=r"^\d{4,8}$", help_text="The OTP received on the officer's mobile.")
    document_path = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class SignatureQuerySerializer(serializers.Serializer):
    application = serializers.IntegerField(min_value=1)


class DigitalSignatureSerializer(serializers.ModelSerializer):
    officer_name = serializers.CharField(source="officer.get_full_name", read_only=True)
    remaining_attempts = serializers.SerializerMethodField()

    class Meta:
        model = DigitalSignature
        fields = [
            "id",
            "application",
            "stage",
            "officer",
            "officer_name",
            "role",
            "attempt_number",
            "status",
            "otp_attempts",
            "remaining_attempts",
            "otp_issued_at",
            "otp_expires_at",
            "hsm_transaction_id",
            "key_label",
            "original_document_path",
            "signed_document_path",
            "signed_at",
            "failed_at",
            "failure_reason",
            "created_at",
        ]
        read_only_fields = fields

    def get_remaining_attempts(self, obj) -> int:
        return max(pmcrms_setting("OTP_MAX_ATTEMPTS") - obj.otp_attempts, 0)

"""
Formconfigs app serializers.
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from applications.models import PositionType

from .models import FormConfiguration, FormFeeHistory

_FEE = {"max_digits": 12, "decimal_places": 2, "min_value": Decimal("0")}


class CustomFieldSerializer(serializers.Serializer):
    FIELD_TYPES = ("text", "number", "date", "dropdown", "file")

    field_name = serializers.CharField(max_length=100)
    field_type = serializers.ChoiceField(choices=FIELD_TYPES)
    is_required = serializers.BooleanField(default=False)
    label = serializers.CharField(max_length=200, required=False, allow_blank=True)
    placeholder = serializers.CharField(max_length=200, required=False, allow_blank=True)
    options = serializers.ListField(child=serializers.CharField(max_length=200), required=False)
    validation_rule = serializers.CharField(max_length=200, required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs["field_type"] == "dropdown" and not attrs.get("options"):
            raise serializers.ValidationError({"options": "Dropdown fields need at least one option."})
        return attrs


class FormFilterSerializer(serializers.Serializer):
    is_active = serializers.BooleanField(required=False, allow_null=True, default=None)


class FormFeeHistorySerializer(serializers.ModelSerializer):
    changed_by_name = serializers.CharField(source="changed_by.get_full_name", read_only=True, default=None)

    class Meta:
        model = FormFeeHistory
        fields = [
            "id",
            "old_base_fee",
            "new_base_fee",
            "old_processing_fee",
            "new_processing_fee",
            "effective_from",
            "changed_by",
            "changed_by_name",
            "change_reason",
            "created_at",
        ]
        read_only_fields = fields


class FormConfigurationSerializer(serializers.ModelSerializer):
    """
    Create / update input and list output.  ``change_reason`` is only
    recorded when the update changes a fee.
    """

    position_type = serializers.ChoiceField(choices=PositionType.choices)
    custom_fields = CustomFieldSerializer(many=True, required=False)
    required_documents = serializers.ListField(
        child=serializers.CharField(max_length=100), required=False,
    )
    total_fee = serializers.DecimalField(max_digits=13, decimal_places=2, read_only=True)
    change_reason = serializers.CharField(max_length=500, write_only=True, required=False, allow_blank=True)

    class Meta:
        model = FormConfiguration
        fields = [
            "id",
            "form_name",
            "position_type",
            "description",
            "base_fee",
            "processing_fee",
            "late_fee",
            "total_fee",
            "is_active",
            "allow_online_submission",
            "processing_days",
            "custom_fields",
            "required_documents",
            "max_file_size_mb",
            "max_files_allowed",
            "change_reason",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "total_fee", "created_at", "updated_at"]

    def validate_position_type(self, value):
        if self.instance is not None and value != self.instance.position_type:
            raise serializers.ValidationError("The position type of a form cannot change.")
        return value

    def validate(self, attrs):
        if self.instance is None:
            attrs.pop("change_reason", None)
        return attrs


class FormConfigurationDetailSerializer(FormConfigurationSerializer):
    fee_history = FormFeeHistorySerializer(many=True, read_only=True)

    class Meta(FormConfigurationSerializer.Meta):
        fields = [*FormConfigurationSerializer.Meta.fields, "fee_history"]
        read_only_fields = [*FormConfigurationSerializer.Meta.read_only_fields, "fee_history"]


class FeeScheduleSerializer(serializers.Serializer):
    """Input of ``PUT /forms/{id}/fees/``."""

    base_fee = serializers.DecimalField(**_FEE)
    processing_fee = serializers.DecimalField(**_FEE)
    late_fee = serializers.DecimalField(**_FEE, required=False, allow_null=True, default=None)
    effective_from = serializers.DateTimeField(required=False, allow_null=True, default=None)
    change_reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")

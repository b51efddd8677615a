"""
Accounts app serializers.

Serializers for the officer directory and the current-user profile.
Token issuance uses simplejwt's stock ``TokenObtainPairSerializer``.
"""

from __future__ import annotations

from django.contrib.auth import password_validation
from rest_framework import serializers

from .models import OfficerRole, Role, User


# ═══════════════════════════════════════════════════════════════════
#  Role Serializers
# ═══════════════════════════════════════════════════════════════════


class RoleListSerializer(serializers.ModelSerializer):
    """
    Lightweight role representation (no permissions detail).
    """

    class Meta:
        model = Role
        fields = ["id", "name", "code", "description", "hierarchy_level"]
        read_only_fields = fields


# ═══════════════════════════════════════════════════════════════════
#  Officer Serializers
# ═══════════════════════════════════════════════════════════════════


class OfficerFilterSerializer(serializers.Serializer):
    """Query parameters of ``GET /api/accounts/officers/``."""

    role = serializers.ChoiceField(choices=OfficerRole.choices, required=False)
    is_active = serializers.BooleanField(required=False, allow_null=True, default=None)
    search = serializers.CharField(required=False, allow_blank=True)


class OfficerListSerializer(serializers.ModelSerializer):
    """
    Officer row for the directory listing.  ``open_assignments`` comes
    from the ``workloads`` dict passed in the serializer context.
    """

    role_name = serializers.CharField(source="role.name", read_only=True, default=None)
    role_code = serializers.CharField(source="role.code", read_only=True, default=None)
    full_name = serializers.CharField(source="get_full_name", read_only=True)
    open_assignments = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "full_name",
            "employee_id",
            "department",
            "email",
            "phone_number",
            "is_active",
            "role",
            "role_name",
            "role_code",
            "open_assignments",
        ]
        read_only_fields = fields

    def get_open_assignments(self, obj: User) -> int:
        return self.context.get("workloads", {}).get(obj.pk, 0)


class OfficerCreateSerializer(serializers.ModelSerializer):
    """
    Input of ``POST /api/accounts/officers/``.  ``role`` is an
    ``OfficerRole`` code; the service resolves it to the ``Role`` row.
    """

    role = serializers.ChoiceField(choices=OfficerRole.choices)
    password = serializers.CharField(write_only=True, style={"input_type": "password"})

    class Meta:
        model = User
        fields = [
            "username",
            "password",
            "email",
            "phone_number",
            "first_name",
            "last_name",
            "employee_id",
            "department",
            "hsm_key_label",
            "role",
        ]
        extra_kwargs = {
            "first_name": {"required": True, "allow_blank": False},
            "last_name": {"required": True, "allow_blank": False},
            "employee_id": {"required": True, "allow_null": False, "allow_blank": False},
        }

    def validate_password(self, value: str) -> str:
        password_validation.validate_password(value)
        return value


class OfficerUpdateSerializer(serializers.ModelSerializer):
    """Partial update of an officer's profile or role (``PATCH /officers/{id}/``)."""

    role = serializers.ChoiceField(choices=OfficerRole.choices, required=False)

    class Meta:
        model = User
        fields = [
            "email",
            "phone_number",
            "first_name",
            "last_name",
            "employee_id",
            "department",
            "hsm_key_label",
            "role",
        ]
        extra_kwargs = {
            "employee_id": {"allow_null": False, "allow_blank": False},
        }


class UserDetailSerializer(serializers.ModelSerializer):
    """
    Full user representation used by the "me" endpoint and the
    activate / deactivate responses.  Includes the nested role object
    and a flat permissions list consumed by the frontend to
    conditionally render UI components.

    ``permissions`` is a read-only flat list such as:
        ['applications.can_view_assigned_applications', ...]
    """

    role_detail = RoleListSerializer(source="role", read_only=True)
    officer_role = serializers.CharField(read_only=True, allow_null=True)
    permissions = serializers.ListField(
        child=serializers.CharField(),
        source="permissions_list",
        read_only=True,
        help_text="Flat list of 'app_label.codename' permission strings.",
    )

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "employee_id",
            "department",
            "phone_number",
            "first_name",
            "last_name",
            "is_active",
            "date_joined",
            "role",
            "role_detail",
            "officer_role",
            "permissions",
        ]
        read_only_fields = fields


class MeSerializer(UserDetailSerializer):
    open_assignments = serializers.SerializerMethodField()

    class Meta(UserDetailSerializer.Meta):
        fields = [*UserDetailSerializer.Meta.fields, "open_assignments"]
        read_only_fields = fields

    def get_open_assignments(self, obj: User) -> int:
        return self.context.get("open_assignments", 0)

"""
Accounts Service Layer.

Business logic for the officer directory.  Views must remain *thin*:
they validate input through serializers, call a service method, and
return the result wrapped in a DRF ``Response``.

Architecture
------------
- ``OfficerDirectoryService`` — officer listing, creation, profile and
                              role updates, activate / deactivate.
- ``CurrentUserService``      — "Me" endpoint helper.

Token issuance is the stock simplejwt obtain / refresh pair and needs
no service.
"""

from __future__ import annotations

import logging
from typing import Any

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q, QuerySet

from core.domain.access import require_permission
from core.domain.exceptions import DomainError, NotFound, PermissionDenied
from core.permissions_constants import AccountsPerms, AssignmentsPerms

from .models import OfficerRole, Role

logger = logging.getLogger(__name__)

User = get_user_model()

_MANAGE_USERS = f"accounts.{AccountsPerms.CAN_MANAGE_USERS}"
_VIEW_WORKLOAD = f"assignments.{AssignmentsPerms.CAN_VIEW_WORKLOAD}"


# ═══════════════════════════════════════════════════════════════════
#  Officer Directory Service
# ═══════════════════════════════════════════════════════════════════


class OfficerDirectoryService:
    """
    Listing, onboarding and activation of officers.

    Access Policies
    ---------------
    - Listing requires ``accounts.can_manage_users`` or
      ``assignments.can_view_workload`` (assignment managers pick
      officers from this list).
    - Creation, updates, activation and deactivation require
      ``accounts.can_manage_users``; the requester must outrank the
      target and any role being granted unless they are a superuser.
    """

    @staticmethod
    def list_officers(
        requested_by: User,
        *,
        role: str | None = None,
        is_active: bool | None = None,
        search: str | None = None,
    ) -> QuerySet[User]:
        """
        Return users holding an officer role.

        Parameters
        ----------
        requested_by : User
            The requesting user.
        role : str, optional
            ``OfficerRole`` code to filter by.
        is_active : bool, optional
            Filter by ``is_active`` status.
        search : str, optional
            Case-insensitive search across username, names and email.

        Raises
        ------
        PermissionDenied
            Missing both listing permissions.
        DomainError
            ``role`` is not an officer role code.
        """
        require_permission(
            requested_by, _MANAGE_USERS, _VIEW_WORKLOAD,
            message="You do not have permission to list officers.",
        )
        qs = (
            User.objects
            .select_related("role")
            .exclude(role__code__isnull=True)
            .exclude(role__code="")
        )

        if role:
            if role not in OfficerRole.values:
                raise DomainError(f"Unknown officer role '{role}'.")
            qs = qs.filter(role__code=role)
        if is_active is not None:
            qs = qs.filter(is_active=is_active)
        if search:
            qs = qs.filter(
                Q(username__icontains=search)
                | Q(email__icontains=search)
                | Q(first_name__icontains=search)
                | Q(last_name__icontains=search)
            )

        return qs.order_by("role__code", "id")

    @staticmethod
    def open_workloads(officers: list[User]) -> dict[int, int]:
        """``{officer_id: open assignment count}`` for the given officers."""
        from assignments.services import AssignmentService

        return AssignmentService._workloads([officer.pk for officer in officers])

    @staticmethod
    @transaction.atomic
    def create_officer(performed_by: User, validated_data: dict[str, Any]) -> User:
        """
        Create an active officer holding the ``OfficerRole`` in
        ``validated_data["role"]``.

        Raises
        ------
        PermissionDenied
            Missing ``accounts.can_manage_users``, or the requester does
            not outrank the role being granted.
        DomainError
            The role has not been set up (run ``setup_rbac``).
        """
        require_permission(
            performed_by, _MANAGE_USERS,
            message="You do not have permission to create officers.",
        )
        data = dict(validated_data)
        role = OfficerDirectoryService._grantable_role(data.pop("role"), performed_by)
        password = data.pop("password")
        officer = User.objects.create_user(role=role, password=password, **data)
        logger.info(
            "Officer %s (%s, %s) created by %s",
            officer.username, role.code, officer.employee_id, performed_by.username,
        )
        return officer

    @staticmethod
    def get_officer(user_id: int, performed_by: User) -> User:
        """The officer ``performed_by`` may manage, for pre-filling an update."""
        return OfficerDirectoryService._get_target(user_id, performed_by, verb="update")

    @staticmethod
    @transaction.atomic
    def update_officer(user_id: int, performed_by: User, validated_data: dict[str, Any]) -> User:
        """
        Update an officer's profile fields and, optionally, their role.

        Raises
        ------
        DomainError
            A role change while the officer still holds open assignments
            (they must be reassigned first).
        """
        target = OfficerDirectoryService._get_target(user_id, performed_by, verb="update")
        data = dict(validated_data)
        code = data.pop("role", None)

        if code is not None and code != target.officer_role:
            held = OfficerDirectoryService.open_workloads([target]).get(target.pk, 0)
            if held:
                raise DomainError(
                    f"{target.username} holds {held} open assignment(s); "
                    f"reassign them before changing the role."
                )
            target.role = OfficerDirectoryService._grantable_role(code, performed_by)

        for field, value in data.items():
            setattr(target, field, value)
        target.save()
        logger.info(
            "Officer %s updated by %s (%s)",
            target.username, performed_by.username,
            ", ".join(sorted([*data, *(["role"] if code else [])])) or "no changes",
        )
        return target

    @staticmethod
    @transaction.atomic
    def activate_officer(user_id: int, performed_by: User) -> User:
        """
        Set ``is_active=True`` on the target officer.  Reactivated
        officers become eligible for auto-assignment again.
        """
        from assignments.services import AssignmentService

        target = OfficerDirectoryService._get_target(user_id, performed_by, verb="activate")
        if not target.is_active:
            target.is_active = True
            target.save(update_fields=["is_active"])
            AssignmentService.refresh_coverage_of(target)
            logger.info("Officer %s activated by %s", target.username, performed_by.username)
        return target

    @staticmethod
    @transaction.atomic
    def deactivate_officer(user_id: int, performed_by: User) -> User:
        """
        Set ``is_active=False`` on the target officer.

        A deactivated officer is skipped by every assignment strategy
        and can no longer act on a stage.  Assignments they already
        hold stay on record so managers can reassign them; the
        applications concerned are flagged for manual assignment.

        Raises
        ------
        DomainError
            Self-deactivation.
        """
        from assignments.services import AssignmentService

        target = OfficerDirectoryService._get_target(user_id, performed_by, verb="deactivate")
        if target.pk == performed_by.pk:
            raise DomainError("You cannot deactivate your own account.")

        if target.is_active:
            target.is_active = False
            target.save(update_fields=["is_active"])
            held = AssignmentService.refresh_coverage_of(target)
            logger.info(
                "Officer %s deactivated by %s (%d application(s) flagged for reassignment)",
                target.username, performed_by.username, held,
            )
        return target

    @staticmethod
    def _get_target(user_id: int, performed_by: User, *, verb: str) -> User:
        require_permission(
            performed_by, _MANAGE_USERS,
            message=f"You do not have permission to {verb} officers.",
        )
        try:
            target = User.objects.select_related("role").get(pk=user_id)
        except User.DoesNotExist:
            raise NotFound(f"User with id {user_id} not found.")

        if target.officer_role is None:
            raise NotFound(f"User with id {user_id} is not an officer.")
        if not performed_by.is_superuser and performed_by.hierarchy_level <= target.hierarchy_level:
            raise PermissionDenied(
                f"You do not have sufficient authority to {verb} this officer."
            )
        return target

    @staticmethod
    def _grantable_role(code: str, performed_by: User) -> Role:
        try:
            role = Role.objects.get(code=code)
        except Role.DoesNotExist:
            raise DomainError(f"Role '{code}' is not set up. Run setup_rbac first.")
        if not performed_by.is_superuser and performed_by.hierarchy_level <= role.hierarchy_level:
            raise PermissionDenied(f"You do not have sufficient authority to grant the {role.name} role.")
        return role


# ═══════════════════════════════════════════════════════════════════
#  Current User Service
# ═══════════════════════════════════════════════════════════════════


class CurrentUserService:

    @staticmethod
    def get_profile(user: User) -> User:
        """Re-fetch the user with its role for serialisation."""
        return User.objects.select_related("role").get(pk=user.pk)

    @staticmethod
    def get_open_assignments(user: User) -> int:
        if user.officer_role is None:
            return 0
        return OfficerDirectoryService.open_workloads([user]).get(user.pk, 0)

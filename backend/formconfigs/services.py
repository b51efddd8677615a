"""
Formconfigs Service Layer.

Form configurations and their fee schedules.  Any authenticated user
may read the active configurations (applicants see the fees before
applying); changes require ``formconfigs.can_manage_forms``.

Fee changes
-----------
- ``update_form`` records a ``FormFeeHistory`` row only when the base
  or processing fee actually changes, effective immediately.
- ``update_fees`` is the dedicated fee-schedule endpoint and always
  records a row, with an optional future ``effective_from``.
"""

from __future__ import annotations

import logging
from typing import Any

from django.db import transaction
from django.db.models import Prefetch, QuerySet
from django.utils import timezone

from core.domain.access import require_permission
from core.domain.exceptions import DomainError, NotFound
from core.domain.transactions import lock_for_update
from core.permissions_constants import FormConfigsPerms

from .models import FormConfiguration, FormFeeHistory

logger = logging.getLogger(__name__)

_MANAGE_FORMS = f"formconfigs.{FormConfigsPerms.CAN_MANAGE_FORMS}"
_VIEW_FORMS = f"formconfigs.{FormConfigsPerms.VIEW_FORMCONFIGURATION}"

DEFAULT_CHANGE_REASON = "Fee structure updated"


class FormConfigurationService:

    @staticmethod
    def _visible(user: Any) -> QuerySet[FormConfiguration]:
        qs = FormConfiguration.objects.all()
        if user.has_perm(_MANAGE_FORMS) or user.has_perm(_VIEW_FORMS):
            return qs
        return qs.filter(is_active=True)

    @staticmethod
    def list_forms(user: Any, *, is_active: bool | None = None) -> QuerySet[FormConfiguration]:
        """
        Configurations visible to ``user``, ordered by position type.
        Users without the form permissions only see active ones.
        """
        qs = FormConfigurationService._visible(user)
        if is_active is not None:
            qs = qs.filter(is_active=is_active)
        return qs

    @staticmethod
    def get_form(user: Any, pk: int) -> FormConfiguration:
        """A single configuration with its fee history prefetched."""
        qs = FormConfigurationService._visible(user).prefetch_related(
            Prefetch("fee_history", queryset=FormFeeHistory.objects.select_related("changed_by")),
        )
        try:
            return qs.get(pk=pk)
        except FormConfiguration.DoesNotExist:
            raise NotFound(f"Form configuration with id {pk} not found.")

    @staticmethod
    def ensure_accepting(position_type: str) -> FormConfiguration | None:
        """
        The configuration of ``position_type``, or ``None`` when none is
        set up (applications are then accepted with no fee schedule).

        Raises
        ------
        DomainError
            The configuration is inactive or closed to online submission.
        """
        form = FormConfiguration.objects.filter(position_type=position_type).first()
        if form is not None and not (form.is_active and form.allow_online_submission):
            raise DomainError(f"{form.form_name} is not accepting online applications.")
        return form

    @staticmethod
    @transaction.atomic
    def create_form(user: Any, validated_data: dict[str, Any]) -> FormConfiguration:
        """
        Raises
        ------
        PermissionDenied
            Missing ``formconfigs.can_manage_forms``.
        DomainError
            The position type already has a configuration.
        """
        require_permission(user, _MANAGE_FORMS, message="You do not have permission to manage forms.")
        position_type = validated_data["position_type"]
        if FormConfiguration.objects.filter(position_type=position_type).exists():
            raise DomainError("A form configuration for this position type already exists.")

        form = FormConfiguration.objects.create(created_by=user, **validated_data)
        logger.info("Form configuration %s created by %s", form, user.username)
        return form

    @staticmethod
    @transaction.atomic
    def update_form(user: Any, pk: int, validated_data: dict[str, Any]) -> FormConfiguration:
        """
        Partial update.  ``change_reason`` only applies when a fee
        changes.
        """
        require_permission(user, _MANAGE_FORMS, message="You do not have permission to manage forms.")
        form = lock_for_update(FormConfiguration, pk)
        data = dict(validated_data)
        reason = data.pop("change_reason", "") or DEFAULT_CHANGE_REASON
        old_base, old_processing = form.base_fee, form.processing_fee

        for field, value in data.items():
            setattr(form, field, value)
        form.save()

        if (form.base_fee, form.processing_fee) != (old_base, old_processing):
            FormConfigurationService._record_fee_change(
                form, user, old_base, old_processing, timezone.now(), reason,
            )
        logger.info("Form configuration %s updated by %s", form, user.username)
        return form

    @staticmethod
    @transaction.atomic
    def update_fees(user: Any, pk: int, validated_data: dict[str, Any]) -> FormConfiguration:
        """Set a new fee schedule and record it, even if the amounts are unchanged."""
        require_permission(user, _MANAGE_FORMS, message="You do not have permission to manage fees.")
        form = lock_for_update(FormConfiguration, pk)
        old_base, old_processing = form.base_fee, form.processing_fee

        form.base_fee = validated_data["base_fee"]
        form.processing_fee = validated_data["processing_fee"]
        update_fields = ["base_fee", "processing_fee", "updated_at"]
        if validated_data.get("late_fee") is not None:
            form.late_fee = validated_data["late_fee"]
            update_fields.append("late_fee")
        form.save(update_fields=update_fields)

        FormConfigurationService._record_fee_change(
            form, user, old_base, old_processing,
            validated_data.get("effective_from") or timezone.now(),
            validated_data.get("change_reason") or DEFAULT_CHANGE_REASON,
        )
        logger.info(
            "Fees of %s set to %s + %s by %s",
            form, form.base_fee, form.processing_fee, user.username,
        )
        return form

    @staticmethod
    @transaction.atomic
    def deactivate_form(user: Any, pk: int) -> FormConfiguration:
        require_permission(user, _MANAGE_FORMS, message="You do not have permission to manage forms.")
        form = lock_for_update(FormConfiguration, pk)
        if form.is_active:
            form.is_active = False
            form.save(update_fields=["is_active", "updated_at"])
            logger.info("Form configuration %s deactivated by %s", form, user.username)
        return form

    @staticmethod
    def _record_fee_change(form, user, old_base, old_processing, effective_from, reason) -> FormFeeHistory:
        return FormFeeHistory.objects.create(
            form=form,
            old_base_fee=old_base,
            new_base_fee=form.base_fee,
            old_processing_fee=old_processing,
            new_processing_fee=form.processing_fee,
            effective_from=effective_from,
            changed_by=user,
            change_reason=reason,
        )

"""
Assignments app Service Layer — the Assignment Engine.

Picks officers for the required roles of a stage, records the result in
``AssignmentRecord`` and keeps ``PositionApplication.needs_manual_assignment``
in sync.

Architecture
------------
- ``AssignmentService``      — Auto-assignment, claim, manual override,
                               workload / history / unassigned queries,
                               overdue detection and delayed reminders.
- ``AssignmentRuleService``  — CRUD for ``AutoAssignmentRule``.

Strategies
----------
- **Round robin**   — Active officers holding the role, ordered by id;
  pick ``(cursor + 1) mod N``.  The cursor is committed with a
  compare-and-swap; on a lost race the cursor is re-read and the pick
  retried, up to ``ROUND_ROBIN_CAS_RETRIES`` times, before falling back
  to the first officer.
- **Least workload** — Fewest open assignments, ties broken by officer
  id.  Officers at or above ``max_workload_per_officer`` are skipped.
- **Manual**        — Nothing is picked; the application is flagged for
  manual assignment.

Callers that mutate an application's assignments hold the application
row lock (``WorkflowService`` already does; ``claim`` and
``manual_assign`` take it themselves).
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, Exists, F, OuterRef, Q, QuerySet
from django.utils import timezone

from applications.models import PositionApplication, Stage, StageOutcome
from applications.workflow import TERMINAL_STAGES, required_roles
from core.constants import pmcrms_setting
from core.domain.access import require_permission
from core.domain.exceptions import (
    AlreadyAssignedError,
    DomainError,
    NoEligibleOfficerError,
    NotFound,
    PermissionDenied,
    StaleStateError,
    UnauthorizedRoleError,
)
from core.domain.notifications import NotificationService
from core.domain.transactions import compare_and_swap, lock_for_update
from core.permissions_constants import AssignmentsPerms

from .models import (
    AssignmentAction,
    AssignmentRecord,
    AssignmentStrategy,
    AutoAssignmentRule,
)

logger = logging.getLogger(__name__)

User = get_user_model()

_MANAGE_ASSIGNMENTS = f"assignments.{AssignmentsPerms.CAN_MANAGE_ASSIGNMENTS}"
_MANAGE_RULES = f"assignments.{AssignmentsPerms.CAN_MANAGE_ASSIGNMENT_RULES}"
_VIEW_WORKLOAD = f"assignments.{AssignmentsPerms.CAN_VIEW_WORKLOAD}"
_VIEW_RECORDS = f"assignments.{AssignmentsPerms.VIEW_ASSIGNMENTRECORD}"
_VIEW_RULES = f"assignments.{AssignmentsPerms.VIEW_AUTOASSIGNMENTRULE}"


def open_assignments() -> QuerySet[AssignmentRecord]:
    """
    Active assignments still waiting on their officer: the application
    is at the assigned stage and the officer's sub-review has no outcome
    in the current attempt.
    """
    decided = StageOutcome.objects.filter(
        application=OuterRef("application"),
        stage=OuterRef("stage"),
        role=OuterRef("role"),
        attempt_number=OuterRef("application__current_attempt"),
    )
    return AssignmentRecord.objects.filter(
        is_active=True,
        application__current_stage=F("stage"),
    ).filter(~Exists(decided))


def eligible_officers(role: str) -> QuerySet:
    """Active officers holding ``role``, in id order."""
    return User.objects.filter(is_active=True, role__code=role).order_by("id")


# ═══════════════════════════════════════════════════════════════════
#  Assignment Service
# ═══════════════════════════════════════════════════════════════════


class AssignmentService:

    # ── Auto-assignment ─────────────────────────────────────────────

    @staticmethod
    def assign_stage(application: PositionApplication, actor: Any = None) -> dict[str, Any]:
        """
        Run the engine for every required role of the application's
        current stage.  Called whenever a stage is (re-)entered, so any
        record still active from an earlier attempt is released first.

        Returns
        -------
        dict
            ``{role: officer or None}``.
        """
        stage = application.current_stage
        AssignmentService._release_stage(application, stage)
        picked = {
            role: AssignmentService.assign(application, stage, role, actor=actor)
            for role in required_roles(application.position_type, stage)
        }
        AssignmentService._refresh_manual_flag(application)
        return picked

    @staticmethod
    @transaction.atomic
    def assign(
        application: PositionApplication,
        stage: str,
        role: str,
        actor: Any = None,
    ) -> Any | None:
        """
        Pick and record an officer for one role of ``stage``.

        Returns ``None`` when no active rule matches, the rule is Manual,
        or nobody is eligible.  That is not an error: the application is
        flagged for manual assignment instead.
        """
        rule = AssignmentService.find_rule(application.position_type, role)
        officer = AssignmentService._pick(rule) if rule else None

        if officer is None:
            logger.info(
                "No auto-assignment for application %s stage %s role %s (rule=%s)",
                application.application_number, stage, role, rule,
            )
            AssignmentService._flag_for_manual(application, stage, actor)
            return None

        AssignmentService._write_assignment(
            application, stage, role, officer,
            action=AssignmentAction.AUTO_ASSIGNED,
            strategy=rule.strategy,
            rule=rule,
            actor=actor,
            reason=f"Auto-assigned by rule '{rule.name}'.",
        )
        AutoAssignmentRule.objects.filter(pk=rule.pk).update(
            times_applied=F("times_applied") + 1,
            last_applied_at=timezone.now(),
        )
        return officer

    @staticmethod
    def find_rule(position_type: str, role: str) -> AutoAssignmentRule | None:
        """
        Highest-priority active rule for (position_type, role) whose
        effective window contains now.
        """
        now = timezone.now()
        rules = (
            AutoAssignmentRule.objects
            .filter(is_active=True, target_role=role)
            .filter(Q(position_type=position_type) | Q(position_type=""))
            .filter(Q(effective_from__isnull=True) | Q(effective_from__lte=now))
            .filter(Q(effective_to__isnull=True) | Q(effective_to__gte=now))
        )
        ranked = sorted(rules, key=lambda r: (r.priority, r.position_type == "", r.pk))
        return ranked[0] if ranked else None

    @staticmethod
    def _pick(rule: AutoAssignmentRule) -> Any | None:
        if rule.strategy == AssignmentStrategy.ROUND_ROBIN:
            return AssignmentService._pick_round_robin(rule)
        if rule.strategy == AssignmentStrategy.LEAST_WORKLOAD:
            return AssignmentService._pick_least_workload(rule)
        return None

    @staticmethod
    def _pick_round_robin(rule: AutoAssignmentRule) -> Any | None:
        officers = list(eligible_officers(rule.target_role))
        if not officers:
            return None

        for attempt in range(pmcrms_setting("ROUND_ROBIN_CAS_RETRIES")):
            observed = (
                AutoAssignmentRule.objects
                .filter(pk=rule.pk)
                .values_list("last_round_robin_index", flat=True)
                .get()
            )
            index = (observed + 1) % len(officers)
            if compare_and_swap(
                AutoAssignmentRule, rule.pk,
                field="last_round_robin_index", expected=observed, new=index,
            ):
                rule.last_round_robin_index = index
                return officers[index]
            logger.info(
                "Round-robin cursor of rule %s moved under us (attempt %d)",
                rule.pk, attempt + 1,
            )

        logger.warning(
            "Round-robin cursor of rule %s kept changing; falling back to officer %s",
            rule.pk, officers[0].pk,
        )
        return officers[0]

    @staticmethod
    def _pick_least_workload(rule: AutoAssignmentRule) -> Any | None:
        officers = list(eligible_officers(rule.target_role))
        if not officers:
            return None
        loads = AssignmentService._workloads([o.pk for o in officers])
        under_cap = [
            o for o in officers
            if loads.get(o.pk, 0) < rule.max_workload_per_officer
        ]
        if not under_cap:
            logger.warning(
                "Every %s is at the workload cap of %d",
                rule.target_role, rule.max_workload_per_officer,
            )
            return None
        return min(under_cap, key=lambda o: (loads.get(o.pk, 0), o.pk))

    # ── Claim / manual override ─────────────────────────────────────

    @staticmethod
    @transaction.atomic
    def claim(application_id: int, stage: str, officer: Any) -> AssignmentRecord:
        """
        First-to-claim assignment of an unassigned sub-review.

        Raises
        ------
        StaleStateError
            The application is no longer at ``stage``.
        UnauthorizedRoleError
            The officer does not hold a role required by the stage.
        AlreadyAssignedError
            The officer's sub-review already has an active assignment.
        """
        application = lock_for_update(PositionApplication, application_id)
        if application.current_stage != stage:
            raise StaleStateError(expected=stage, actual=application.current_stage)

        role = officer.officer_role
        if not officer.holds_officer_role(*required_roles(application.position_type, stage)):
            raise UnauthorizedRoleError(
                f"Role '{role or 'none'}' cannot claim stage '{stage}'."
            )

        # A deactivated holder no longer blocks the sub-review.
        holder = AssignmentRecord.objects.filter(
            application=application, stage=stage, role=role,
            is_active=True, officer__is_active=True,
        ).select_related("officer").first()
        if holder is not None:
            raise AlreadyAssignedError(
                f"The {role} review of application {application.application_number} "
                f"is already assigned to {holder.officer.username}."
            )

        record = AssignmentService._write_assignment(
            application, stage, role, officer,
            action=AssignmentAction.CLAIMED,
            strategy=AssignmentStrategy.MANUAL,
            actor=officer,
            reason="Claimed by officer.",
        )
        AssignmentService._refresh_manual_flag(application)
        return record

    @staticmethod
    @transaction.atomic
    def manual_assign(
        application_id: int,
        stage: str,
        actor: Any,
        officer_id: int | None = None,
        role: str | None = None,
        reason: str = "",
    ) -> AssignmentRecord:
        """
        Admin override of the engine.

        With ``officer_id`` the sub-review is (re)assigned to that officer.
        Without it the matching rule's strategy is run for ``role``
        (which may be omitted on single-reviewer stages).

        Raises
        ------
        PermissionDenied
            ``actor`` lacks ``can_manage_assignments``.
        NoEligibleOfficerError
            The given officer is inactive or holds the wrong role, or the
            strategy found nobody.
        """
        require_permission(
            actor, _MANAGE_ASSIGNMENTS,
            message="You do not have permission to assign officers.",
        )
        application = lock_for_update(PositionApplication, application_id)
        if application.current_stage != stage:
            raise StaleStateError(expected=stage, actual=application.current_stage)

        roles = required_roles(application.position_type, stage)
        if not roles:
            raise DomainError(f"Stage '{stage}' has no reviewers to assign.")
        if role is not None and role not in roles:
            raise DomainError(
                f"Role '{role}' is not required at stage '{stage}'. "
                f"Required: {', '.join(roles)}."
            )

        rule = None
        if officer_id is not None:
            try:
                officer = User.objects.select_related("role").get(pk=officer_id)
            except User.DoesNotExist:
                raise NotFound(f"Officer with id {officer_id} not found.")
            officer_role = officer.officer_role
            if not officer.is_active or officer_role not in roles or (role and role != officer_role):
                raise NoEligibleOfficerError(
                    f"Officer {officer.username} cannot review stage '{stage}' "
                    f"as '{role or officer_role or 'none'}'."
                )
            role = officer_role
            strategy = AssignmentStrategy.MANUAL
        else:
            if role is None:
                if len(roles) > 1:
                    raise DomainError(
                        f"Stage '{stage}' has several reviewers; specify one of: {', '.join(roles)}."
                    )
                role = roles[0]
            rule = AssignmentService.find_rule(application.position_type, role)
            officer = AssignmentService._pick(rule) if rule else None
            if officer is None:
                raise NoEligibleOfficerError(
                    f"No eligible '{role}' officer is available for automatic assignment."
                )
            strategy = rule.strategy

        has_previous = AssignmentRecord.objects.filter(
            application=application, stage=stage, role=role, is_active=True,
        ).exists()
        record = AssignmentService._write_assignment(
            application, stage, role, officer,
            action=AssignmentAction.REASSIGNED if has_previous else AssignmentAction.MANUALLY_ASSIGNED,
            strategy=strategy,
            rule=rule,
            actor=actor,
            reason=reason or "Assigned by administrator.",
        )
        AssignmentService._refresh_manual_flag(application)
        return record

    # ── Internal helpers ────────────────────────────────────────────

    @staticmethod
    def _write_assignment(
        application: PositionApplication,
        stage: str,
        role: str,
        officer: Any,
        *,
        action: str,
        strategy: str,
        rule: AutoAssignmentRule | None = None,
        actor: Any = None,
        reason: str = "",
    ) -> AssignmentRecord:
        """Deactivate the current holder (if any) and insert the new record."""
        previous = (
            AssignmentRecord.objects
            .select_for_update()
            .filter(application=application, stage=stage, role=role, is_active=True)
            .select_related("officer")
            .first()
        )
        if previous is not None:
            previous.is_active = False
            previous.inactivated_at = timezone.now()
            previous.save(update_fields=["is_active", "inactivated_at"])

        record = AssignmentRecord.objects.create(
            application=application,
            stage=stage,
            role=role,
            officer=officer,
            previous_officer=previous.officer if previous else None,
            assigned_by=actor if actor is not None and actor.pk != officer.pk else None,
            strategy_used=strategy,
            rule=rule,
            action=action,
            reason=reason,
            workload_at_assignment=AssignmentService.officer_workload(officer),
        )
        logger.info(
            "Application %s stage %s role %s → %s (%s, %s)",
            application.application_number, stage, role, officer.username, action, strategy,
        )

        payload = {
            "application": application.application_number,
            "stage": Stage(stage).label,
        }
        if previous is not None and previous.officer_id != officer.pk:
            NotificationService.create(
                actor=actor,
                recipients=previous.officer,
                event_type="assignment_removed",
                payload=payload,
                related_object=application,
            )
        NotificationService.create(
            actor=actor,
            recipients=officer,
            event_type="stage_assigned",
            payload=payload,
            related_object=application,
        )
        return record

    @staticmethod
    def _release_stage(application: PositionApplication, stage: str) -> int:
        released = (
            AssignmentRecord.objects
            .filter(application=application, stage=stage, is_active=True)
            .update(is_active=False, inactivated_at=timezone.now())
        )
        if released:
            logger.info(
                "Application %s re-entered %s; released %d earlier assignment(s)",
                application.application_number, stage, released,
            )
        return released

    @staticmethod
    def refresh_coverage_of(officer: Any) -> int:
        """
        Re-evaluate the manual-assignment flag of every application on
        which ``officer`` holds an open assignment.  Called when the
        officer is activated or deactivated.
        """
        application_ids = set(
            open_assignments().filter(officer=officer).values_list("application_id", flat=True)
        )
        for application in PositionApplication.objects.select_for_update().filter(pk__in=application_ids):
            AssignmentService._refresh_manual_flag(application)
        return len(application_ids)

    @staticmethod
    def _refresh_manual_flag(application: PositionApplication) -> None:
        """Clear the flag once every required role of the current stage is covered."""
        stage = application.current_stage
        roles = set(required_roles(application.position_type, stage))
        covered = set(
            AssignmentRecord.objects
            .filter(
                application=application, stage=stage,
                is_active=True, officer__is_active=True,
            )
            .values_list("role", flat=True)
        )
        needs_manual = stage not in TERMINAL_STAGES and not roles <= covered
        if application.needs_manual_assignment != needs_manual:
            PositionApplication.objects.filter(pk=application.pk).update(
                needs_manual_assignment=needs_manual,
            )
            application.needs_manual_assignment = needs_manual

    @staticmethod
    def _flag_for_manual(application: PositionApplication, stage: str, actor: Any) -> None:
        if application.needs_manual_assignment:
            return
        PositionApplication.objects.filter(pk=application.pk).update(
            needs_manual_assignment=True,
        )
        application.needs_manual_assignment = True
        managers = User.objects.filter(
            Q(is_superuser=True)
            | Q(role__permissions__codename=AssignmentsPerms.CAN_MANAGE_ASSIGNMENTS),
            is_active=True,
        ).distinct()
        NotificationService.create(
            actor=actor,
            recipients=list(managers),
            event_type="manual_assignment",
            payload={
                "application": application.application_number,
                "stage": Stage(stage).label,
            },
            related_object=application,
        )

    @staticmethod
    def _workloads(officer_ids: list[int]) -> dict[int, int]:
        rows = (
            open_assignments()
            .filter(officer_id__in=officer_ids)
            .order_by()
            .values("officer_id")
            .annotate(total=Count("id"))
            .values_list("officer_id", "total")
        )
        return dict(rows)

    # ── Read side ───────────────────────────────────────────────────

    @staticmethod
    def officer_workload(officer: Any) -> int:
        """Number of open assignments held by ``officer``."""
        return open_assignments().filter(officer=officer).count()

    @staticmethod
    def workload_summary(user: Any, role: str | None = None) -> list[dict[str, Any]]:
        """Open-assignment counts for every active officer (optionally one role)."""
        require_permission(user, _VIEW_WORKLOAD, _MANAGE_ASSIGNMENTS)
        officers = (
            User.objects
            .filter(is_active=True, role__code__isnull=False)
            .select_related("role")
            .order_by("id")
        )
        if role:
            officers = officers.filter(role__code=role)
        officers = list(officers)
        loads = AssignmentService._workloads([o.pk for o in officers])
        return [
            {
                "officer_id": officer.pk,
                "username": officer.username,
                "full_name": officer.get_full_name(),
                "role": officer.officer_role,
                "open_assignments": loads.get(officer.pk, 0),
            }
            for officer in officers
        ]

    @staticmethod
    def list_history(user: Any, application_id: int) -> QuerySet[AssignmentRecord]:
        """Every assignment record of an application, newest first."""
        if not PositionApplication.objects.filter(pk=application_id).exists():
            raise NotFound(f"Application with id {application_id} not found.")
        records = (
            AssignmentRecord.objects
            .filter(application_id=application_id)
            .select_related("officer", "previous_officer", "rule")
        )
        allowed = (
            user.has_perm(_VIEW_RECORDS)
            or user.has_perm(_VIEW_WORKLOAD)
            or user.has_perm(_MANAGE_ASSIGNMENTS)
            or records.filter(officer=user).exists()
        )
        if not allowed:
            raise PermissionDenied("You cannot view the assignment history of this application.")
        return records

    @staticmethod
    def list_unassigned(user: Any) -> QuerySet[PositionApplication]:
        """Applications waiting for a manual assignment."""
        require_permission(user, _VIEW_WORKLOAD, _MANAGE_ASSIGNMENTS)
        return (
            PositionApplication.objects
            .filter(needs_manual_assignment=True)
            .exclude(current_stage__in=TERMINAL_STAGES)
            .order_by("updated_at")
        )

    # ── Delays and escalation ───────────────────────────────────────

    @staticmethod
    def find_overdue_assignments(hours: int | None = None) -> QuerySet[AssignmentRecord]:
        """Open assignments older than ``hours`` (default ``DELAY_THRESHOLD_HOURS``)."""
        if hours is None:
            hours = pmcrms_setting("DELAY_THRESHOLD_HOURS")
        cutoff = timezone.now() - timedelta(hours=hours)
        return (
            open_assignments()
            .filter(assigned_at__lte=cutoff)
            .select_related("application", "officer", "rule")
            .order_by("assigned_at")
        )

    @staticmethod
    def escalation_candidates() -> list[dict[str, Any]]:
        """
        Open assignments that have waited longer than their rule's
        ``escalation_time_hours``.  Read-only: nothing is reassigned.
        """
        now = timezone.now()
        records = (
            open_assignments()
            .filter(rule__escalation_time_hours__isnull=False)
            .select_related("application", "officer", "rule")
            .order_by("assigned_at")
        )
        candidates = []
        for record in records:
            waited = now - record.assigned_at
            if waited >= timedelta(hours=record.rule.escalation_time_hours):
                candidates.append({
                    "assignment": record,
                    "hours_waiting": int(waited.total_seconds() // 3600),
                    "escalation_role": record.rule.escalation_role or None,
                })
        return candidates

    @staticmethod
    def send_delayed_reminders(hours: int | None = None) -> int:
        """
        Create an ``assignment_delayed`` notification for the officer of
        every overdue assignment.  Returns the number of reminders.
        """
        now = timezone.now()
        sent = 0
        for record in AssignmentService.find_overdue_assignments(hours):
            waited = int((now - record.assigned_at).total_seconds() // 3600)
            NotificationService.create(
                actor=None,
                recipients=record.officer,
                event_type="assignment_delayed",
                payload={
                    "application": record.application.application_number,
                    "stage": Stage(record.stage).label,
                    "hours": waited,
                },
                related_object=record.application,
            )
            sent += 1
        logger.info("Sent %d delayed-review reminder(s)", sent)
        return sent


# ═══════════════════════════════════════════════════════════════════
#  Rule Service
# ═══════════════════════════════════════════════════════════════════


class AssignmentRuleService:
    """CRUD for auto-assignment rules.  Rules are deactivated, never deleted."""

    @staticmethod
    def list_rules(user: Any, filters: dict[str, Any] | None = None) -> QuerySet[AutoAssignmentRule]:
        require_permission(user, _VIEW_RULES, _MANAGE_RULES)
        qs = AutoAssignmentRule.objects.all()
        filters = filters or {}
        if filters.get("target_role"):
            qs = qs.filter(target_role=filters["target_role"])
        if filters.get("is_active") is not None:
            qs = qs.filter(is_active=filters["is_active"])
        return qs

    @staticmethod
    def get_rule(user: Any, pk: int) -> AutoAssignmentRule:
        require_permission(user, _VIEW_RULES, _MANAGE_RULES)
        try:
            return AutoAssignmentRule.objects.get(pk=pk)
        except AutoAssignmentRule.DoesNotExist:
            raise NotFound(f"Assignment rule with id {pk} not found.")

    @staticmethod
    @transaction.atomic
    def create_rule(user: Any, validated_data: dict[str, Any]) -> AutoAssignmentRule:
        require_permission(user, _MANAGE_RULES)
        data = dict(validated_data)
        data.setdefault("max_workload_per_officer", pmcrms_setting("DEFAULT_MAX_WORKLOAD"))
        rule = AutoAssignmentRule.objects.create(created_by=user, **data)
        logger.info("Assignment rule %s created by %s", rule, user)
        return rule

    @staticmethod
    @transaction.atomic
    def update_rule(user: Any, pk: int, validated_data: dict[str, Any]) -> AutoAssignmentRule:
        require_permission(user, _MANAGE_RULES)
        rule = lock_for_update(AutoAssignmentRule, pk)
        for field, value in validated_data.items():
            setattr(rule, field, value)
        rule.save()
        logger.info("Assignment rule %s updated by %s", rule, user)
        return rule

    @staticmethod
    @transaction.atomic
    def deactivate_rule(user: Any, pk: int) -> AutoAssignmentRule:
        require_permission(user, _MANAGE_RULES)
        rule = lock_for_update(AutoAssignmentRule, pk)
        rule.is_active = False
        rule.save(update_fields=["is_active", "updated_at"])
        logger.info("Assignment rule %s deactivated by %s", rule, user)
        return rule

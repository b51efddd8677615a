"""
Tests for the Assignment Engine: strategies, rule matching, claims,
manual overrides, overdue detection and escalations.
"""

from __future__ import annotations

from datetime import timedelta
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from accounts.models import OfficerRole
from applications.models import Decision, PositionType, Stage
from applications.services import ApplicationCreationService, WorkflowService
from assignments.models import AssignmentAction, AssignmentRecord, AssignmentStrategy, AutoAssignmentRule
from assignments.services import AssignmentService
from core.domain.exceptions import (
    AlreadyAssignedError,
    NoEligibleOfficerError,
    PermissionDenied,
    StaleStateError,
    UnauthorizedRoleError,
)
from core.models import Notification
from core.permissions_constants import AssignmentsPerms
from tests.factories import grant, make_officer, make_role, make_rule, make_user

User = get_user_model()


class EngineTestCase(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.applicant = make_user("meera_applicant")
        cls.je1 = make_officer("je_one", OfficerRole.JUNIOR_ARCHITECT)
        cls.je2 = make_officer("je_two", OfficerRole.JUNIOR_ARCHITECT)
        cls.ae = make_officer("ae_architect", OfficerRole.ASSISTANT_ARCHITECT)

        manager_role = make_role("Assignment Manager", hierarchy_level=50)
        grant(
            manager_role, "assignments",
            AssignmentsPerms.CAN_MANAGE_ASSIGNMENTS,
            AssignmentsPerms.CAN_VIEW_WORKLOAD,
        )
        cls.manager = make_user("asha_manager", role=manager_role)

    def submitted(self, position_type=PositionType.ARCHITECT):
        application = ApplicationCreationService.create_application(
            self.applicant, {"position_type": position_type},
        )
        WorkflowService.submit(application.pk, self.applicant)
        application.refresh_from_db()
        return application

    def je_holder(self, application):
        return AssignmentRecord.objects.get(
            application=application, stage=Stage.JE_REVIEW, is_active=True,
        ).officer

    def backdate(self, application, hours):
        AssignmentRecord.objects.filter(application=application, is_active=True).update(
            assigned_at=timezone.now() - timedelta(hours=hours),
        )


# ── Strategies ──────────────────────────────────────────────────────


class TestRoundRobin(EngineTestCase):

    def test_officers_take_turns_in_id_order(self):
        rule = make_rule(OfficerRole.JUNIOR_ARCHITECT)

        holders = [self.je_holder(self.submitted()) for _ in range(3)]

        self.assertEqual(holders, [self.je1, self.je2, self.je1])
        rule.refresh_from_db()
        self.assertEqual(rule.times_applied, 3)
        self.assertEqual(rule.last_round_robin_index, 0)
        self.assertIsNotNone(rule.last_applied_at)

    def test_share_differs_by_at_most_one(self):
        je3 = make_officer("je_three", OfficerRole.JUNIOR_ARCHITECT)
        make_rule(OfficerRole.JUNIOR_ARCHITECT)

        holders = [self.je_holder(self.submitted()) for _ in range(7)]

        shares = sorted(holders.count(officer) for officer in (self.je1, self.je2, je3))
        self.assertEqual(shares, [2, 2, 3])

    def test_inactive_officers_are_skipped(self):
        make_rule(OfficerRole.JUNIOR_ARCHITECT)
        self.je1.is_active = False
        self.je1.save(update_fields=["is_active"])

        holders = {self.je_holder(self.submitted()) for _ in range(2)}

        self.assertEqual(holders, {self.je2})

    def test_lost_cursor_race_falls_back_to_first_officer(self):
        make_rule(OfficerRole.JUNIOR_ARCHITECT, last_round_robin_index=0)

        with mock.patch("assignments.services.compare_and_swap", return_value=False) as cas:
            application = self.submitted()

        self.assertEqual(cas.call_count, 3)
        self.assertEqual(self.je_holder(application), self.je1)

    def test_record_keeps_rule_and_workload(self):
        rule = make_rule(OfficerRole.JUNIOR_ARCHITECT)

        application = self.submitted()

        record = AssignmentRecord.objects.get(application=application, is_active=True)
        self.assertEqual(record.rule, rule)
        self.assertEqual(record.strategy_used, AssignmentStrategy.ROUND_ROBIN)
        self.assertEqual(record.action, AssignmentAction.AUTO_ASSIGNED)
        self.assertEqual(record.workload_at_assignment, 0)
        self.assertTrue(
            Notification.objects.filter(recipient=self.je1, event_type="stage_assigned").exists()
        )


class TestLeastWorkload(EngineTestCase):

    def test_lowest_workload_wins_and_cap_is_respected(self):
        make_rule(
            OfficerRole.JUNIOR_ARCHITECT,
            strategy=AssignmentStrategy.LEAST_WORKLOAD,
            max_workload_per_officer=1,
        )

        first = self.submitted()
        second = self.submitted()
        third = self.submitted()

        self.assertEqual(self.je_holder(first), self.je1)
        self.assertEqual(self.je_holder(second), self.je2)
        self.assertFalse(AssignmentRecord.objects.filter(application=third).exists())
        self.assertTrue(third.needs_manual_assignment)

    def test_decided_assignments_do_not_count(self):
        make_rule(OfficerRole.JUNIOR_ARCHITECT, strategy=AssignmentStrategy.LEAST_WORKLOAD)
        make_rule(OfficerRole.ASSISTANT_ARCHITECT)

        first = self.submitted()
        WorkflowService.transition(first.pk, Stage.JE_REVIEW, Decision.APPROVED, self.je1)

        self.assertEqual(AssignmentService.officer_workload(self.je1), 0)
        self.assertEqual(self.je_holder(self.submitted()), self.je1)


class TestManualFlag(EngineTestCase):

    def test_no_rule_flags_application_and_notifies_managers(self):
        application = self.submitted()

        self.assertTrue(application.needs_manual_assignment)
        self.assertFalse(AssignmentRecord.objects.filter(application=application).exists())
        self.assertTrue(
            Notification.objects.filter(
                recipient=self.manager, event_type="manual_assignment",
            ).exists()
        )

    def test_manual_strategy_flags_application(self):
        make_rule(OfficerRole.JUNIOR_ARCHITECT, strategy=AssignmentStrategy.MANUAL)

        application = self.submitted()

        self.assertTrue(application.needs_manual_assignment)


class TestRuleMatching(EngineTestCase):

    def test_specific_position_beats_generic_on_equal_priority(self):
        make_rule(OfficerRole.JUNIOR_ARCHITECT)
        specific = make_rule(OfficerRole.JUNIOR_ARCHITECT, position_type=PositionType.ARCHITECT)

        found = AssignmentService.find_rule(PositionType.ARCHITECT, OfficerRole.JUNIOR_ARCHITECT)

        self.assertEqual(found, specific)

    def test_lower_priority_number_wins(self):
        generic = make_rule(OfficerRole.JUNIOR_ARCHITECT, priority=10)
        make_rule(OfficerRole.JUNIOR_ARCHITECT, position_type=PositionType.ARCHITECT, priority=100)

        found = AssignmentService.find_rule(PositionType.ARCHITECT, OfficerRole.JUNIOR_ARCHITECT)

        self.assertEqual(found, generic)

    def test_rules_for_other_positions_and_expired_rules_are_ignored(self):
        make_rule(OfficerRole.JUNIOR_ARCHITECT, position_type=PositionType.SUPERVISOR1)
        make_rule(
            OfficerRole.JUNIOR_ARCHITECT,
            effective_to=timezone.now() - timedelta(days=1),
        )
        make_rule(OfficerRole.JUNIOR_ARCHITECT, is_active=False)

        found = AssignmentService.find_rule(PositionType.ARCHITECT, OfficerRole.JUNIOR_ARCHITECT)

        self.assertIsNone(found)


# ── Claim and manual override ───────────────────────────────────────


class TestClaim(EngineTestCase):

    def test_first_claim_wins(self):
        application = self.submitted()

        record = AssignmentService.claim(application.pk, Stage.JE_REVIEW, self.je2)

        self.assertEqual(record.action, AssignmentAction.CLAIMED)
        self.assertEqual(record.officer, self.je2)
        application.refresh_from_db()
        self.assertFalse(application.needs_manual_assignment)

        with self.assertRaises(AlreadyAssignedError):
            AssignmentService.claim(application.pk, Stage.JE_REVIEW, self.je1)

    def test_claim_needs_a_required_role(self):
        application = self.submitted()

        with self.assertRaises(UnauthorizedRoleError):
            AssignmentService.claim(application.pk, Stage.JE_REVIEW, self.ae)

    def test_claim_on_left_stage_is_stale(self):
        application = self.submitted()

        with self.assertRaises(StaleStateError):
            AssignmentService.claim(application.pk, Stage.AE_REVIEW, self.ae)

    def test_deactivated_holder_does_not_block_a_claim(self):
        make_rule(OfficerRole.JUNIOR_ARCHITECT)
        application = self.submitted()
        self.assertEqual(self.je_holder(application), self.je1)
        User.objects.filter(pk=self.je1.pk).update(is_active=False)

        record = AssignmentService.claim(application.pk, Stage.JE_REVIEW, self.je2)

        self.assertEqual(record.previous_officer, self.je1)
        self.assertEqual(self.je_holder(application), self.je2)


class TestResubmission(EngineTestCase):
    """Re-entering a stage on a new attempt starts from a clean slate."""

    def rejected_by_je1(self):
        rule = make_rule(OfficerRole.JUNIOR_ARCHITECT)
        application = self.submitted()
        self.assertEqual(self.je_holder(application), self.je1)
        WorkflowService.transition(
            application.pk, Stage.JE_REVIEW, Decision.REJECTED, self.je1, "Degree certificate unreadable.",
        )
        return application, rule

    def test_manual_rule_leaves_the_stage_open_for_claims(self):
        application, rule = self.rejected_by_je1()
        rule.strategy = AssignmentStrategy.MANUAL
        rule.save()

        application = WorkflowService.resubmit(application.pk, self.applicant)

        self.assertEqual(application.current_stage, Stage.JE_REVIEW)
        self.assertTrue(application.needs_manual_assignment)
        self.assertFalse(
            AssignmentRecord.objects.filter(
                application=application, stage=Stage.JE_REVIEW, is_active=True,
            ).exists()
        )
        record = AssignmentService.claim(application.pk, Stage.JE_REVIEW, self.je2)
        self.assertEqual(record.officer, self.je2)
        application.refresh_from_db()
        self.assertFalse(application.needs_manual_assignment)

    def test_no_eligible_officer_lists_the_application_as_unassigned(self):
        application, _ = self.rejected_by_je1()
        User.objects.filter(pk__in=[self.je1.pk, self.je2.pk]).update(is_active=False)

        application = WorkflowService.resubmit(application.pk, self.applicant)

        self.assertTrue(application.needs_manual_assignment)
        self.assertIn(application, AssignmentService.list_unassigned(self.manager))

    def test_auto_rule_replaces_the_earlier_holder(self):
        application, _ = self.rejected_by_je1()

        application = WorkflowService.resubmit(application.pk, self.applicant)

        active = AssignmentRecord.objects.filter(
            application=application, stage=Stage.JE_REVIEW, is_active=True,
        )
        self.assertEqual([r.officer for r in active], [self.je2])
        self.assertFalse(application.needs_manual_assignment)


class TestManualAssign(EngineTestCase):

    def test_reassignment_supersedes_previous_holder(self):
        make_rule(OfficerRole.JUNIOR_ARCHITECT)
        application = self.submitted()

        record = AssignmentService.manual_assign(
            application.pk, Stage.JE_REVIEW, self.manager,
            officer_id=self.je2.pk, reason="je_one on leave",
        )

        self.assertEqual(record.action, AssignmentAction.REASSIGNED)
        self.assertEqual(record.previous_officer, self.je1)
        self.assertEqual(record.assigned_by, self.manager)
        self.assertEqual(
            AssignmentRecord.objects.filter(
                application=application, stage=Stage.JE_REVIEW, is_active=True,
            ).count(),
            1,
        )
        self.assertEqual(self.je_holder(application), self.je2)
        self.assertTrue(
            Notification.objects.filter(recipient=self.je1, event_type="assignment_removed").exists()
        )

    def test_manual_assignment_clears_the_flag(self):
        application = self.submitted()

        record = AssignmentService.manual_assign(
            application.pk, Stage.JE_REVIEW, self.manager, officer_id=self.je1.pk,
        )

        self.assertEqual(record.action, AssignmentAction.MANUALLY_ASSIGNED)
        self.assertEqual(record.strategy_used, AssignmentStrategy.MANUAL)
        application.refresh_from_db()
        self.assertFalse(application.needs_manual_assignment)

    def test_requires_manage_permission(self):
        application = self.submitted()

        with self.assertRaises(PermissionDenied):
            AssignmentService.manual_assign(
                application.pk, Stage.JE_REVIEW, self.je1, officer_id=self.je1.pk,
            )

    def test_inactive_or_wrong_role_officer_is_not_eligible(self):
        application = self.submitted()
        self.je2.is_active = False
        self.je2.save(update_fields=["is_active"])

        with self.assertRaises(NoEligibleOfficerError):
            AssignmentService.manual_assign(
                application.pk, Stage.JE_REVIEW, self.manager, officer_id=self.je2.pk,
            )
        with self.assertRaises(NoEligibleOfficerError):
            AssignmentService.manual_assign(
                application.pk, Stage.JE_REVIEW, self.manager, officer_id=self.ae.pk,
            )

    def test_without_officer_runs_the_rule(self):
        application = self.submitted()
        make_rule(OfficerRole.JUNIOR_ARCHITECT, last_round_robin_index=0)

        record = AssignmentService.manual_assign(application.pk, Stage.JE_REVIEW, self.manager)

        self.assertEqual(record.officer, self.je2)
        self.assertEqual(record.strategy_used, AssignmentStrategy.ROUND_ROBIN)


# ── Delays and escalation ───────────────────────────────────────────


class TestOverdue(EngineTestCase):

    @classmethod
    def setUpTestData(cls):
        super().setUpTestData()
        cls.rule = make_rule(
            OfficerRole.JUNIOR_ARCHITECT,
            escalation_time_hours=24,
            escalation_role=OfficerRole.ASSISTANT_ARCHITECT,
        )

    def test_only_old_open_assignments_are_overdue(self):
        old = self.submitted()
        self.submitted()
        self.backdate(old, hours=80)

        overdue = list(AssignmentService.find_overdue_assignments())

        self.assertEqual([r.application_id for r in overdue], [old.pk])
        self.assertEqual(list(AssignmentService.find_overdue_assignments(hours=100)), [])

    def test_decided_assignments_are_never_overdue(self):
        application = self.submitted()
        holder = self.je_holder(application)
        self.backdate(application, hours=80)
        WorkflowService.transition(application.pk, Stage.JE_REVIEW, Decision.APPROVED, holder)

        self.assertFalse(
            AssignmentService.find_overdue_assignments()
            .filter(stage=Stage.JE_REVIEW).exists()
        )

    def test_reminders_notify_each_overdue_officer(self):
        application = self.submitted()
        self.backdate(application, hours=80)

        sent = AssignmentService.send_delayed_reminders()

        self.assertEqual(sent, 1)
        reminder = Notification.objects.get(event_type="assignment_delayed")
        self.assertEqual(reminder.recipient, self.je1)

    def test_escalation_candidates_use_the_rule_threshold(self):
        late = self.submitted()
        self.submitted()
        self.backdate(late, hours=30)

        candidates = AssignmentService.escalation_candidates()

        self.assertEqual(len(candidates), 1)
        self.assertEqual(candidates[0]["assignment"].application_id, late.pk)
        self.assertEqual(candidates[0]["hours_waiting"], 30)
        self.assertEqual(candidates[0]["escalation_role"], OfficerRole.ASSISTANT_ARCHITECT)
        # Read-only: the holder is unchanged.
        self.assertEqual(self.je_holder(late), self.je1)

    def test_management_command(self):
        application = self.submitted()
        self.backdate(application, hours=50)
        out = StringIO()

        call_command("send_delayed_reminders", "--hours", "48", "--escalations", stdout=out)

        output = out.getvalue()
        self.assertIn("Sent 1 delayed-review reminder(s).", output)
        self.assertIn("1 escalation candidate(s)", output)
        self.assertIn(application.application_number, output)

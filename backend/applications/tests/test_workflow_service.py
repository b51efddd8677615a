"""
Service-level tests for the workflow state machine:
submission, stage authority, approvals, rejection and resubmission,
parallel Assistant review and the workflow-status projection.
"""

from __future__ import annotations

from django.test import TestCase

from accounts.models import OfficerRole
from applications.models import (
    ApplicationDocument,
    Decision,
    DocumentStatus,
    PositionApplication,
    PositionType,
    Stage,
    StageOutcome,
)
from applications.services import (
    ApplicationCreationService,
    WorkflowService,
    WorkflowStatusService,
)
from assignments.models import AssignmentRecord
from core.domain.exceptions import (
    DomainError,
    InvalidTransition,
    PermissionDenied,
    StaleStateError,
    UnauthorizedRoleError,
)
from core.models import Notification
from tests.factories import make_officer, make_user, round_robin_for_every_role


class WorkflowTestCase(TestCase):

    @classmethod
    def setUpTestData(cls):
        round_robin_for_every_role()
        cls.applicant = make_user("ravi_applicant")
        cls.je = make_officer("je_architect", OfficerRole.JUNIOR_ARCHITECT)
        cls.ae = make_officer("ae_architect", OfficerRole.ASSISTANT_ARCHITECT)
        cls.ee = make_officer("ee_officer", OfficerRole.EXECUTIVE_ENGINEER)
        cls.ce = make_officer("ce_officer", OfficerRole.CITY_ENGINEER)
        cls.clerk = make_officer("clerk_officer", OfficerRole.CLERK)

    def new_application(self, position_type=PositionType.ARCHITECT) -> PositionApplication:
        return ApplicationCreationService.create_application(
            self.applicant, {"position_type": position_type},
        )

    def submitted(self, position_type=PositionType.ARCHITECT) -> PositionApplication:
        application = self.new_application(position_type)
        return WorkflowService.submit(application.pk, self.applicant)

    def approve(self, application, stage, officer):
        return WorkflowService.transition(application.pk, stage, Decision.APPROVED, officer)

    def at_ee_review(self) -> PositionApplication:
        application = self.submitted()
        self.approve(application, Stage.JE_REVIEW, self.je)
        self.approve(application, Stage.AE_REVIEW, self.ae)
        application.refresh_from_db()
        return application


class TestCreateAndSubmit(WorkflowTestCase):

    def test_new_application_gets_number_and_starts_submitted(self):
        application = self.new_application()

        self.assertEqual(
            application.application_number,
            f"PMC-{application.created_at:%Y}-{application.pk:06d}",
        )
        self.assertEqual(application.current_stage, Stage.SUBMITTED)
        self.assertEqual(application.current_attempt, 1)
        self.assertEqual(application.applicant_name, self.applicant.get_full_name())

    def test_submit_moves_to_je_review_and_assigns_junior(self):
        application = self.submitted()
        application.refresh_from_db()

        self.assertEqual(application.current_stage, Stage.JE_REVIEW)
        self.assertIsNotNone(application.submitted_at)
        self.assertFalse(application.needs_manual_assignment)
        record = AssignmentRecord.objects.get(application=application, is_active=True)
        self.assertEqual(record.stage, Stage.JE_REVIEW)
        self.assertEqual(record.role, OfficerRole.JUNIOR_ARCHITECT)
        self.assertEqual(record.officer, self.je)
        self.assertTrue(
            StageOutcome.objects.filter(
                application=application, stage=Stage.SUBMITTED, officer=self.applicant,
            ).exists()
        )

    def test_only_applicant_can_submit(self):
        application = self.new_application()

        with self.assertRaises(PermissionDenied):
            WorkflowService.submit(application.pk, self.je)

        application.refresh_from_db()
        self.assertEqual(application.current_stage, Stage.SUBMITTED)

    def test_submit_twice_is_stale(self):
        application = self.submitted()

        with self.assertRaises(StaleStateError):
            WorkflowService.submit(application.pk, self.applicant)


class TestTransition(WorkflowTestCase):

    def test_approvals_walk_the_pipeline(self):
        application = self.at_ee_review()

        self.assertEqual(application.current_stage, Stage.EE_REVIEW)
        self.assertEqual(
            list(application.outcomes.values_list("stage", "decision")),
            [
                (Stage.SUBMITTED, Decision.APPROVED),
                (Stage.JE_REVIEW, Decision.APPROVED),
                (Stage.AE_REVIEW, Decision.APPROVED),
            ],
        )
        active = AssignmentRecord.objects.get(application=application, is_active=True, stage=Stage.EE_REVIEW)
        self.assertEqual(active.officer, self.ee)

    def test_wrong_role_on_ee_review_records_nothing(self):
        application = self.at_ee_review()

        with self.assertRaises(UnauthorizedRoleError):
            self.approve(application, Stage.EE_REVIEW, self.je)

        application.refresh_from_db()
        self.assertEqual(application.current_stage, Stage.EE_REVIEW)
        self.assertFalse(application.outcomes.filter(stage=Stage.EE_REVIEW).exists())

    def test_right_role_without_assignment_is_unauthorized(self):
        application = self.submitted()
        second_je = make_officer("je_second", OfficerRole.JUNIOR_ARCHITECT)

        with self.assertRaises(UnauthorizedRoleError):
            self.approve(application, Stage.JE_REVIEW, second_je)

    def test_inactive_officer_is_unauthorized(self):
        application = self.submitted()
        self.je.is_active = False
        self.je.save(update_fields=["is_active"])

        with self.assertRaises(UnauthorizedRoleError):
            self.approve(application, Stage.JE_REVIEW, self.je)

    def test_stale_stage_is_rejected_before_authorisation(self):
        application = self.submitted()

        with self.assertRaises(StaleStateError):
            self.approve(application, Stage.AE_REVIEW, self.ae)

    def test_invalid_decision(self):
        application = self.submitted()

        with self.assertRaises(DomainError):
            WorkflowService.transition(application.pk, Stage.JE_REVIEW, Decision.PENDING, self.je)

    def test_rejection_requires_comments(self):
        application = self.submitted()

        with self.assertRaises(DomainError):
            WorkflowService.transition(application.pk, Stage.JE_REVIEW, Decision.REJECTED, self.je, "  ")

        application.refresh_from_db()
        self.assertEqual(application.current_stage, Stage.JE_REVIEW)

    def test_reject_and_resubmit_starts_a_new_attempt(self):
        application = self.submitted()
        self.approve(application, Stage.JE_REVIEW, self.je)

        outcome = WorkflowService.transition(
            application.pk, Stage.AE_REVIEW, Decision.REJECTED, self.ae, "Experience proof missing.",
        )
        self.assertEqual(outcome.application.current_stage, Stage.REJECTED)
        self.assertEqual(outcome.application.rejected_at_stage, Stage.AE_REVIEW)
        self.assertTrue(
            Notification.objects.filter(
                recipient=self.applicant, event_type="application_rejected",
            ).exists()
        )

        application = WorkflowService.resubmit(application.pk, self.applicant, "Added the proof.")
        self.assertEqual(application.current_stage, Stage.AE_REVIEW)
        self.assertEqual(application.current_attempt, 2)
        self.assertEqual(application.rejected_at_stage, "")
        self.assertEqual(
            AssignmentRecord.objects.filter(
                application=application, stage=Stage.AE_REVIEW, is_active=True,
            ).count(),
            1,
        )

        self.approve(application, Stage.AE_REVIEW, self.ae)
        application.refresh_from_db()
        self.assertEqual(application.current_stage, Stage.EE_REVIEW)
        self.assertEqual(application.current_attempt, 1)
        self.assertEqual(
            list(
                application.outcomes.filter(stage=Stage.AE_REVIEW)
                .values_list("attempt_number", "decision")
            ),
            [(1, Decision.REJECTED), (2, Decision.APPROVED)],
        )

    def test_only_rejected_applications_can_be_resubmitted(self):
        application = self.submitted()

        with self.assertRaises(InvalidTransition):
            WorkflowService.resubmit(application.pk, self.applicant)

    def test_je_approval_needs_verified_documents(self):
        application = self.submitted()
        document = ApplicationDocument.objects.create(
            application=application, document_type="Degree", file_path="docs/degree.pdf",
        )

        with self.assertRaises(DomainError):
            self.approve(application, Stage.JE_REVIEW, self.je)

        document.verification_status = DocumentStatus.APPROVED
        document.save(update_fields=["verification_status"])
        self.approve(application, Stage.JE_REVIEW, self.je)
        application.refresh_from_db()
        self.assertEqual(application.current_stage, Stage.AE_REVIEW)

    def test_signing_stage_needs_a_signature(self):
        application = self.at_ee_review()
        self.approve(application, Stage.EE_REVIEW, self.ee)
        self.approve(application, Stage.CE_REVIEW, self.ce)
        self.approve(application, Stage.CLERK_PROCESSING, self.clerk)

        with self.assertRaises(DomainError):
            self.approve(application, Stage.EE_STAGE2_SIGN, self.ee)

        application.refresh_from_db()
        self.assertEqual(application.current_stage, Stage.EE_STAGE2_SIGN)

    def test_stage_outcomes_are_append_only(self):
        application = self.submitted()
        outcome = self.approve(application, Stage.JE_REVIEW, self.je)

        outcome.comments = "edited"
        with self.assertRaises(DomainError):
            outcome.save()
        with self.assertRaises(DomainError):
            outcome.delete()


class TestParallelAssistantReview(WorkflowTestCase):

    @classmethod
    def setUpTestData(cls):
        super().setUpTestData()
        cls.js1 = make_officer("js_one", OfficerRole.JUNIOR_SUPERVISOR1)
        cls.as1 = make_officer("as_one", OfficerRole.ASSISTANT_SUPERVISOR1)
        cls.as2 = make_officer("as_two", OfficerRole.ASSISTANT_SUPERVISOR2)

    def at_ae_review(self) -> PositionApplication:
        application = self.submitted(PositionType.SUPERVISOR1)
        self.approve(application, Stage.JE_REVIEW, self.js1)
        application.refresh_from_db()
        return application

    def test_both_assistants_are_assigned(self):
        application = self.at_ae_review()

        roles = set(
            AssignmentRecord.objects
            .filter(application=application, stage=Stage.AE_REVIEW, is_active=True)
            .values_list("role", flat=True)
        )
        self.assertEqual(roles, {OfficerRole.ASSISTANT_SUPERVISOR1, OfficerRole.ASSISTANT_SUPERVISOR2})

    def test_stage_advances_only_after_both_approve(self):
        application = self.at_ae_review()

        first = self.approve(application, Stage.AE_REVIEW, self.as1)
        self.assertEqual(first.application.current_stage, Stage.AE_REVIEW)

        second = self.approve(application, Stage.AE_REVIEW, self.as2)
        self.assertEqual(second.application.current_stage, Stage.EE_REVIEW)

    def test_first_rejection_fails_fast(self):
        application = self.at_ae_review()

        WorkflowService.transition(
            application.pk, Stage.AE_REVIEW, Decision.REJECTED, self.as1, "Site visit failed.",
        )
        with self.assertRaises(StaleStateError):
            self.approve(application, Stage.AE_REVIEW, self.as2)

        application.refresh_from_db()
        self.assertEqual(application.current_stage, Stage.REJECTED)
        self.assertEqual(application.rejected_at_stage, Stage.AE_REVIEW)

    def test_a_sub_review_is_decided_once(self):
        application = self.at_ae_review()
        self.approve(application, Stage.AE_REVIEW, self.as1)

        with self.assertRaises(StaleStateError):
            self.approve(application, Stage.AE_REVIEW, self.as1)

    def test_status_lists_each_sub_review(self):
        application = self.at_ae_review()
        self.approve(application, Stage.AE_REVIEW, self.as1)
        application.refresh_from_db()

        status = WorkflowStatusService.get_status(application)

        self.assertEqual(status["current_stage"], Stage.AE_REVIEW)
        self.assertEqual(status["next_stage"], Stage.EE_REVIEW)
        self.assertEqual(status["stage_number"], 3)
        self.assertEqual(status["total_stages"], 9)
        self.assertEqual(status["progress_percentage"], 25)
        decisions = {row["role"]: row["decision"] for row in status["sub_reviews"]}
        self.assertEqual(decisions, {
            OfficerRole.ASSISTANT_SUPERVISOR1: Decision.APPROVED,
            OfficerRole.ASSISTANT_SUPERVISOR2: Decision.PENDING,
        })
        self.assertIn(self.as2.get_full_name(), status["pending_action"])

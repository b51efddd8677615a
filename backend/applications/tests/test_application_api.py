from __future__ import annotations

from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from accounts.models import OfficerRole
from applications.models import DocumentStatus, PositionType, Stage
from tests.factories import login, make_officer, make_user, round_robin_for_every_role


class TestApplicationAPI(TestCase):

    @classmethod
    def setUpTestData(cls) -> None:
        round_robin_for_every_role()
        cls.applicant = make_user("kiran_applicant")
        cls.other_applicant = make_user("leela_applicant")
        cls.je = make_officer("je_struct", OfficerRole.JUNIOR_STRUCTURAL_ENGINEER)
        cls.idle_je = make_officer("je_idle", OfficerRole.JUNIOR_STRUCTURAL_ENGINEER)
        cls.ae = make_officer("ae_struct", OfficerRole.ASSISTANT_STRUCTURAL_ENGINEER)
        cls.ee = make_officer("ee_officer", OfficerRole.EXECUTIVE_ENGINEER)

    def setUp(self) -> None:
        self.client = APIClient()
        self.list_url = reverse("application-list")

    def as_user(self, user) -> None:
        login(self.client, user)

    def create_and_submit(self) -> dict:
        self.as_user(self.applicant)
        response = self.client.post(
            self.list_url,
            {"position_type": PositionType.STRUCTURAL_ENGINEER},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, msg=response.data)
        self.assertEqual(response.data["current_stage"], Stage.SUBMITTED)
        self.assertTrue(response.data["application_number"].startswith("PMC-"))

        response = self.client.post(
            reverse("application-submit", kwargs={"pk": response.data["id"]}), format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, msg=response.data)
        return response.data

    def decide(self, application_id: int, stage: str, decision: str, comments: str = ""):
        return self.client.post(
            reverse("application-transition", kwargs={"pk": application_id}),
            {"stage": stage, "decision": decision, "comments": comments},
            format="json",
        )

    # ── Access ──────────────────────────────────────────────────────

    def test_anonymous_is_rejected(self):
        response = self.client.get(self.list_url)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_invalid_position_type(self):
        self.as_user(self.applicant)
        response = self.client.post(self.list_url, {"position_type": "plumber"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_visibility_follows_assignment(self):
        application = self.create_and_submit()

        self.as_user(self.je)
        response = self.client.get(self.list_url)
        self.assertEqual([row["id"] for row in response.data], [application["id"]])

        self.as_user(self.idle_je)
        response = self.client.get(self.list_url)
        self.assertEqual(response.data, [])
        response = self.client.get(reverse("application-detail", kwargs={"pk": application["id"]}))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        self.as_user(self.other_applicant)
        response = self.client.get(self.list_url)
        self.assertEqual(response.data, [])

    def test_list_filters_by_stage(self):
        application = self.create_and_submit()

        response = self.client.get(self.list_url, {"current_stage": Stage.JE_REVIEW})
        self.assertEqual([row["id"] for row in response.data], [application["id"]])

        response = self.client.get(self.list_url, {"current_stage": Stage.COMPLETED})
        self.assertEqual(response.data, [])

    def test_other_user_cannot_submit(self):
        self.as_user(self.applicant)
        created = self.client.post(
            self.list_url, {"position_type": PositionType.ARCHITECT}, format="json",
        ).data

        self.as_user(self.other_applicant)
        response = self.client.post(reverse("application-submit", kwargs={"pk": created["id"]}))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    # ── Transition ──────────────────────────────────────────────────

    def test_assigned_junior_approves(self):
        application = self.create_and_submit()

        self.as_user(self.je)
        response = self.decide(application["id"], Stage.JE_REVIEW, "approved")

        self.assertEqual(response.status_code, status.HTTP_200_OK, msg=response.data)
        self.assertEqual(response.data["outcome"]["decision"], "approved")
        self.assertEqual(response.data["outcome"]["role"], OfficerRole.JUNIOR_STRUCTURAL_ENGINEER)
        self.assertEqual(response.data["application"]["current_stage"], Stage.AE_REVIEW)

    def test_rejection_without_comments_is_bad_request(self):
        application = self.create_and_submit()

        self.as_user(self.je)
        response = self.decide(application["id"], Stage.JE_REVIEW, "rejected")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_wrong_role_is_forbidden(self):
        application = self.create_and_submit()

        self.as_user(self.ae)
        response = self.decide(application["id"], Stage.JE_REVIEW, "approved")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["code"], "unauthorized_role")

    def test_stale_stage_is_conflict(self):
        application = self.create_and_submit()
        self.as_user(self.je)
        self.decide(application["id"], Stage.JE_REVIEW, "approved")

        response = self.decide(application["id"], Stage.JE_REVIEW, "approved")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "stale_state")

    def test_reject_and_resubmit(self):
        application = self.create_and_submit()
        self.as_user(self.je)
        response = self.decide(application["id"], Stage.JE_REVIEW, "rejected", "Degree certificate unreadable.")
        self.assertEqual(response.data["application"]["current_stage"], Stage.REJECTED)

        self.as_user(self.applicant)
        response = self.client.post(
            reverse("application-resubmit", kwargs={"pk": application["id"]}),
            {"comments": "Uploaded a clearer scan."},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, msg=response.data)
        self.assertEqual(response.data["current_stage"], Stage.JE_REVIEW)
        self.assertEqual(response.data["current_attempt"], 2)

        response = self.client.post(reverse("application-resubmit", kwargs={"pk": application["id"]}))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    # ── Read side ───────────────────────────────────────────────────

    def test_workflow_status_and_outcomes(self):
        application = self.create_and_submit()
        self.as_user(self.je)
        self.decide(application["id"], Stage.JE_REVIEW, "approved")

        self.as_user(self.applicant)
        response = self.client.get(reverse("application-workflow-status", kwargs={"pk": application["id"]}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["current_stage"], Stage.AE_REVIEW)
        self.assertEqual(response.data["next_stage"], Stage.EE_REVIEW)
        self.assertEqual(response.data["sub_reviews"][0]["officer_id"], self.ae.pk)
        self.assertFalse(response.data["needs_manual_assignment"])

        response = self.client.get(reverse("application-outcomes", kwargs={"pk": application["id"]}))
        self.assertEqual(
            [row["stage"] for row in response.data],
            [Stage.SUBMITTED, Stage.JE_REVIEW],
        )

    # ── Documents ───────────────────────────────────────────────────

    def test_document_verification_gates_junior_approval(self):
        application = self.create_and_submit()
        documents_url = reverse("application-documents", kwargs={"pk": application["id"]})

        response = self.client.post(
            documents_url,
            {"document_type": "Degree Certificate", "file_path": "uploads/degree.pdf"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, msg=response.data)
        document_id = response.data["id"]
        self.assertEqual(response.data["verification_status"], DocumentStatus.PENDING)

        self.as_user(self.je)
        response = self.decide(application["id"], Stage.JE_REVIEW, "approved")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        verify_url = reverse(
            "application-verify-document",
            kwargs={"pk": application["id"], "document_pk": document_id},
        )
        response = self.client.post(verify_url, {"status": DocumentStatus.REJECTED}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(verify_url, {"status": DocumentStatus.APPROVED}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, msg=response.data)
        self.assertEqual(response.data["verified_by"], self.je.pk)

        response = self.decide(application["id"], Stage.JE_REVIEW, "approved")
        self.assertEqual(response.status_code, status.HTTP_200_OK, msg=response.data)

    def test_only_assigned_junior_verifies(self):
        application = self.create_and_submit()
        document = self.client.post(
            reverse("application-documents", kwargs={"pk": application["id"]}),
            {"document_type": "Experience Letter", "file_path": "uploads/exp.pdf"},
            format="json",
        ).data

        self.as_user(self.idle_je)
        response = self.client.post(
            reverse(
                "application-verify-document",
                kwargs={"pk": application["id"], "document_pk": document["id"]},
            ),
            {"status": DocumentStatus.APPROVED},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

"""
Integration tests for core endpoints.

Scope in this file:
- GET  /api/core/reports/positions/...   (drill-down reports)
- GET  /api/core/constants/
- GET  /api/core/notifications/ and the read / read-all actions
"""

from datetime import timedelta

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from accounts.models import OfficerRole
from applications.models import Decision, PositionApplication, PositionType, Stage
from applications.services import ApplicationCreationService, WorkflowService
from core.models import Notification
from core.permissions_constants import CorePerms
from tests.factories import grant, login, make_officer, make_role, make_user, round_robin_for_every_role


class TestCoreEndpoints(TestCase):
    @classmethod
    def setUpTestData(cls):
        round_robin_for_every_role()
        cls.applicant = make_user("sana_applicant")
        cls.je = make_officer("je_arch", OfficerRole.JUNIOR_ARCHITECT)
        cls.js1 = make_officer("js_one", OfficerRole.JUNIOR_SUPERVISOR1)

        viewer_role = make_role("Report Viewer", hierarchy_level=1)
        grant(viewer_role, "core", CorePerms.CAN_VIEW_REPORTS)
        cls.viewer = make_user("report_viewer", role=viewer_role)

        def new(position_type):
            return ApplicationCreationService.create_application(
                cls.applicant, {"position_type": position_type},
            )

        cls.draft = new(PositionType.ARCHITECT)
        cls.in_review = new(PositionType.ARCHITECT)
        WorkflowService.submit(cls.in_review.pk, cls.applicant)
        cls.rejected = new(PositionType.SUPERVISOR1)
        WorkflowService.submit(cls.rejected.pk, cls.applicant)
        WorkflowService.transition(
            cls.rejected.pk, Stage.JE_REVIEW, Decision.REJECTED, cls.js1, "Incomplete experience record.",
        )

    def setUp(self):
        self.client = APIClient()

    # ── Reports ─────────────────────────────────────────────────────

    def test_position_summaries(self):
        login(self.client, self.viewer)
        response = self.client.get(reverse("core:report-positions"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        rows = {row["position_type"]: row for row in response.data}
        self.assertEqual(set(rows), set(PositionType.values))
        self.assertEqual(rows[PositionType.ARCHITECT]["total"], 2)
        self.assertEqual(rows[PositionType.ARCHITECT]["in_progress"], 1)
        self.assertEqual(rows[PositionType.SUPERVISOR1]["rejected"], 1)
        self.assertEqual(rows[PositionType.LICENCE_ENGINEER]["total"], 0)

    def test_stage_summaries(self):
        login(self.client, self.viewer)
        response = self.client.get(
            reverse("core:report-stages", kwargs={"position_type": PositionType.SUPERVISOR1}),
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        rows = {row["stage"]: row for row in response.data}
        self.assertEqual(len(response.data), 10)
        self.assertEqual(rows[Stage.REJECTED]["current_count"], 1)
        self.assertEqual(rows[Stage.JE_REVIEW]["rejected_count"], 1)
        self.assertEqual(rows[Stage.SUBMITTED]["approved_count"], 1)
        self.assertEqual(rows[Stage.JE_REVIEW]["order"], 2)

    def test_applications_at_stage(self):
        login(self.client, self.viewer)
        response = self.client.get(
            reverse(
                "core:report-applications",
                kwargs={"position_type": PositionType.ARCHITECT, "stage": Stage.JE_REVIEW},
            ),
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        row = response.data[0]
        self.assertEqual(row["application_number"], self.in_review.application_number)
        self.assertEqual(row["days_at_stage"], 0)
        self.assertEqual(
            row["assigned_officers"],
            [{"role": OfficerRole.JUNIOR_ARCHITECT, "officer_id": self.je.pk, "officer_name": self.je.get_full_name()}],
        )

    def test_days_at_stage_ignores_saves_that_keep_the_stage(self):
        PositionApplication.objects.filter(pk=self.in_review.pk).update(
            stage_entered_at=timezone.now() - timedelta(days=4, hours=1),
        )
        application = PositionApplication.objects.get(pk=self.in_review.pk)
        application.applicant_name = "Sana Shaikh"
        application.save()

        login(self.client, self.viewer)
        response = self.client.get(
            reverse(
                "core:report-applications",
                kwargs={"position_type": PositionType.ARCHITECT, "stage": Stage.JE_REVIEW},
            ),
        )

        self.assertEqual(response.data[0]["days_at_stage"], 4)

    def test_unknown_position_type_is_404(self):
        login(self.client, self.viewer)
        response = self.client.get(reverse("core:report-stages", kwargs={"position_type": "plumber"}))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_reports_need_permission(self):
        login(self.client, self.je)
        response = self.client.get(reverse("core:report-positions"))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    # ── Constants ───────────────────────────────────────────────────

    def test_get_constants_success_returns_required_enums_and_maps(self):
        response = self.client.get(reverse("core:system-constants"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        for key in (
            "position_types", "pipeline", "decisions", "document_statuses", "officer_roles",
            "assignment_strategies", "appointment_statuses", "signature_statuses",
            "stage_roles", "role_hierarchy",
        ):
            self.assertIn(key, response.data)

        self.assertEqual(response.data["pipeline"][0], Stage.SUBMITTED)
        self.assertEqual(response.data["pipeline"][-1], Stage.COMPLETED)
        self.assertEqual(
            response.data["stage_roles"][PositionType.SUPERVISOR2][Stage.AE_REVIEW],
            [OfficerRole.ASSISTANT_SUPERVISOR1, OfficerRole.ASSISTANT_SUPERVISOR2],
        )
        levels = [row["hierarchy_level"] for row in response.data["role_hierarchy"]]
        self.assertEqual(levels, sorted(levels, reverse=True))

    # ── Notifications ───────────────────────────────────────────────

    def test_notification_inbox(self):
        login(self.client, self.applicant)
        url = reverse("core:notification-list")

        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        events = {row["event_type"] for row in response.data}
        self.assertIn("stage_advanced", events)
        self.assertIn("application_rejected", events)
        total = len(response.data)

        first = response.data[0]["id"]
        response = self.client.post(reverse("core:notification-mark-as-read", kwargs={"pk": first}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["is_read"])

        response = self.client.get(url, {"unread": "true"})
        self.assertEqual(len(response.data), total - 1)

        response = self.client.post(reverse("core:notification-mark-all-as-read"))
        self.assertEqual(response.data, {"updated": total - 1})
        self.assertFalse(Notification.objects.filter(recipient=self.applicant, is_read=False).exists())

    def test_cannot_read_someone_elses_notification(self):
        foreign = Notification.objects.filter(recipient=self.je).first()
        self.assertIsNotNone(foreign)

        login(self.client, self.applicant)
        response = self.client.post(reverse("core:notification-mark-as-read", kwargs={"pk": foreign.pk}))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_notifications_require_authentication(self):
        response = self.client.get(reverse("core:notification-list"))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

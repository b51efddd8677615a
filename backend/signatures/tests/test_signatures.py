from __future__ import annotations

from datetime import timedelta
from unittest import mock

import requests
from django.db import connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from accounts.models import OfficerRole
from applications.models import Decision, PositionType, Stage
from applications.services import ApplicationCreationService, WorkflowService
from core.domain.exceptions import (
    Conflict,
    DomainError,
    HsmUnavailableError,
    NotFound,
    OtpAlreadyIssuedError,
    OtpAttemptsExceededError,
    OtpExpiredError,
    UnauthorizedRoleError,
)
from core.permissions_constants import SignaturesPerms
from signatures.hsm import (
    HsmOtpRejected,
    HsmSigningError,
    HsmTransportError,
    HttpHsmClient,
    call_with_retry,
)
from signatures.models import DigitalSignature, SignatureStatus
from signatures.services import SignatureService
from signatures.tests.fakes import FAKE_HSM_SETTINGS, FakeHsmClient
from tests.factories import grant, login, make_officer, make_role, make_user, round_robin_for_every_role

DOCUMENT = "certificates/PMC-architect.pdf"


@override_settings(PMCRMS=FAKE_HSM_SETTINGS)
class SignatureTestCase(TestCase):

    @classmethod
    def setUpTestData(cls) -> None:
        round_robin_for_every_role()
        cls.applicant = make_user("priya_applicant")
        cls.stranger = make_user("rohan_applicant")
        cls.je = make_officer("je_arch", OfficerRole.JUNIOR_ARCHITECT)
        cls.ae = make_officer("ae_arch", OfficerRole.ASSISTANT_ARCHITECT)
        cls.ee = make_officer("ee_officer", OfficerRole.EXECUTIVE_ENGINEER)

    def setUp(self) -> None:
        FakeHsmClient.reset()
        application = ApplicationCreationService.create_application(
            self.applicant, {"position_type": PositionType.ARCHITECT},
        )
        WorkflowService.submit(application.pk, self.applicant)
        WorkflowService.transition(application.pk, Stage.JE_REVIEW, Decision.APPROVED, self.je)
        WorkflowService.transition(application.pk, Stage.AE_REVIEW, Decision.APPROVED, self.ae)
        application.refresh_from_db()
        self.application = application

    def issue(self, officer=None) -> DigitalSignature:
        return SignatureService.generate_otp(
            self.application.pk, Stage.EE_REVIEW, officer or self.ee, document_path=DOCUMENT,
        )

    def apply(self, otp: str) -> DigitalSignature:
        return SignatureService.apply_signature(self.application.pk, Stage.EE_REVIEW, self.ee, otp)


class TestGenerateOtp(SignatureTestCase):

    def test_otp_is_issued_with_role_key_label(self):
        record = self.issue()

        self.assertEqual(record.status, SignatureStatus.OTP_ISSUED)
        self.assertEqual(record.key_label, "EE-KEY")
        self.assertEqual(record.role, OfficerRole.EXECUTIVE_ENGINEER)
        self.assertEqual(record.original_document_path, DOCUMENT)
        self.assertAlmostEqual(
            (record.otp_expires_at - record.otp_issued_at).total_seconds(), 300, delta=1,
        )
        self.assertEqual(FakeHsmClient.calls[0][0], "request_otp")
        self.assertEqual(FakeHsmClient.calls[0][1]["klabel"], "EE-KEY")

    def test_officer_key_label_wins(self):
        self.ee.hsm_key_label = "EE-PERSONAL"
        self.ee.save(update_fields=["hsm_key_label"])

        record = self.issue()

        self.assertEqual(record.key_label, "EE-PERSONAL")

    def test_missing_key_label(self):
        with override_settings(PMCRMS={**FAKE_HSM_SETTINGS, "HSM_KEY_LABELS": {}}):
            with self.assertRaises(DomainError):
                self.issue()

    def test_only_the_assigned_officer(self):
        with self.assertRaises(UnauthorizedRoleError):
            self.issue(officer=self.ae)

    def test_outstanding_otp_blocks_a_second_one(self):
        self.issue()

        with self.assertRaises(OtpAlreadyIssuedError):
            self.issue()

    def test_expired_otp_is_replaced_on_the_same_record(self):
        first = self.issue()
        DigitalSignature.objects.filter(pk=first.pk).update(
            otp_expires_at=timezone.now() - timedelta(seconds=1),
        )

        second = self.issue()

        self.assertEqual(second.pk, first.pk)
        self.assertEqual(second.status, SignatureStatus.OTP_ISSUED)
        self.assertNotEqual(second.hsm_transaction_id, first.hsm_transaction_id)
        self.assertGreater(second.otp_expires_at, timezone.now())

    def test_transport_errors_are_retried(self):
        FakeHsmClient.transport_failures = 2

        record = self.issue()

        self.assertEqual(record.status, SignatureStatus.OTP_ISSUED)
        self.assertEqual(len(FakeHsmClient.calls), 3)

    def test_unreachable_hsm_leaves_no_record(self):
        FakeHsmClient.transport_failures = 10

        with self.assertRaises(HsmUnavailableError):
            self.issue()

        self.assertEqual(len(FakeHsmClient.calls), 3)
        self.assertFalse(DigitalSignature.objects.exists())


class TestApplySignature(SignatureTestCase):

    def test_correct_otp_signs_and_links_to_the_outcome(self):
        self.issue()

        record = self.apply("123456")

        self.assertEqual(record.status, SignatureStatus.SIGNED)
        self.assertEqual(record.signed_document_path, f"signed/{DOCUMENT}")
        self.assertIsNotNone(record.signed_at)

        outcome = WorkflowService.transition(
            self.application.pk, Stage.EE_REVIEW, Decision.APPROVED, self.ee,
        )
        self.assertEqual(outcome.digital_signature, record)

    def test_three_wrong_otps_fail_the_record(self):
        self.issue()

        first = self.apply("000000")
        self.assertEqual(first.status, SignatureStatus.OTP_ISSUED)
        self.assertEqual(first.otp_attempts, 1)
        self.apply("000000")
        third = self.apply("000000")

        self.assertEqual(third.status, SignatureStatus.FAILED)
        self.assertEqual(third.otp_attempts, 3)
        self.assertIsNotNone(third.failed_at)

        with self.assertRaises(OtpAttemptsExceededError):
            self.apply("123456")

    def test_new_otp_after_failure_waits_for_cooldown(self):
        self.issue()
        for _ in range(3):
            failed = self.apply("999999")

        with self.assertRaises(OtpAttemptsExceededError):
            self.issue()

        DigitalSignature.objects.filter(pk=failed.pk).update(
            failed_at=timezone.now() - timedelta(seconds=61),
        )
        fresh = self.issue()

        self.assertNotEqual(fresh.pk, failed.pk)
        self.assertEqual(fresh.status, SignatureStatus.OTP_ISSUED)
        self.assertEqual(fresh.otp_attempts, 0)

    def test_expired_otp_returns_record_to_pending(self):
        record = self.issue()
        DigitalSignature.objects.filter(pk=record.pk).update(
            otp_expires_at=timezone.now() - timedelta(seconds=1),
        )

        with self.assertRaises(OtpExpiredError):
            self.apply("123456")

        record.refresh_from_db()
        self.assertEqual(record.status, SignatureStatus.PENDING)

    def test_hsm_refusal_fails_the_record(self):
        self.issue()
        FakeHsmClient.sign_error = "Key locked"

        record = self.apply("123456")

        self.assertEqual(record.status, SignatureStatus.FAILED)
        self.assertEqual(record.failure_reason, "Key locked")

    def test_apply_without_otp(self):
        with self.assertRaises(NotFound):
            self.apply("123456")

    def test_unreachable_hsm_keeps_the_otp_usable(self):
        record = self.issue()
        FakeHsmClient.transport_failures = 10

        with self.assertRaises(HsmUnavailableError):
            self.apply("123456")

        record.refresh_from_db()
        self.assertEqual(record.status, SignatureStatus.OTP_ISSUED)
        self.assertEqual(record.otp_attempts, 0)


@override_settings(PMCRMS=FAKE_HSM_SETTINGS)
class TestHsmRoundTripHoldsNoLock(TransactionTestCase):
    """Runs with real commits so an open transaction is observable."""

    def setUp(self) -> None:
        FakeHsmClient.reset()
        round_robin_for_every_role()
        applicant = make_user("kavya_applicant")
        je = make_officer("je_lock", OfficerRole.JUNIOR_ARCHITECT)
        ae = make_officer("ae_lock", OfficerRole.ASSISTANT_ARCHITECT)
        self.ee = make_officer("ee_lock", OfficerRole.EXECUTIVE_ENGINEER)
        application = ApplicationCreationService.create_application(
            applicant, {"position_type": PositionType.ARCHITECT},
        )
        WorkflowService.submit(application.pk, applicant)
        WorkflowService.transition(application.pk, Stage.JE_REVIEW, Decision.APPROVED, je)
        WorkflowService.transition(application.pk, Stage.AE_REVIEW, Decision.APPROVED, ae)
        self.application = application

    def test_hsm_is_called_outside_any_transaction(self):
        in_transaction = []
        request_otp, sign = FakeHsmClient.request_otp, FakeHsmClient.sign

        def watch(method):
            def wrapper(client, **kwargs):
                in_transaction.append(connection.in_atomic_block)
                return method(client, **kwargs)
            return wrapper

        with mock.patch.object(FakeHsmClient, "request_otp", watch(request_otp)), \
                mock.patch.object(FakeHsmClient, "sign", watch(sign)):
            SignatureService.generate_otp(self.application.pk, Stage.EE_REVIEW, self.ee, DOCUMENT)
            wrong = SignatureService.apply_signature(self.application.pk, Stage.EE_REVIEW, self.ee, "000000")
            signed = SignatureService.apply_signature(self.application.pk, Stage.EE_REVIEW, self.ee, "123456")

        self.assertEqual(in_transaction, [False, False, False])
        self.assertEqual(wrong.otp_attempts, 1)
        self.assertEqual(signed.status, SignatureStatus.SIGNED)

    def test_otp_consumed_meanwhile_is_a_conflict(self):
        record = SignatureService.generate_otp(self.application.pk, Stage.EE_REVIEW, self.ee, DOCUMENT)
        sign = FakeHsmClient.sign

        def sign_after_a_concurrent_signing(client, **kwargs):
            DigitalSignature.objects.filter(pk=record.pk).update(status=SignatureStatus.SIGNED)
            return sign(client, **kwargs)

        with mock.patch.object(FakeHsmClient, "sign", sign_after_a_concurrent_signing):
            with self.assertRaises(Conflict):
                SignatureService.apply_signature(self.application.pk, Stage.EE_REVIEW, self.ee, "000000")

        record.refresh_from_db()
        self.assertEqual(record.otp_attempts, 0)


class TestSignatureAudit(SignatureTestCase):

    def test_applicant_and_auditor_see_the_trail(self):
        self.issue()
        auditor_role = make_role("Signature Auditor", hierarchy_level=1)
        grant(auditor_role, "signatures", SignaturesPerms.CAN_VIEW_SIGNATURE_AUDIT)
        auditor = make_user("audit_desk", role=auditor_role)

        self.assertEqual(SignatureService.list_signatures(self.applicant, self.application.pk).count(), 1)
        self.assertEqual(SignatureService.list_signatures(auditor, self.application.pk).count(), 1)
        with self.assertRaises(NotFound):
            SignatureService.list_signatures(self.stranger, self.application.pk)


class TestSignatureAPI(SignatureTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.client = APIClient()
        login(self.client, self.ee)
        self.body = {"application_id": self.application.pk, "stage": Stage.EE_REVIEW}

    def test_issue_and_apply(self):
        response = self.client.post(
            reverse("signature-generate-otp"), {**self.body, "document_path": DOCUMENT}, format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, msg=response.data)
        self.assertEqual(response.data["status"], SignatureStatus.OTP_ISSUED)

        response = self.client.post(
            reverse("signature-generate-otp"), self.body, format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self.client.post(reverse("signature-apply"), {**self.body, "otp": "12ab"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("otp", response.data)

        response = self.client.post(reverse("signature-apply"), {**self.body, "otp": "654321"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["otp_attempts"], 1)

        response = self.client.post(reverse("signature-apply"), {**self.body, "otp": "123456"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, msg=response.data)
        self.assertEqual(response.data["status"], SignatureStatus.SIGNED)

        response = self.client.get(reverse("signature-list"), {"application": self.application.pk})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_status_codes_for_hsm_failures(self):
        FakeHsmClient.transport_failures = 10
        response = self.client.post(reverse("signature-generate-otp"), self.body, format="json")
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)

        FakeHsmClient.reset()
        record = self.issue()
        DigitalSignature.objects.filter(pk=record.pk).update(
            otp_expires_at=timezone.now() - timedelta(seconds=1),
        )
        response = self.client.post(reverse("signature-apply"), {**self.body, "otp": "123456"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_410_GONE)


# ── HTTP client ─────────────────────────────────────────────────────


def _response(status_code: int, body: dict | None = None) -> mock.Mock:
    response = mock.Mock(status_code=status_code)
    response.json.return_value = body or {}
    return response


class TestHttpHsmClient(SimpleTestCase):

    def make_client(self, *responses) -> tuple[HttpHsmClient, mock.Mock]:
        session = mock.Mock()
        session.post.side_effect = list(responses)
        client = HttpHsmClient(
            otp_url="https://hsm.test/otp",
            signer_url="https://hsm.test/sign",
            timeout=5,
            session=session,
        )
        return client, session

    def test_request_otp_posts_hsm_fields(self):
        client, session = self.make_client(_response(200, {"status": 1, "succMsg": "sent"}))

        client.request_otp(transaction_id="42-abc", key_label="EE-KEY")

        session.post.assert_called_once_with(
            "https://hsm.test/otp",
            json={"otptype": "single", "ptno": "1", "txn": "42-abc", "klabel": "EE-KEY"},
            timeout=5,
        )

    def test_sign_success(self):
        client, _ = self.make_client(
            _response(200, {"status": 1, "txn": "42-abc", "signed_document_path": "signed/x.pdf"}),
        )

        result = client.sign(transaction_id="42-abc", key_label="EE-KEY", otp="123456", document_path="x.pdf")

        self.assertEqual(result["signed_document_path"], "signed/x.pdf")

    def test_error_classes(self):
        client, _ = self.make_client(
            _response(200, {"status": 0, "errCode": "INVALID_OTP", "errMsg": "Wrong OTP"}),
            _response(200, {"status": 0, "errCode": "KEY_LOCKED", "errMsg": "Key locked"}),
            _response(503),
            _response(400),
        )
        kwargs = {"transaction_id": "t", "key_label": "k", "otp": "1234", "document_path": "d"}

        with self.assertRaises(HsmOtpRejected):
            client.sign(**kwargs)
        with self.assertRaises(HsmSigningError):
            client.sign(**kwargs)
        with self.assertRaises(HsmTransportError):
            client.sign(**kwargs)
        with self.assertRaises(HsmSigningError):
            client.sign(**kwargs)

    def test_timeouts_are_transport_errors(self):
        client, _ = self.make_client(requests.Timeout("read timed out"))

        with self.assertRaises(HsmTransportError):
            client.request_otp(transaction_id="t", key_label="k")

    def test_unconfigured_endpoint(self):
        session = mock.Mock()
        with override_settings(PMCRMS={"HSM_OTP_URL": ""}):
            client = HttpHsmClient(timeout=5, session=session)

        with self.assertRaises(HsmTransportError):
            client.request_otp(transaction_id="t", key_label="k")
        session.post.assert_not_called()


class TestCallWithRetry(SimpleTestCase):

    @override_settings(PMCRMS={"HSM_MAX_RETRIES": 2, "HSM_BACKOFF_SECONDS": 0.5})
    def test_exponential_backoff_then_give_up(self):
        func = mock.Mock(side_effect=HsmTransportError("down"))

        with mock.patch("signatures.hsm.time.sleep") as sleep:
            with self.assertRaises(HsmTransportError):
                call_with_retry(func, key_label="k")

        self.assertEqual(func.call_count, 3)
        self.assertEqual([c.args[0] for c in sleep.call_args_list], [0.5, 1.0])

    def test_other_errors_are_not_retried(self):
        func = mock.Mock(side_effect=HsmOtpRejected("no"))

        with self.assertRaises(HsmOtpRejected):
            call_with_retry(func)

        self.assertEqual(func.call_count, 1)

"""
Signatures app Service Layer — the Digital Signature Coordinator.

Architecture
------------
- ``SignatureService`` — OTP issue, signature application and the
  signature audit trail.

Flow
----
1. ``generate_otp``   — the officer assigned to a stage asks the HSM to
   send an OTP.  The record moves to OTP_ISSUED with a TTL.
2. ``apply_signature`` — the officer submits the OTP; the HSM validates
   it and signs the document.
3. ``WorkflowService.transition`` links the SIGNED record to the stage
   outcome (and requires it on the stage-2 signing stages).

Failure handling
----------------
- Wrong OTP: ``otp_attempts`` grows; at ``OTP_MAX_ATTEMPTS`` the record
  is FAILED.  The updated record is returned, not raised, so the count
  is committed.
- Expired OTP: the record goes back to PENDING (committed) and
  ``OtpExpiredError`` is raised.  A new OTP can then be requested.
- HSM unreachable: retried with backoff, then ``HsmUnavailableError``;
  the record is left untouched.
- Other HSM errors while signing: FAILED with the reason.
- The OTP was consumed by another request during the HSM call:
  ``Conflict``, and this result is discarded.
- After a FAILED record, a new OTP can be requested only once
  ``OTP_COOLDOWN_SECONDS`` have passed.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Any

from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from applications.models import PositionApplication
from applications.services import ApplicationQueryService, WorkflowService
from core.constants import pmcrms_setting
from core.domain.exceptions import (
    Conflict,
    DomainError,
    HsmUnavailableError,
    NotFound,
    OtpAlreadyIssuedError,
    OtpAttemptsExceededError,
    OtpExpiredError,
    StaleStateError,
)
from core.domain.transactions import lock_for_update
from core.permissions_constants import SignaturesPerms

from .hsm import (
    HsmOtpRejected,
    HsmSigningError,
    HsmTransportError,
    call_with_retry,
    get_hsm_client,
)
from .models import DigitalSignature, SignatureStatus

logger = logging.getLogger(__name__)

_VIEW_AUDIT = f"signatures.{SignaturesPerms.CAN_VIEW_SIGNATURE_AUDIT}"


class SignatureService:
    """
    Locking
    -------
    The HSM round trip can take several timeouts plus backoff, so it never
    runs while the application row is locked.  Each operation validates
    under the application lock, calls the HSM with no lock held, then
    records the result in a second short transaction that re-checks the
    state it validated.  Two officers racing on the same record may both
    reach the HSM; only the first result is recorded and the other caller
    gets a ``Conflict`` (or ``OtpAlreadyIssuedError``).
    """

    # ── OTP ─────────────────────────────────────────────────────────

    @staticmethod
    def generate_otp(
        application_id: int,
        stage: str,
        officer: Any,
        document_path: str = "",
    ) -> DigitalSignature:
        """
        Ask the HSM to send an OTP for signing ``stage`` of the application.

        Returns
        -------
        DigitalSignature
            The record in ``OTP_ISSUED``.

        Raises
        ------
        StaleStateError
            The application is not at ``stage``.
        UnauthorizedRoleError
            The officer is not assigned to the stage.
        OtpAttemptsExceededError
            The last attempt failed less than ``OTP_COOLDOWN_SECONDS`` ago.
        OtpAlreadyIssuedError
            An unexpired OTP is outstanding.
        HsmUnavailableError
            The HSM could not be reached after retries.
        """
        with transaction.atomic():
            record = SignatureService._record_for_new_otp(application_id, stage, officer)
        key_label = record.key_label
        transaction_id = f"{application_id}-{uuid.uuid4().hex[:16]}"

        client = get_hsm_client()
        try:
            call_with_retry(
                client.request_otp,
                transaction_id=transaction_id,
                key_label=key_label,
            )
        except HsmTransportError as exc:
            logger.error("HSM unreachable while issuing OTP for %s: %s", application_id, exc)
            raise HsmUnavailableError("The signing service is unavailable. Please try again later.")
        except HsmSigningError as exc:
            logger.warning("HSM refused OTP for application %s: %s", application_id, exc)
            raise DomainError(f"The signing service refused to send an OTP: {exc}")

        with transaction.atomic():
            # A concurrent request may have issued an OTP meanwhile.
            record = SignatureService._record_for_new_otp(application_id, stage, officer)
            record.key_label = key_label
            if document_path:
                record.original_document_path = document_path
            issued_at = timezone.now()
            record.status = SignatureStatus.OTP_ISSUED
            record.hsm_transaction_id = transaction_id
            record.otp_attempts = 0
            record.otp_issued_at = issued_at
            record.otp_expires_at = issued_at + timedelta(seconds=pmcrms_setting("OTP_TTL_SECONDS"))
            record.save()
        logger.info(
            "OTP issued for application %s stage %s to %s (txn %s)",
            application_id, stage, officer.username, transaction_id,
        )
        return record

    @staticmethod
    def _record_for_new_otp(application_id: int, stage: str, officer: Any) -> DigitalSignature:
        """
        Lock the application, check that ``officer`` may request an OTP
        and return the (possibly unsaved) record the OTP will belong to.
        """
        application = lock_for_update(PositionApplication, application_id)
        if application.current_stage != stage:
            raise StaleStateError(expected=stage, actual=application.current_stage)
        role = WorkflowService.authorize_officer(application, stage, officer)

        now = timezone.now()
        latest = SignatureService._latest(application, stage, officer, lock=True)
        if latest is not None and latest.status == SignatureStatus.SIGNED:
            raise Conflict(f"Stage '{stage}' is already signed by {officer.username}.")
        if latest is not None and latest.status == SignatureStatus.FAILED:
            cooldown = timedelta(seconds=pmcrms_setting("OTP_COOLDOWN_SECONDS"))
            if latest.failed_at and now - latest.failed_at < cooldown:
                raise OtpAttemptsExceededError(
                    "Too many failed attempts. Please wait before requesting a new OTP."
                )

        if latest is not None and latest.status == SignatureStatus.OTP_ISSUED:
            if latest.otp_expires_at and latest.otp_expires_at > now:
                raise OtpAlreadyIssuedError(
                    f"An OTP was already sent and is valid until {latest.otp_expires_at:%H:%M:%S}."
                )
            logger.info("Signature %s: OTP expired, issuing a new one", latest.pk)
            record = latest
            record.status = SignatureStatus.PENDING
        elif latest is not None and latest.status == SignatureStatus.PENDING:
            record = latest
        else:
            record = DigitalSignature(
                application=application,
                stage=stage,
                officer=officer,
                role=role,
                attempt_number=application.current_attempt,
            )

        record.key_label = SignatureService.resolve_key_label(officer, role)
        return record

    # ── Signing ─────────────────────────────────────────────────────

    @staticmethod
    def apply_signature(
        application_id: int,
        stage: str,
        officer: Any,
        otp: str,
        document_path: str = "",
    ) -> DigitalSignature:
        """
        Validate ``otp`` with the HSM and sign the document.

        Returns
        -------
        DigitalSignature
            ``SIGNED`` on success.  On a wrong OTP the record is returned
            with the increased ``otp_attempts`` (``FAILED`` once the limit
            is reached); on an HSM signing error it is returned ``FAILED``.

        Raises
        ------
        NotFound
            No OTP is outstanding.
        OtpAttemptsExceededError
            The latest attempt already failed.
        OtpExpiredError
            The OTP expired; the record was moved back to ``PENDING``.
        HsmUnavailableError
            The HSM could not be reached after retries.
        Conflict
            A concurrent request consumed the OTP first.
        """
        record = SignatureService._outstanding_otp(application_id, stage, officer)
        document = document_path or record.original_document_path

        client = get_hsm_client()
        try:
            result = call_with_retry(
                client.sign,
                transaction_id=record.hsm_transaction_id,
                key_label=record.key_label,
                otp=otp,
                document_path=document,
            )
        except HsmTransportError as exc:
            logger.error("HSM unreachable while signing %s: %s", record.pk, exc)
            raise HsmUnavailableError("The signing service is unavailable. Please try again later.")
        except HsmOtpRejected:
            return SignatureService._record_wrong_otp(record)
        except HsmSigningError as exc:
            return SignatureService._record_failure(record, str(exc))
        return SignatureService._record_signed(record, result, document)

    @staticmethod
    def _outstanding_otp(application_id: int, stage: str, officer: Any) -> DigitalSignature:
        with transaction.atomic():
            application = lock_for_update(PositionApplication, application_id)
            if application.current_stage != stage:
                raise StaleStateError(expected=stage, actual=application.current_stage)
            WorkflowService.authorize_officer(application, stage, officer)

            record = SignatureService._latest(application, stage, officer, lock=True)
            if record is None or record.status != SignatureStatus.OTP_ISSUED:
                if record is not None and record.status == SignatureStatus.FAILED:
                    raise OtpAttemptsExceededError(
                        "This signature attempt has failed. Request a new OTP after the cooldown."
                    )
                if record is not None and record.status == SignatureStatus.SIGNED:
                    raise Conflict(f"Stage '{stage}' is already signed.")
                raise NotFound("No OTP has been issued for this signature. Request one first.")

            if record.otp_expires_at is not None and record.otp_expires_at > timezone.now():
                return record

            record.status = SignatureStatus.PENDING
            record.save(update_fields=["status", "updated_at"])
            logger.info("Signature %s: OTP expired before use", record.pk)

        raise OtpExpiredError("The OTP has expired. Please request a new one.")

    @staticmethod
    def _reload_issued(record: DigitalSignature) -> DigitalSignature:
        """Re-read ``record`` under a row lock; it must still hold the same OTP."""
        current = DigitalSignature.objects.select_for_update().get(pk=record.pk)
        if (
            current.status != SignatureStatus.OTP_ISSUED
            or current.hsm_transaction_id != record.hsm_transaction_id
        ):
            raise Conflict("This OTP was used by another request. Check the signature status.")
        return current

    @staticmethod
    @transaction.atomic
    def _record_wrong_otp(record: DigitalSignature) -> DigitalSignature:
        record = SignatureService._reload_issued(record)
        record.otp_attempts += 1
        if record.otp_attempts >= pmcrms_setting("OTP_MAX_ATTEMPTS"):
            record.status = SignatureStatus.FAILED
            record.failed_at = timezone.now()
            record.failure_reason = "Maximum OTP attempts exceeded."
        record.save()
        logger.warning(
            "Signature %s: wrong OTP (%d attempt(s), status %s)",
            record.pk, record.otp_attempts, record.status,
        )
        return record

    @staticmethod
    @transaction.atomic
    def _record_failure(record: DigitalSignature, reason: str) -> DigitalSignature:
        record = SignatureService._reload_issued(record)
        record.status = SignatureStatus.FAILED
        record.failed_at = timezone.now()
        record.failure_reason = reason
        record.save()
        logger.warning("Signature %s failed at the HSM: %s", record.pk, reason)
        return record

    @staticmethod
    @transaction.atomic
    def _record_signed(record: DigitalSignature, result: dict[str, Any], document: str) -> DigitalSignature:
        record = SignatureService._reload_issued(record)
        record.status = SignatureStatus.SIGNED
        record.signed_at = timezone.now()
        record.original_document_path = document
        record.signed_document_path = result.get("signed_document_path") or document
        record.hsm_transaction_id = result.get("txn") or record.hsm_transaction_id
        record.save()
        logger.info(
            "Signature %s applied for application %s stage %s by %s",
            record.pk, record.application_id, record.stage, record.officer_id,
        )
        return record

    # ── Audit / helpers ─────────────────────────────────────────────

    @staticmethod
    def list_signatures(user: Any, application_id: int) -> QuerySet[DigitalSignature]:
        """Signature audit trail of one application, newest first."""
        if not user.has_perm(_VIEW_AUDIT):
            ApplicationQueryService.get_application(application_id, user)
        elif not PositionApplication.objects.filter(pk=application_id).exists():
            raise NotFound(f"Application with id {application_id} not found.")
        return (
            DigitalSignature.objects
            .filter(application_id=application_id)
            .select_related("officer")
        )

    @staticmethod
    def resolve_key_label(officer: Any, role: str) -> str:
        """The officer's own HSM key label, else the default for the role."""
        label = officer.hsm_key_label or pmcrms_setting("HSM_KEY_LABELS").get(role, "")
        if not label:
            raise DomainError(
                f"No HSM key label is configured for {officer.username} ({role})."
            )
        return label

    @staticmethod
    def _latest(
        application: PositionApplication,
        stage: str,
        officer: Any,
        lock: bool = False,
    ) -> DigitalSignature | None:
        qs = DigitalSignature.objects.filter(
            application=application,
            stage=stage,
            officer=officer,
            attempt_number=application.current_attempt,
        )
        if lock:
            qs = qs.select_for_update()
        return qs.order_by("-created_at", "-id").first()

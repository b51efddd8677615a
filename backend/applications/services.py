"""
Applications app Service Layer.

This module is the **single source of truth** for all business logic
in the ``applications`` app.  Views must remain thin: validate input via
serializers, call a service method, and return the result wrapped in
a DRF ``Response``.

Architecture
------------
- ``ApplicationQueryService``       — Permission-scoped querysets.
- ``ApplicationCreationService``    — New applications in SUBMITTED.
- ``WorkflowService``               — The transition function, stage
                                      authorisation, submit / resubmit.
- ``WorkflowStatusService``         — Read-only workflow-status projection.
- ``DocumentVerificationService``   — Document registration and JE
                                      verification.

Transition Contract
-------------------
``WorkflowService.transition(application_id, stage, decision, officer)``

1. Lock the application row (serialises every writer of this application).
2. ``current_stage`` must equal ``stage``          → else ``StaleStateError``.
3. Officer role ∈ required roles of the stage and
   officer holds the active assignment for it       → else ``UnauthorizedRoleError``.
4. The officer's sub-review has no outcome yet in
   the current attempt                              → else ``StaleStateError``.
5. APPROVED: write the outcome; once every required role approved,
   advance along ``workflow.NEXT_STAGE`` and run the Assignment Engine
   for the new stage.
   REJECTED: write the outcome; ``current_stage = REJECTED``.
"""

from __future__ import annotations

import logging
from typing import Any

from django.db import transaction
from django.db.models import Max, Q, QuerySet
from django.utils import timezone

from assignments.models import AssignmentRecord
from assignments.services import AssignmentService
from core.constants import APPLICATION_NUMBER_PREFIX
from core.domain.access import apply_permission_scope
from core.domain.exceptions import (
    DomainError,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    StaleStateError,
    UnauthorizedRoleError,
)
from core.domain.notifications import NotificationService
from core.domain.transactions import lock_for_update
from core.permissions_constants import ApplicationsPerms

from .models import (
    ApplicationDocument,
    Decision,
    DocumentStatus,
    PositionApplication,
    Stage,
    StageOutcome,
)
from .workflow import (
    PIPELINE,
    SIGNATURE_REQUIRED_STAGES,
    STAGE_ACTIONS,
    next_stage,
    progress_percentage,
    required_roles,
    stage_number,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  Query Service
# ═══════════════════════════════════════════════════════════════════

APPLICATION_SCOPE_RULES = [
    (f"applications.{ApplicationsPerms.CAN_VIEW_ALL_APPLICATIONS}",
     lambda qs, u: qs),
    (f"applications.{ApplicationsPerms.CAN_VIEW_ASSIGNED_APPLICATIONS}",
     lambda qs, u: qs.filter(assignments__officer=u)),
]


class ApplicationQueryService:
    """Filtered querysets for listing and retrieving applications."""

    @staticmethod
    def get_filtered_queryset(
        user: Any,
        filters: dict[str, Any] | None = None,
    ) -> QuerySet[PositionApplication]:
        """
        Return the applications visible to ``user``.

        Officers see what their permissions scope allows; everybody also
        sees the applications they submitted themselves.

        Parameters
        ----------
        user : User
        filters : dict, optional
            ``position_type``, ``current_stage``, ``needs_manual_assignment``.
        """
        base = PositionApplication.objects.select_related("applicant")
        scoped = apply_permission_scope(
            base, user, scope_rules=APPLICATION_SCOPE_RULES, default="none",
        )
        qs = (scoped | base.filter(applicant=user)).distinct()

        filters = filters or {}
        if filters.get("position_type"):
            qs = qs.filter(position_type=filters["position_type"])
        if filters.get("current_stage"):
            qs = qs.filter(current_stage=filters["current_stage"])
        if filters.get("needs_manual_assignment") is not None:
            qs = qs.filter(needs_manual_assignment=filters["needs_manual_assignment"])
        return qs.order_by("-created_at")

    @staticmethod
    def get_application(pk: int, user: Any) -> PositionApplication:
        """Retrieve one visible application or raise ``NotFound``."""
        try:
            return ApplicationQueryService.get_filtered_queryset(user).get(pk=pk)
        except PositionApplication.DoesNotExist:
            raise NotFound(f"Application with id {pk} not found.")


# ═══════════════════════════════════════════════════════════════════
#  Creation Service
# ═══════════════════════════════════════════════════════════════════


class ApplicationCreationService:

    @staticmethod
    @transaction.atomic
    def create_application(
        applicant: Any,
        validated_data: dict[str, Any],
    ) -> PositionApplication:
        """
        Create a new application in ``SUBMITTED`` and give it a
        human-readable number (``PMC-<year>-<id>``).

        Refused while the position type's form configuration is
        inactive or closed to online submission.
        """
        from formconfigs.services import FormConfigurationService

        FormConfigurationService.ensure_accepting(validated_data["position_type"])
        applicant_name = (
            validated_data.get("applicant_name")
            or applicant.get_full_name()
            or applicant.username
        )
        application = PositionApplication.objects.create(
            applicant=applicant,
            applicant_name=applicant_name,
            position_type=validated_data["position_type"],
        )
        application.application_number = (
            f"{APPLICATION_NUMBER_PREFIX}-{application.created_at:%Y}-{application.pk:06d}"
        )
        application.save(update_fields=["application_number", "updated_at"])
        logger.info(
            "Application %s created by %s (%s)",
            application.application_number, applicant, application.position_type,
        )
        return application


# ═══════════════════════════════════════════════════════════════════
#  Workflow Service
# ═══════════════════════════════════════════════════════════════════


class WorkflowService:
    """
    The single parameterised state machine for every position type.

    Every public method that mutates an application locks its row first,
    so transitions, assignments and signature checks for one application
    are serialised.
    """

    # ── Authorisation ────────────────────────────────────────────────

    @staticmethod
    def authorize_officer(
        application: PositionApplication,
        stage: str,
        officer: Any,
    ) -> str:
        """
        Check that ``officer`` may act on ``stage`` of ``application``.

        The officer's role code must be one of the stage's required roles
        AND the officer must hold the active assignment for that
        (application, stage, role).  Job title alone is not enough.

        Returns
        -------
        str
            The role code the officer acts under (selects the sub-review
            in parallel stages).

        Raises
        ------
        UnauthorizedRoleError
        """
        roles = required_roles(application.position_type, stage)
        role = officer.officer_role
        if not officer.holds_officer_role(*roles):
            raise UnauthorizedRoleError(
                f"Role '{role or 'none'}' may not act on stage '{stage}'. "
                f"Required: {', '.join(roles) or 'none'}."
            )
        holds_assignment = AssignmentRecord.objects.filter(
            application=application,
            stage=stage,
            role=role,
            officer=officer,
            is_active=True,
        ).exists()
        if not holds_assignment:
            raise UnauthorizedRoleError(
                f"Officer {officer.username} is not assigned to stage '{stage}' "
                f"of application {application.application_number}."
            )
        return role

    # ── Transition ───────────────────────────────────────────────────

    @staticmethod
    @transaction.atomic
    def transition(
        application_id: int,
        stage: str,
        decision: str,
        officer: Any,
        comments: str = "",
    ) -> StageOutcome:
        """
        **The central state-machine gateway.**

        Record ``officer``'s decision on ``stage`` and move the application
        along the pipeline.

        Parameters
        ----------
        application_id : int
        stage : str
            The stage the caller believes the application is at.
        decision : str
            ``Decision.APPROVED`` or ``Decision.REJECTED``.
        officer : User
        comments : str
            Required (non-blank) for rejections.

        Returns
        -------
        StageOutcome
            The ledger entry written; ``outcome.application`` reflects the
            new stage.

        Raises
        ------
        DomainError
            Invalid decision, missing rejection comments, unverified
            documents, or missing signature on a signing stage.
        StaleStateError
            The application is no longer at ``stage`` or the sub-review
            was already decided.
        UnauthorizedRoleError
            The officer lacks the role or the assignment for the stage.
        """
        if decision not in (Decision.APPROVED, Decision.REJECTED):
            raise DomainError(
                f"Decision must be '{Decision.APPROVED}' or '{Decision.REJECTED}'."
            )

        application = lock_for_update(PositionApplication, application_id)

        if application.current_stage != stage:
            raise StaleStateError(expected=stage, actual=application.current_stage)

        role = WorkflowService.authorize_officer(application, stage, officer)

        already_decided = StageOutcome.objects.filter(
            application=application,
            stage=stage,
            role=role,
            attempt_number=application.current_attempt,
        ).exists()
        if already_decided:
            raise StaleStateError(
                f"The {role} review of stage '{stage}' has already been decided."
            )

        signature = WorkflowService._signed_signature(application, stage, officer)

        if decision == Decision.REJECTED:
            if not comments.strip():
                raise DomainError("A rejection reason is required.")
        else:
            if stage == Stage.JE_REVIEW:
                DocumentVerificationService.ensure_documents_verified(application)
            if stage in SIGNATURE_REQUIRED_STAGES and signature is None:
                raise DomainError(
                    f"Stage '{stage}' must be digitally signed before it can be approved."
                )

        outcome = StageOutcome.objects.create(
            application=application,
            stage=stage,
            role=role,
            attempt_number=application.current_attempt,
            decision=decision,
            officer=officer,
            comments=comments,
            digital_signature=signature,
        )
        logger.info(
            "Application %s: %s %s stage %s (attempt %s)",
            application.application_number, officer.username, decision,
            stage, application.current_attempt,
        )

        if decision == Decision.REJECTED:
            WorkflowService._reject(application, stage, officer, comments)
        elif WorkflowService._all_sub_reviews_approved(application, stage):
            WorkflowService._advance(application, officer)
        else:
            NotificationService.create(
                actor=officer,
                recipients=application.applicant,
                event_type="stage_approved",
                payload={
                    "application": application.application_number,
                    "stage": Stage(stage).label,
                },
                related_object=application,
            )

        outcome.application = application
        return outcome

    @staticmethod
    @transaction.atomic
    def submit(application_id: int, applicant: Any) -> PositionApplication:
        """
        **Applicant submits the application for review.**

        Transitions: ``SUBMITTED`` → ``JE_REVIEW``.  Records the
        submission in the ledger and runs the Assignment Engine for the
        Junior Engineer.

        Raises
        ------
        PermissionDenied
            If ``applicant`` did not create the application.
        StaleStateError
            If the application was already submitted.
        """
        application = lock_for_update(PositionApplication, application_id)
        if application.applicant_id != applicant.pk:
            raise PermissionDenied("Only the applicant can submit this application.")
        if application.current_stage != Stage.SUBMITTED:
            raise StaleStateError(expected=Stage.SUBMITTED, actual=application.current_stage)

        StageOutcome.objects.create(
            application=application,
            stage=Stage.SUBMITTED,
            attempt_number=application.current_attempt,
            decision=Decision.APPROVED,
            officer=applicant,
            comments="Submitted by applicant.",
        )
        application.submitted_at = timezone.now()
        application.save(update_fields=["submitted_at", "updated_at"])
        WorkflowService._advance(application, applicant)
        return application

    @staticmethod
    @transaction.atomic
    def resubmit(application_id: int, applicant: Any, comments: str = "") -> PositionApplication:
        """
        **Applicant resubmits a rejected application.**

        Transitions: ``REJECTED`` → the stage that rejected it, with a new
        attempt number (max attempt recorded for that stage + 1).  The
        Assignment Engine runs again for the stage; earlier assignments
        are superseded, never duplicated.

        Raises
        ------
        PermissionDenied
            If ``applicant`` did not create the application.
        InvalidTransition
            If the application is not rejected.
        """
        application = lock_for_update(PositionApplication, application_id)
        if application.applicant_id != applicant.pk:
            raise PermissionDenied("Only the applicant can resubmit this application.")
        if application.current_stage != Stage.REJECTED or not application.rejected_at_stage:
            raise InvalidTransition(
                current=application.current_stage,
                target="resubmission",
                reason="only rejected applications can be resubmitted",
            )

        target = application.rejected_at_stage
        application.current_stage = target
        application.current_attempt = WorkflowService._next_attempt(application, target)
        application.rejected_at_stage = ""
        application.stage_entered_at = timezone.now()
        application.save(update_fields=[
            "current_stage", "current_attempt", "rejected_at_stage",
            "stage_entered_at", "updated_at",
        ])
        logger.info(
            "Application %s resubmitted to %s (attempt %s): %s",
            application.application_number, target, application.current_attempt,
            comments or "no comments",
        )
        AssignmentService.assign_stage(application, actor=applicant)
        application.refresh_from_db()
        return application

    # ── Internal helpers ─────────────────────────────────────────────

    @staticmethod
    def _all_sub_reviews_approved(application: PositionApplication, stage: str) -> bool:
        roles = set(required_roles(application.position_type, stage))
        approved = set(
            StageOutcome.objects.filter(
                application=application,
                stage=stage,
                attempt_number=application.current_attempt,
                decision=Decision.APPROVED,
            ).values_list("role", flat=True)
        )
        return roles <= approved

    @staticmethod
    def _next_attempt(application: PositionApplication, stage: str) -> int:
        last = (
            StageOutcome.objects
            .filter(application=application, stage=stage)
            .aggregate(last=Max("attempt_number"))["last"]
        )
        return (last or 0) + 1

    @staticmethod
    def _advance(application: PositionApplication, actor: Any) -> None:
        """Move to the next pipeline stage and assign its reviewers."""
        previous = application.current_stage
        target = next_stage(previous)
        application.current_stage = target
        application.current_attempt = WorkflowService._next_attempt(application, target)
        application.stage_entered_at = timezone.now()
        update_fields = ["current_stage", "current_attempt", "stage_entered_at", "updated_at"]
        if target == Stage.COMPLETED:
            application.completed_at = application.stage_entered_at
            application.needs_manual_assignment = False
            update_fields += ["completed_at", "needs_manual_assignment"]
        application.save(update_fields=update_fields)
        logger.info(
            "Application %s advanced %s → %s",
            application.application_number, previous, target,
        )

        if target == Stage.COMPLETED:
            event_type = "application_completed"
        else:
            AssignmentService.assign_stage(application, actor=actor)
            application.refresh_from_db(fields=["needs_manual_assignment"])
            event_type = "stage_advanced"

        NotificationService.create(
            actor=actor,
            recipients=application.applicant,
            event_type=event_type,
            payload={
                "application": application.application_number,
                "stage": application.get_current_stage_display(),
            },
            related_object=application,
        )

    @staticmethod
    def _reject(
        application: PositionApplication,
        stage: str,
        officer: Any,
        comments: str,
    ) -> None:
        application.current_stage = Stage.REJECTED
        application.rejected_at_stage = stage
        application.needs_manual_assignment = False
        application.stage_entered_at = timezone.now()
        application.save(update_fields=[
            "current_stage", "rejected_at_stage", "needs_manual_assignment",
            "stage_entered_at", "updated_at",
        ])
        logger.info(
            "Application %s rejected at %s by %s",
            application.application_number, stage, officer.username,
        )
        NotificationService.create(
            actor=officer,
            recipients=application.applicant,
            event_type="application_rejected",
            payload={
                "application": application.application_number,
                "stage": Stage(stage).label,
                "reason": comments,
            },
            related_object=application,
        )

    @staticmethod
    def _signed_signature(application: PositionApplication, stage: str, officer: Any):
        from signatures.models import DigitalSignature, SignatureStatus

        return (
            DigitalSignature.objects
            .filter(
                application=application,
                stage=stage,
                officer=officer,
                attempt_number=application.current_attempt,
                status=SignatureStatus.SIGNED,
            )
            .order_by("-signed_at")
            .first()
        )


# ═══════════════════════════════════════════════════════════════════
#  Workflow Status Service
# ═══════════════════════════════════════════════════════════════════


class WorkflowStatusService:
    """Read-only projection behind ``GET /applications/{id}/workflow-status/``."""

    @staticmethod
    def get_status(application: PositionApplication) -> dict[str, Any]:
        """
        Return the current stage, progress, assigned officers, per-role
        sub-review state and the action the workflow is waiting for.
        """
        stage = application.current_stage
        roles = required_roles(application.position_type, stage)

        assignments = {
            record.role: record
            for record in AssignmentRecord.objects
            .filter(application=application, stage=stage, is_active=True)
            .select_related("officer")
        }
        decided = {
            outcome.role: outcome
            for outcome in StageOutcome.objects
            .filter(
                application=application,
                stage=stage,
                attempt_number=application.current_attempt,
            )
            .select_related("officer")
        }

        sub_reviews = []
        for role in roles:
            record = assignments.get(role)
            outcome = decided.get(role)
            sub_reviews.append({
                "role": role,
                "decision": outcome.decision if outcome else Decision.PENDING,
                "officer_id": record.officer_id if record else None,
                "officer_name": record.officer.get_full_name() if record else None,
                "assigned_at": record.assigned_at if record else None,
            })

        try:
            upcoming = next_stage(stage)
        except InvalidTransition:
            upcoming = None

        return {
            "application_id": application.pk,
            "application_number": application.application_number,
            "position_type": application.position_type,
            "current_stage": stage,
            "current_stage_display": application.get_current_stage_display(),
            "next_stage": upcoming,
            "stage_number": stage_number(stage),
            "total_stages": len(PIPELINE),
            "attempt_number": application.current_attempt,
            "progress_percentage": progress_percentage(stage, application.rejected_at_stage),
            "needs_manual_assignment": application.needs_manual_assignment,
            "rejected_at_stage": application.rejected_at_stage or None,
            "sub_reviews": sub_reviews,
            "pending_action": WorkflowStatusService._pending_action(application, sub_reviews),
        }

    @staticmethod
    def _pending_action(application: PositionApplication, sub_reviews: list[dict]) -> str:
        action = STAGE_ACTIONS[application.current_stage]
        waiting = [s for s in sub_reviews if s["decision"] == Decision.PENDING]
        if not waiting:
            return action
        unassigned = [s["role"] for s in waiting if s["officer_id"] is None]
        if unassigned:
            return f"{action} Awaiting assignment of: {', '.join(unassigned)}."
        names = ", ".join(s["officer_name"] or str(s["officer_id"]) for s in waiting)
        return f"{action} Waiting on: {names}."

    @staticmethod
    def get_outcomes(application: PositionApplication) -> QuerySet[StageOutcome]:
        return application.outcomes.select_related("officer", "digital_signature")


# ═══════════════════════════════════════════════════════════════════
#  Document Verification Service
# ═══════════════════════════════════════════════════════════════════


class DocumentVerificationService:
    """
    Registers uploaded document paths and records the Junior Engineer's
    verification of each one.  JE approval is blocked until every
    registered document is approved.
    """

    @staticmethod
    @transaction.atomic
    def add_document(
        application_id: int,
        user: Any,
        document_type: str,
        file_path: str,
    ) -> ApplicationDocument:
        application = lock_for_update(PositionApplication, application_id)
        if application.applicant_id != user.pk:
            raise PermissionDenied("Only the applicant can add documents.")
        if application.current_stage not in (Stage.SUBMITTED, Stage.JE_REVIEW, Stage.REJECTED):
            raise DomainError(
                "Documents can only be added before the Junior Engineer review completes."
            )
        document = ApplicationDocument.objects.create(
            application=application,
            document_type=document_type,
            file_path=file_path,
        )
        logger.info(
            "Document %s (%s) added to application %s",
            document.pk, document_type, application.application_number,
        )
        return document

    @staticmethod
    @transaction.atomic
    def verify_document(
        application_id: int,
        document_id: int,
        officer: Any,
        status: str,
        comments: str = "",
    ) -> ApplicationDocument:
        """
        Set a document's verification status.  Only the Junior Engineer
        assigned to the application's JE review may verify.
        """
        application = lock_for_update(PositionApplication, application_id)
        if application.current_stage != Stage.JE_REVIEW:
            raise StaleStateError(expected=Stage.JE_REVIEW, actual=application.current_stage)
        WorkflowService.authorize_officer(application, Stage.JE_REVIEW, officer)

        if status == DocumentStatus.PENDING:
            raise DomainError("A verification must approve, reject or request resubmission.")
        if status != DocumentStatus.APPROVED and not comments.strip():
            raise DomainError("Comments are required when a document is not approved.")

        try:
            document = application.documents.select_for_update().get(pk=document_id)
        except ApplicationDocument.DoesNotExist:
            raise NotFound(f"Document with id {document_id} not found.")

        document.verification_status = status
        document.verified_by = officer
        document.verified_at = timezone.now()
        document.verification_comments = comments
        document.save(update_fields=[
            "verification_status", "verified_by", "verified_at",
            "verification_comments", "updated_at",
        ])
        NotificationService.create(
            actor=officer,
            recipients=application.applicant,
            event_type="document_verified",
            payload={
                "document_type": document.document_type,
                "status": document.get_verification_status_display(),
            },
            related_object=document,
        )
        return document

    @staticmethod
    def ensure_documents_verified(application: PositionApplication) -> None:
        unverified = application.documents.filter(
            ~Q(verification_status=DocumentStatus.APPROVED)
        )
        if unverified.exists():
            raise DomainError(
                f"{unverified.count()} document(s) must be approved before "
                f"the Junior Engineer review can be approved."
            )

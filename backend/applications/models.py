"""
Applications app models.

Covers the position-licence application record, its append-only stage
ledger (one ``StageOutcome`` per sub-review decision) and the documents
the Junior Engineer verifies before approving.
"""

from django.conf import settings
from django.db import models
from django.utils import timezone

from accounts.models import OfficerRole
from core.domain.exceptions import DomainError
from core.models import TimeStampedModel
from core.permissions_constants import ApplicationsPerms


# ────────────────────────────────────────────────────────────────────
# Choice enumerations
# ────────────────────────────────────────────────────────────────────

class PositionType(models.TextChoices):
    """Licence positions a citizen can apply for."""

    STRUCTURAL_ENGINEER = "structural_engineer", "Structural Engineer"
    ARCHITECT = "architect", "Architect"
    LICENCE_ENGINEER = "licence_engineer", "Licence Engineer"
    SUPERVISOR1 = "supervisor1", "Supervisor 1"
    SUPERVISOR2 = "supervisor2", "Supervisor 2"


class Stage(models.TextChoices):
    """
    Workflow stages in pipeline order, followed by the ``Rejected``
    terminal.  The legal edges live in ``applications.workflow``.
    """

    SUBMITTED = "submitted", "Submitted"
    JE_REVIEW = "je_review", "Junior Engineer Review"
    AE_REVIEW = "ae_review", "Assistant Engineer Review"
    EE_REVIEW = "ee_review", "Executive Engineer Review"
    CE_REVIEW = "ce_review", "City Engineer Review"
    CLERK_PROCESSING = "clerk_processing", "Clerk Processing"
    EE_STAGE2_SIGN = "ee_stage2_sign", "Executive Engineer Stage 2 Signature"
    CE_STAGE2_SIGN = "ce_stage2_sign", "City Engineer Stage 2 Signature"
    COMPLETED = "completed", "Completed"
    REJECTED = "rejected", "Rejected"


class Decision(models.TextChoices):
    """Outcome of a single sub-review.  ``PENDING`` is never persisted."""

    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    PENDING = "pending", "Pending"


class DocumentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    REQUIRES_RESUBMISSION = "requires_resubmission", "Requires Resubmission"


# ────────────────────────────────────────────────────────────────────
# Models
# ────────────────────────────────────────────────────────────────────

class PositionApplication(TimeStampedModel):
    """
    A citizen's application for a position licence.

    ``current_stage`` is written exclusively by
    ``applications.services.WorkflowService``.  ``current_attempt`` is the
    attempt number of the current stage: it starts at 1 and grows each
    time the same stage is re-entered after a rejection and resubmission.
    """

    application_number = models.CharField(
        max_length=30,
        unique=True,
        null=True,
        blank=True,
        verbose_name="Application Number",
    )
    applicant = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="position_applications",
        verbose_name="Applicant",
    )
    applicant_name = models.CharField(
        max_length=255,
        verbose_name="Applicant Name",
    )
    position_type = models.CharField(
        max_length=30,
        choices=PositionType.choices,
        db_index=True,
        verbose_name="Position Type",
    )
    current_stage = models.CharField(
        max_length=30,
        choices=Stage.choices,
        default=Stage.SUBMITTED,
        db_index=True,
        verbose_name="Current Stage",
    )
    current_attempt = models.PositiveSmallIntegerField(
        default=1,
        verbose_name="Current Attempt",
    )
    rejected_at_stage = models.CharField(
        max_length=30,
        choices=Stage.choices,
        blank=True,
        default="",
        verbose_name="Rejected At Stage",
    )
    needs_manual_assignment = models.BooleanField(
        default=False,
        db_index=True,
        verbose_name="Needs Manual Assignment",
        help_text="Set when a required reviewer of the current stage could not be auto-assigned.",
    )
    stage_entered_at = models.DateTimeField(
        default=timezone.now,
        verbose_name="Stage Entered At",
        help_text="When the application reached its current stage.",
    )
    submitted_at = models.DateTimeField(null=True, blank=True, verbose_name="Submitted At")
    completed_at = models.DateTimeField(null=True, blank=True, verbose_name="Completed At")

    class Meta:
        verbose_name = "Position Application"
        verbose_name_plural = "Position Applications"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["position_type", "current_stage"]),
        ]
        permissions = [
            (ApplicationsPerms.CAN_VIEW_ALL_APPLICATIONS, "Unrestricted application visibility"),
            (ApplicationsPerms.CAN_VIEW_ASSIGNED_APPLICATIONS, "View applications assigned to the officer"),
        ]

    def __str__(self):
        return f"{self.application_number or self.pk} ({self.get_position_type_display()}) - {self.current_stage}"


class StageOutcome(models.Model):
    """
    Append-only ledger entry: one decision by one officer on one
    sub-review of a stage.

    The key is (application, stage, role, attempt_number).  Single-reviewer
    stages have exactly one role, so the key reduces to
    (application, stage, attempt_number).  Corrections are new records
    on a later attempt, never edits.
    """

    application = models.ForeignKey(
        PositionApplication,
        on_delete=models.PROTECT,
        related_name="outcomes",
        verbose_name="Application",
    )
    stage = models.CharField(
        max_length=30,
        choices=Stage.choices,
        verbose_name="Stage",
    )
    role = models.CharField(
        max_length=40,
        choices=OfficerRole.choices,
        blank=True,
        default="",
        verbose_name="Reviewer Role",
        help_text="Blank for the applicant's submission record.",
    )
    attempt_number = models.PositiveSmallIntegerField(
        default=1,
        verbose_name="Attempt Number",
    )
    decision = models.CharField(
        max_length=10,
        choices=Decision.choices,
        verbose_name="Decision",
    )
    officer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="stage_outcomes",
        verbose_name="Decided By",
    )
    comments = models.TextField(blank=True, default="", verbose_name="Comments")
    digital_signature = models.ForeignKey(
        "signatures.DigitalSignature",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="stage_outcomes",
        verbose_name="Digital Signature",
    )
    decided_at = models.DateTimeField(auto_now_add=True, verbose_name="Decided At")

    class Meta:
        verbose_name = "Stage Outcome"
        verbose_name_plural = "Stage Outcomes"
        ordering = ["decided_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["application", "stage", "role", "attempt_number"],
                name="uniq_outcome_per_subreview_attempt",
            ),
        ]
        indexes = [
            models.Index(fields=["application", "stage", "attempt_number"]),
        ]

    def __str__(self):
        return f"{self.application_id}:{self.stage}#{self.attempt_number} {self.decision}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise DomainError("Stage outcomes are append-only and cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise DomainError("Stage outcomes are append-only and cannot be deleted.")


class ApplicationDocument(TimeStampedModel):
    """
    A document uploaded with an application.  Only the storage path is
    kept here; file contents live in external document storage.
    """

    application = models.ForeignKey(
        PositionApplication,
        on_delete=models.CASCADE,
        related_name="documents",
        verbose_name="Application",
    )
    document_type = models.CharField(max_length=100, verbose_name="Document Type")
    file_path = models.CharField(max_length=500, verbose_name="File Path")
    verification_status = models.CharField(
        max_length=30,
        choices=DocumentStatus.choices,
        default=DocumentStatus.PENDING,
        verbose_name="Verification Status",
    )
    verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="verified_documents",
        verbose_name="Verified By",
    )
    verified_at = models.DateTimeField(null=True, blank=True, verbose_name="Verified At")
    verification_comments = models.TextField(blank=True, default="", verbose_name="Verification Comments")

    class Meta:
        verbose_name = "Application Document"
        verbose_name_plural = "Application Documents"
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.document_type} ({self.get_verification_status_display()})"

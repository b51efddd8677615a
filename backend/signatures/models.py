"""
Signatures app models.

One ``DigitalSignature`` row per signing attempt by an officer on a
stage of an application.  It records the OTP lifecycle and the HSM
result, and doubles as the signature audit trail.
"""

from django.conf import settings
from django.db import models

from accounts.models import OfficerRole
from applications.models import Stage
from core.models import TimeStampedModel
from core.permissions_constants import SignaturesPerms


class SignatureStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    OTP_ISSUED = "otp_issued", "OTP Issued"
    SIGNED = "signed", "Signed"
    FAILED = "failed", "Failed"


class DigitalSignature(TimeStampedModel):
    """
    Signature state machine::

        PENDING ──▶ OTP_ISSUED ──▶ SIGNED
                      │   ▲
                      │   └── (expired OTP goes back to PENDING)
                      └──────▶ FAILED

    ``otp_attempts`` counts wrong OTPs against the current OTP; reaching
    ``OTP_MAX_ATTEMPTS`` moves the record to FAILED.
    """

    application = models.ForeignKey(
        "applications.PositionApplication",
        on_delete=models.PROTECT,
        related_name="signatures",
        verbose_name="Application",
    )
    stage = models.CharField(max_length=30, choices=Stage.choices, verbose_name="Stage")
    officer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="signatures",
        verbose_name="Officer",
    )
    role = models.CharField(max_length=40, choices=OfficerRole.choices, verbose_name="Role")
    attempt_number = models.PositiveSmallIntegerField(default=1, verbose_name="Stage Attempt")
    status = models.CharField(
        max_length=20,
        choices=SignatureStatus.choices,
        default=SignatureStatus.PENDING,
        db_index=True,
        verbose_name="Status",
    )
    otp_attempts = models.PositiveSmallIntegerField(default=0, verbose_name="Wrong OTP Attempts")
    otp_issued_at = models.DateTimeField(null=True, blank=True, verbose_name="OTP Issued At")
    otp_expires_at = models.DateTimeField(null=True, blank=True, verbose_name="OTP Expires At")
    hsm_transaction_id = models.CharField(
        max_length=64,
        blank=True,
        default="",
        db_index=True,
        verbose_name="HSM Transaction ID",
    )
    key_label = models.CharField(max_length=50, verbose_name="Key Label")
    original_document_path = models.CharField(max_length=500, blank=True, default="", verbose_name="Original Document")
    signed_document_path = models.CharField(max_length=500, blank=True, default="", verbose_name="Signed Document")
    signed_at = models.DateTimeField(null=True, blank=True, verbose_name="Signed At")
    failed_at = models.DateTimeField(null=True, blank=True, verbose_name="Failed At")
    failure_reason = models.TextField(blank=True, default="", verbose_name="Failure Reason")

    class Meta:
        verbose_name = "Digital Signature"
        verbose_name_plural = "Digital Signatures"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["application", "stage", "officer"]),
        ]
        permissions = [
            (SignaturesPerms.CAN_VIEW_SIGNATURE_AUDIT, "View the signature audit trail of any application"),
        ]

    def __str__(self):
        return f"Signature #{self.pk} {self.application_id}:{self.stage} by {self.officer_id} ({self.status})"

"""
Formconfigs app models.

``FormConfiguration`` holds the application form of one position type:
its fee schedule, processing time and upload limits.  Every change to
the base or processing fee is recorded in ``FormFeeHistory``.
"""

from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from applications.models import PositionType
from core.models import TimeStampedModel
from core.permissions_constants import FormConfigsPerms

_NON_NEGATIVE = [MinValueValidator(Decimal("0"))]


class FormConfiguration(TimeStampedModel):
    """
    One configuration per position type.  Configurations are
    deactivated, never deleted.
    """

    form_name = models.CharField(max_length=100, verbose_name="Form Name")
    position_type = models.CharField(
        max_length=30,
        choices=PositionType.choices,
        unique=True,
        verbose_name="Position Type",
    )
    description = models.CharField(max_length=500, blank=True, default="", verbose_name="Description")
    base_fee = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0"),
        validators=_NON_NEGATIVE, verbose_name="Base Fee",
    )
    processing_fee = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0"),
        validators=_NON_NEGATIVE, verbose_name="Processing Fee",
    )
    late_fee = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0"),
        validators=_NON_NEGATIVE, verbose_name="Late Fee",
        help_text="Charged on top of the total fee for late submissions.",
    )
    is_active = models.BooleanField(default=True, verbose_name="Active")
    allow_online_submission = models.BooleanField(default=True, verbose_name="Allow Online Submission")
    processing_days = models.PositiveSmallIntegerField(
        default=30,
        validators=[MinValueValidator(1), MaxValueValidator(365)],
        verbose_name="Processing Days",
    )
    custom_fields = models.JSONField(
        default=list,
        blank=True,
        verbose_name="Custom Fields",
        help_text="Extra form fields: field_name, field_type, is_required, label, options.",
    )
    required_documents = models.JSONField(
        default=list,
        blank=True,
        verbose_name="Required Documents",
        help_text="Document types the applicant must upload.",
    )
    max_file_size_mb = models.PositiveSmallIntegerField(
        default=5,
        validators=[MinValueValidator(1), MaxValueValidator(100)],
        verbose_name="Max File Size (MB)",
    )
    max_files_allowed = models.PositiveSmallIntegerField(
        default=10,
        validators=[MinValueValidator(1), MaxValueValidator(100)],
        verbose_name="Max Files Allowed",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        verbose_name="Created By",
    )

    class Meta:
        verbose_name = "Form Configuration"
        verbose_name_plural = "Form Configurations"
        ordering = ["position_type"]
        permissions = [
            (FormConfigsPerms.CAN_MANAGE_FORMS, "Manage form configurations and fee schedules"),
        ]

    def __str__(self):
        return f"{self.form_name} ({self.get_position_type_display()})"

    @property
    def total_fee(self) -> Decimal:
        """Base plus processing fee.  The late fee is charged separately."""
        return self.base_fee + self.processing_fee


class FormFeeHistory(models.Model):
    """Append-only record of a fee schedule change."""

    form = models.ForeignKey(
        FormConfiguration,
        on_delete=models.CASCADE,
        related_name="fee_history",
        verbose_name="Form",
    )
    old_base_fee = models.DecimalField(max_digits=12, decimal_places=2, verbose_name="Old Base Fee")
    new_base_fee = models.DecimalField(max_digits=12, decimal_places=2, verbose_name="New Base Fee")
    old_processing_fee = models.DecimalField(max_digits=12, decimal_places=2, verbose_name="Old Processing Fee")
    new_processing_fee = models.DecimalField(max_digits=12, decimal_places=2, verbose_name="New Processing Fee")
    effective_from = models.DateTimeField(verbose_name="Effective From")
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="+",
        verbose_name="Changed By",
    )
    change_reason = models.CharField(max_length=500, blank=True, default="", verbose_name="Change Reason")
    created_at = models.DateTimeField(auto_now_add=True, verbose_name="Recorded At")

    class Meta:
        verbose_name = "Form Fee History"
        verbose_name_plural = "Form Fee History"
        ordering = ["-effective_from", "-id"]

    def __str__(self):
        return (
            f"{self.form.form_name}: {self.old_base_fee}+{self.old_processing_fee} → "
            f"{self.new_base_fee}+{self.new_processing_fee}"
        )

"""
Assignments app models.

``AutoAssignmentRule`` configures how officers are picked for a role of
a stage; ``AssignmentRecord`` is the history of who was assigned, with
exactly one active record per (application, stage, role).
"""

from django.conf import settings
from django.db import models
from django.db.models import Q

from accounts.models import OfficerRole
from applications.models import PositionType, Stage
from core.models import TimeStampedModel
from core.permissions_constants import AssignmentsPerms


class AssignmentStrategy(models.TextChoices):
    ROUND_ROBIN = "round_robin", "Round Robin"
    LEAST_WORKLOAD = "least_workload", "Least Workload"
    MANUAL = "manual", "Manual"


class AssignmentAction(models.TextChoices):
    AUTO_ASSIGNED = "auto_assigned", "Auto Assigned"
    MANUALLY_ASSIGNED = "manually_assigned", "Manually Assigned"
    CLAIMED = "claimed", "Claimed"
    REASSIGNED = "reassigned", "Reassigned"


class AutoAssignmentRule(TimeStampedModel):
    """
    How to pick an officer holding ``target_role`` for an application.

    Rules are matched on (position_type, target_role); a blank
    ``position_type`` matches every position.  Among matching active
    rules inside their effective window, the lowest ``priority`` number
    wins, and a position-specific rule wins over a generic one at equal
    priority.

    ``last_round_robin_index`` is the round-robin cursor.  It is only
    ever advanced through a compare-and-swap update.
    """

    name = models.CharField(max_length=150, verbose_name="Rule Name")
    position_type = models.CharField(
        max_length=30,
        choices=PositionType.choices,
        blank=True,
        default="",
        verbose_name="Position Type",
        help_text="Leave blank to match every position type.",
    )
    target_role = models.CharField(
        max_length=40,
        choices=OfficerRole.choices,
        verbose_name="Target Role",
    )
    strategy = models.CharField(
        max_length=20,
        choices=AssignmentStrategy.choices,
        default=AssignmentStrategy.ROUND_ROBIN,
        verbose_name="Strategy",
    )
    priority = models.PositiveIntegerField(
        default=100,
        verbose_name="Priority",
        help_text="Lower number = higher priority.",
    )
    max_workload_per_officer = models.PositiveIntegerField(
        default=50,
        verbose_name="Max Workload Per Officer",
    )
    is_active = models.BooleanField(default=True, verbose_name="Active")
    effective_from = models.DateTimeField(null=True, blank=True, verbose_name="Effective From")
    effective_to = models.DateTimeField(null=True, blank=True, verbose_name="Effective To")
    last_round_robin_index = models.IntegerField(
        default=-1,
        verbose_name="Last Round-Robin Index",
    )
    times_applied = models.PositiveIntegerField(default=0, verbose_name="Times Applied")
    last_applied_at = models.DateTimeField(null=True, blank=True, verbose_name="Last Applied At")
    escalation_time_hours = models.PositiveIntegerField(
        null=True,
        blank=True,
        verbose_name="Escalation Time (hours)",
    )
    escalation_role = models.CharField(
        max_length=40,
        choices=OfficerRole.choices,
        blank=True,
        default="",
        verbose_name="Escalation Role",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_assignment_rules",
        verbose_name="Created By",
    )

    class Meta:
        verbose_name = "Auto-Assignment Rule"
        verbose_name_plural = "Auto-Assignment Rules"
        ordering = ["priority", "id"]
        indexes = [
            models.Index(fields=["target_role", "is_active"]),
        ]
        permissions = [
            (AssignmentsPerms.CAN_MANAGE_ASSIGNMENTS, "Manually assign officers to stages"),
            (AssignmentsPerms.CAN_MANAGE_ASSIGNMENT_RULES, "Manage auto-assignment rules"),
            (AssignmentsPerms.CAN_VIEW_WORKLOAD, "View officer workload and queues"),
        ]

    def __str__(self):
        return f"{self.name} [{self.target_role} / {self.get_strategy_display()}]"


class AssignmentRecord(models.Model):
    """
    One assignment of an officer to a (application, stage, role).

    Writing a new assignment deactivates the previous active record in
    the same transaction, so history is preserved and the partial unique
    constraint holds.
    """

    application = models.ForeignKey(
        "applications.PositionApplication",
        on_delete=models.CASCADE,
        related_name="assignments",
        verbose_name="Application",
    )
    stage = models.CharField(max_length=30, choices=Stage.choices, verbose_name="Stage")
    role = models.CharField(max_length=40, choices=OfficerRole.choices, verbose_name="Role")
    officer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="assignments",
        verbose_name="Officer",
    )
    previous_officer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        verbose_name="Previous Officer",
    )
    assigned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        verbose_name="Assigned By",
    )
    strategy_used = models.CharField(
        max_length=20,
        choices=AssignmentStrategy.choices,
        verbose_name="Strategy Used",
    )
    rule = models.ForeignKey(
        AutoAssignmentRule,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assignments",
        verbose_name="Rule",
    )
    action = models.CharField(
        max_length=20,
        choices=AssignmentAction.choices,
        verbose_name="Action",
    )
    reason = models.TextField(blank=True, default="", verbose_name="Reason")
    workload_at_assignment = models.PositiveIntegerField(
        default=0,
        verbose_name="Workload At Assignment",
    )
    assigned_at = models.DateTimeField(auto_now_add=True, verbose_name="Assigned At")
    is_active = models.BooleanField(default=True, db_index=True, verbose_name="Active")
    inactivated_at = models.DateTimeField(null=True, blank=True, verbose_name="Inactivated At")

    class Meta:
        verbose_name = "Assignment Record"
        verbose_name_plural = "Assignment Records"
        ordering = ["-assigned_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["application", "stage", "role"],
                condition=Q(is_active=True),
                name="uniq_active_assignment_per_subreview",
            ),
        ]
        indexes = [
            models.Index(fields=["officer", "is_active"]),
        ]

    def __str__(self):
        state = "active" if self.is_active else "inactive"
        return f"{self.application_id}:{self.stage}/{self.role} → {self.officer_id} ({state})"

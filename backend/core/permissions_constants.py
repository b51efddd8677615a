"""
Permissions Constants — **Single Source of Truth**

Every permission referenced in code (views, services, ``setup_rbac``)
MUST use one of the constants defined here.

Organisation
------------
- **Standard CRUD** permissions follow Django's auto-generated naming:
  ``<action>_<model_lowercase>``. They are listed here for reference so
  that the ``setup_rbac`` command can map them to roles without typos.

- **Custom workflow** permissions are constants that map to codenames
  registered via each model's ``Meta.permissions`` tuple. Adding a new
  custom permission requires:
    1. Add the constant below.
    2. Add the ``(codename, description)`` to the related model's
       ``Meta.permissions``.
    3. Run ``makemigrations`` + ``migrate`` to insert it into Django's
       ``auth_permission`` table.
    4. Add the constant to the appropriate role lists in ``setup_rbac``.

Stage approvals are NOT permission-gated.  Who may act on a stage is
decided by the officer's role code plus an active assignment (see
``applications.workflow``).  The permissions below cover administrative
and reporting capabilities only.

All constants store the **codename only** (no ``app_label.`` prefix).
"""


# ════════════════════════════════════════════════════════════════════
#  ACCOUNTS APP
# ════════════════════════════════════════════════════════════════════

class AccountsPerms:
    """Standard CRUD + custom permissions for accounts models."""

    # Role
    VIEW_ROLE = "view_role"
    ADD_ROLE = "add_role"
    CHANGE_ROLE = "change_role"
    DELETE_ROLE = "delete_role"

    # User
    VIEW_USER = "view_user"
    ADD_USER = "add_user"
    CHANGE_USER = "change_user"
    DELETE_USER = "delete_user"

    # ── Custom workflow permissions ─────────────────────────────────
    CAN_MANAGE_USERS = "can_manage_users"
    """Admin-level officer management (create, update, activate, deactivate)."""


# ════════════════════════════════════════════════════════════════════
#  APPLICATIONS APP
# ════════════════════════════════════════════════════════════════════

class ApplicationsPerms:
    """Standard + custom permissions for the applications app."""

    # ── PositionApplication — standard CRUD ─────────────────────────
    VIEW_POSITIONAPPLICATION = "view_positionapplication"
    ADD_POSITIONAPPLICATION = "add_positionapplication"
    CHANGE_POSITIONAPPLICATION = "change_positionapplication"
    DELETE_POSITIONAPPLICATION = "delete_positionapplication"

    # ── StageOutcome — read only (append-only ledger) ───────────────
    VIEW_STAGEOUTCOME = "view_stageoutcome"

    # ── ApplicationDocument — standard CRUD ─────────────────────────
    VIEW_APPLICATIONDOCUMENT = "view_applicationdocument"
    ADD_APPLICATIONDOCUMENT = "add_applicationdocument"

    # ── Custom workflow permissions ─────────────────────────────────
    CAN_VIEW_ALL_APPLICATIONS = "can_view_all_applications"
    """Unrestricted application visibility (admins, reporting staff)."""

    CAN_VIEW_ASSIGNED_APPLICATIONS = "can_view_assigned_applications"
    """Visibility limited to applications the officer has been assigned."""


# ════════════════════════════════════════════════════════════════════
#  ASSIGNMENTS APP
# ════════════════════════════════════════════════════════════════════

class AssignmentsPerms:
    """Standard + custom permissions for the assignments app."""

    VIEW_AUTOASSIGNMENTRULE = "view_autoassignmentrule"
    ADD_AUTOASSIGNMENTRULE = "add_autoassignmentrule"
    CHANGE_AUTOASSIGNMENTRULE = "change_autoassignmentrule"
    DELETE_AUTOASSIGNMENTRULE = "delete_autoassignmentrule"

    VIEW_ASSIGNMENTRECORD = "view_assignmentrecord"

    # ── Custom workflow permissions ─────────────────────────────────
    CAN_MANAGE_ASSIGNMENTS = "can_manage_assignments"
    """Manual override: assign / reassign an officer to a stage."""

    CAN_MANAGE_ASSIGNMENT_RULES = "can_manage_assignment_rules"
    """Create, edit and deactivate auto-assignment rules."""

    CAN_VIEW_WORKLOAD = "can_view_workload"
    """View officer workload, unassigned and overdue queues."""


# ════════════════════════════════════════════════════════════════════
#  APPOINTMENTS APP
# ════════════════════════════════════════════════════════════════════

class AppointmentsPerms:
    """Standard + custom permissions for the appointments app."""

    VIEW_APPOINTMENT = "view_appointment"
    ADD_APPOINTMENT = "add_appointment"
    CHANGE_APPOINTMENT = "change_appointment"

    # ── Custom workflow permissions ─────────────────────────────────
    CAN_MANAGE_REMINDERS = "can_manage_reminders"
    """Read the due-reminder queue and mark reminders as sent."""


# ════════════════════════════════════════════════════════════════════
#  SIGNATURES APP
# ════════════════════════════════════════════════════════════════════

class SignaturesPerms:
    """Standard permissions for the signatures app."""

    VIEW_DIGITALSIGNATURE = "view_digitalsignature"

    # ── Custom workflow permissions ─────────────────────────────────
    CAN_VIEW_SIGNATURE_AUDIT = "can_view_signature_audit"
    """View the signature audit trail of any application."""


# ════════════════════════════════════════════════════════════════════
#  FORMCONFIGS APP
# ════════════════════════════════════════════════════════════════════

class FormConfigsPerms:
    """Standard + custom permissions for the formconfigs app."""

    # ── FormConfiguration — standard CRUD ───────────────────────────
    VIEW_FORMCONFIGURATION = "view_formconfiguration"
    ADD_FORMCONFIGURATION = "add_formconfiguration"
    CHANGE_FORMCONFIGURATION = "change_formconfiguration"

    # ── FormFeeHistory — read only (append-only ledger) ─────────────
    VIEW_FORMFEEHISTORY = "view_formfeehistory"

    # ── Custom permissions ──────────────────────────────────────────
    CAN_MANAGE_FORMS = "can_manage_forms"
    """Create, update and deactivate form configurations and fee schedules."""


# ════════════════════════════════════════════════════════════════════
#  CORE APP
# ════════════════════════════════════════════════════════════════════

class CorePerms:
    """Standard + custom permissions for core models."""

    # ── Notification — standard CRUD ────────────────────────────────
    VIEW_NOTIFICATION = "view_notification"
    CHANGE_NOTIFICATION = "change_notification"

    # ── Custom permissions ──────────────────────────────────────────
    CAN_VIEW_REPORTS = "can_view_reports"
    """Position / stage / application drill-down reports."""

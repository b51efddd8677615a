"""
Management command: setup_rbac
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Seeds the database with the base **Roles** (every officer role plus the
administrative ones) and links each role to its set of Django
permissions.

**This command does NOT create Permission objects.**
Permissions must already exist in the database:
    • Standard CRUD permissions are auto-created by Django after
      ``migrate`` (one per model × {add, change, delete, view}).
    • Custom workflow permissions are declared in each model's
      ``Meta.permissions`` tuple and inserted by ``migrate``.

Stage authority is not a permission: an officer acts on a stage by
holding the right role code and an active assignment.  Officer roles
only receive the visibility they need to see their assigned work.

The command is **idempotent** and safe to run multiple times.  Existing
roles are updated; permissions are replaced (set) to match the
mapping below.

Usage::

    python manage.py setup_rbac
"""

from django.contrib.auth.models import Permission
from django.core.management.base import BaseCommand

from accounts.models import OfficerRole, Role
from core.permissions_constants import (
    AccountsPerms,
    ApplicationsPerms,
    AppointmentsPerms,
    AssignmentsPerms,
    CorePerms,
    FormConfigsPerms,
    SignaturesPerms,
)

# Every officer sees its assigned applications, their outcomes and
# documents, its notifications and the appointments it schedules.
_OFFICER_BASE: list[str] = [
    ApplicationsPerms.CAN_VIEW_ASSIGNED_APPLICATIONS,
    ApplicationsPerms.VIEW_POSITIONAPPLICATION,
    ApplicationsPerms.VIEW_STAGEOUTCOME,
    ApplicationsPerms.VIEW_APPLICATIONDOCUMENT,
    AssignmentsPerms.VIEW_ASSIGNMENTRECORD,
    CorePerms.VIEW_NOTIFICATION,
    CorePerms.CHANGE_NOTIFICATION,
]

_JUNIOR: list[str] = [
    *_OFFICER_BASE,
    AppointmentsPerms.VIEW_APPOINTMENT,
    AppointmentsPerms.ADD_APPOINTMENT,
]

_SENIOR: list[str] = [
    *_OFFICER_BASE,
    SignaturesPerms.VIEW_DIGITALSIGNATURE,
    AssignmentsPerms.CAN_VIEW_WORKLOAD,
]

# ────────────────────────────────────────────────────────────────────
# Role → Permission mapping, built from the permission constants
# ────────────────────────────────────────────────────────────────────
# Key:   (role_name, officer role code or None, description, hierarchy_level)
# Value: list of codenames from ``core.permissions_constants``

ROLE_PERMISSIONS_MAP: dict[tuple[str, str | None, str, int], list[str]] = {

    # ── System Administrator ────────────────────────────────────────
    (
        "System Admin",
        None,
        "Full system access: manages officers, rules and assignments.",
        100,
    ): [
        AccountsPerms.VIEW_ROLE, AccountsPerms.ADD_ROLE,
        AccountsPerms.CHANGE_ROLE, AccountsPerms.DELETE_ROLE,
        AccountsPerms.VIEW_USER, AccountsPerms.ADD_USER,
        AccountsPerms.CHANGE_USER, AccountsPerms.DELETE_USER,
        AccountsPerms.CAN_MANAGE_USERS,
        ApplicationsPerms.VIEW_POSITIONAPPLICATION,
        ApplicationsPerms.CHANGE_POSITIONAPPLICATION,
        ApplicationsPerms.VIEW_STAGEOUTCOME,
        ApplicationsPerms.VIEW_APPLICATIONDOCUMENT,
        ApplicationsPerms.CAN_VIEW_ALL_APPLICATIONS,
        AssignmentsPerms.VIEW_AUTOASSIGNMENTRULE, AssignmentsPerms.ADD_AUTOASSIGNMENTRULE,
        AssignmentsPerms.CHANGE_AUTOASSIGNMENTRULE, AssignmentsPerms.DELETE_AUTOASSIGNMENTRULE,
        AssignmentsPerms.VIEW_ASSIGNMENTRECORD,
        AssignmentsPerms.CAN_MANAGE_ASSIGNMENTS,
        AssignmentsPerms.CAN_MANAGE_ASSIGNMENT_RULES,
        AssignmentsPerms.CAN_VIEW_WORKLOAD,
        AppointmentsPerms.VIEW_APPOINTMENT, AppointmentsPerms.CHANGE_APPOINTMENT,
        AppointmentsPerms.CAN_MANAGE_REMINDERS,
        SignaturesPerms.VIEW_DIGITALSIGNATURE,
        SignaturesPerms.CAN_VIEW_SIGNATURE_AUDIT,
        CorePerms.VIEW_NOTIFICATION, CorePerms.CHANGE_NOTIFICATION,
        CorePerms.CAN_VIEW_REPORTS,
        FormConfigsPerms.VIEW_FORMCONFIGURATION, FormConfigsPerms.ADD_FORMCONFIGURATION,
        FormConfigsPerms.CHANGE_FORMCONFIGURATION, FormConfigsPerms.VIEW_FORMFEEHISTORY,
        FormConfigsPerms.CAN_MANAGE_FORMS,
    ],

    # ── Officers ────────────────────────────────────────────────────
    (
        "City Engineer",
        OfficerRole.CITY_ENGINEER,
        "Final review and final signature on every position type.",
        9,
    ): [
        *_SENIOR,
        AccountsPerms.VIEW_USER,
        ApplicationsPerms.CAN_VIEW_ALL_APPLICATIONS,
        CorePerms.CAN_VIEW_REPORTS,
    ],
    (
        "Executive Engineer",
        OfficerRole.EXECUTIVE_ENGINEER,
        "Reviews and signs certificates for every position type.",
        7,
    ): [
        *_SENIOR,
        CorePerms.CAN_VIEW_REPORTS,
    ],
    (
        "Assistant Architect",
        OfficerRole.ASSISTANT_ARCHITECT,
        "Second-level review of architect applications.",
        5,
    ): list(_OFFICER_BASE),
    (
        "Assistant Licence Engineer",
        OfficerRole.ASSISTANT_LICENCE_ENGINEER,
        "Second-level review of licence engineer applications.",
        5,
    ): list(_OFFICER_BASE),
    (
        "Assistant Structural Engineer",
        OfficerRole.ASSISTANT_STRUCTURAL_ENGINEER,
        "Second-level review of structural engineer applications.",
        5,
    ): list(_OFFICER_BASE),
    (
        "Assistant Supervisor 1",
        OfficerRole.ASSISTANT_SUPERVISOR1,
        "Parallel second-level review of supervisor applications.",
        5,
    ): list(_OFFICER_BASE),
    (
        "Assistant Supervisor 2",
        OfficerRole.ASSISTANT_SUPERVISOR2,
        "Parallel second-level review of supervisor applications.",
        5,
    ): list(_OFFICER_BASE),
    (
        "Junior Architect",
        OfficerRole.JUNIOR_ARCHITECT,
        "Document verification and site appointment for architects.",
        4,
    ): list(_JUNIOR),
    (
        "Junior Licence Engineer",
        OfficerRole.JUNIOR_LICENCE_ENGINEER,
        "Document verification and site appointment for licence engineers.",
        4,
    ): list(_JUNIOR),
    (
        "Junior Structural Engineer",
        OfficerRole.JUNIOR_STRUCTURAL_ENGINEER,
        "Document verification and site appointment for structural engineers.",
        4,
    ): list(_JUNIOR),
    (
        "Junior Supervisor 1",
        OfficerRole.JUNIOR_SUPERVISOR1,
        "Document verification and site appointment for supervisor 1.",
        4,
    ): list(_JUNIOR),
    (
        "Junior Supervisor 2",
        OfficerRole.JUNIOR_SUPERVISOR2,
        "Document verification and site appointment for supervisor 2.",
        4,
    ): list(_JUNIOR),
    (
        "Clerk",
        OfficerRole.CLERK,
        "Certificate processing between the review and signing stages.",
        2,
    ): list(_OFFICER_BASE),

    # ── Non-officer roles ───────────────────────────────────────────
    (
        "Report Viewer",
        None,
        "Read-only access to the workflow reports.",
        1,
    ): [
        ApplicationsPerms.CAN_VIEW_ALL_APPLICATIONS,
        CorePerms.CAN_VIEW_REPORTS,
        CorePerms.VIEW_NOTIFICATION,
    ],
    (
        "Applicant",
        None,
        "Professionals applying for a position licence.",
        0,
    ): [
        ApplicationsPerms.ADD_POSITIONAPPLICATION,
        ApplicationsPerms.ADD_APPLICATIONDOCUMENT,
        CorePerms.VIEW_NOTIFICATION, CorePerms.CHANGE_NOTIFICATION,
    ],
}


class Command(BaseCommand):
    help = "Seed base roles and link them to Django permissions."

    def handle(self, *args, **options):
        self.stdout.write(self.style.MIGRATE_HEADING(
            "\n╔══════════════════════════════════════════╗\n"
            "║   PMCRMS — RBAC Setup                    ║\n"
            "╚══════════════════════════════════════════╝\n"
        ))

        # Pre-fetch ALL permissions into a dict for fast look-up
        all_permissions: dict[str, Permission] = {
            p.codename: p
            for p in Permission.objects.select_related("content_type").all()
        }

        roles_created = 0
        roles_updated = 0
        warnings = 0

        for (role_name, code, description, hierarchy_level), codenames in ROLE_PERMISSIONS_MAP.items():
            # ── 1. Idempotent role creation / update ────────────────
            role, created = Role.objects.get_or_create(
                name=role_name,
                defaults={
                    "code": code,
                    "description": description,
                    "hierarchy_level": hierarchy_level,
                },
            )

            if not created:
                changed = False
                if role.code != code:
                    role.code = code
                    changed = True
                if role.description != description:
                    role.description = description
                    changed = True
                if role.hierarchy_level != hierarchy_level:
                    role.hierarchy_level = hierarchy_level
                    changed = True
                if changed:
                    role.save(update_fields=["code", "description", "hierarchy_level"])

            # ── 2. Resolve permission codenames ─────────────────────
            resolved_permissions: list[Permission] = []
            for codename in codenames:
                perm = all_permissions.get(codename)
                if perm is not None:
                    resolved_permissions.append(perm)
                else:
                    warnings += 1
                    self.stdout.write(self.style.WARNING(
                        f"  ⚠  Permission '{codename}' not found — "
                        f"skipped for role '{role_name}'.  "
                        f"(Run makemigrations & migrate first?)"
                    ))

            # ── 3. Set permissions (replaces old set entirely) ──────
            role.permissions.set(resolved_permissions)

            # ── 4. Console output ───────────────────────────────────
            action = "Created" if created else "Updated"
            if created:
                roles_created += 1
            else:
                roles_updated += 1

            self.stdout.write(self.style.SUCCESS(
                f"  ✔  {action} role: {role_name:<30s} "
                f"(code={code or '-'}, hierarchy={hierarchy_level}, "
                f"permissions={len(resolved_permissions)})"
            ))

        # ── Summary ─────────────────────────────────────────────────
        self.stdout.write(self.style.MIGRATE_HEADING(
            "\n──────────────────────────────────────────"
        ))
        summary = (
            f"  Done!  {roles_created} role(s) created, "
            f"{roles_updated} role(s) updated.  "
            f"Total: {roles_created + roles_updated} role(s)."
        )
        if warnings:
            summary += f"  ({warnings} permission warning(s) — see above.)"
        self.stdout.write(self.style.SUCCESS(summary + "\n"))

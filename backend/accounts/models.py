"""
Accounts app models.

Defines the officer directory: a dynamic ``Role`` model carrying a fixed
officer role code, and a custom ``User`` model (applicants and officers
alike) that extends Django's ``AbstractUser``.
"""

from django.contrib.auth.models import AbstractUser, Permission
from django.db import models

from core.permissions_constants import AccountsPerms


class OfficerRole(models.TextChoices):
    """
    Officer job titles that can act on a workflow stage.

    Junior / Assistant engineers are specialised per position type; the
    Executive Engineer, City Engineer and Clerk handle every position.
    """

    JUNIOR_ARCHITECT = "junior_architect", "Junior Architect"
    ASSISTANT_ARCHITECT = "assistant_architect", "Assistant Architect"
    JUNIOR_LICENCE_ENGINEER = "junior_licence_engineer", "Junior Licence Engineer"
    ASSISTANT_LICENCE_ENGINEER = "assistant_licence_engineer", "Assistant Licence Engineer"
    JUNIOR_STRUCTURAL_ENGINEER = "junior_structural_engineer", "Junior Structural Engineer"
    ASSISTANT_STRUCTURAL_ENGINEER = "assistant_structural_engineer", "Assistant Structural Engineer"
    JUNIOR_SUPERVISOR1 = "junior_supervisor1", "Junior Supervisor 1"
    ASSISTANT_SUPERVISOR1 = "assistant_supervisor1", "Assistant Supervisor 1"
    JUNIOR_SUPERVISOR2 = "junior_supervisor2", "Junior Supervisor 2"
    ASSISTANT_SUPERVISOR2 = "assistant_supervisor2", "Assistant Supervisor 2"
    EXECUTIVE_ENGINEER = "executive_engineer", "Executive Engineer"
    CITY_ENGINEER = "city_engineer", "City Engineer"
    CLERK = "clerk", "Clerk"


class Role(models.Model):
    """
    Dynamic, admin-manageable role.

    ``code`` ties a role to an ``OfficerRole`` job title; roles without a
    code (System Admin, Applicant, report viewers) never act on a stage.
    ``hierarchy_level`` encodes relative authority
    (City Engineer > Executive Engineer > Assistant > Junior > Clerk).

    Custom permissions are registered in each model's ``Meta.permissions``
    using constants from ``core.permissions_constants``; the ``setup_rbac``
    command links them to roles.
    """

    name = models.CharField(
        max_length=100,
        unique=True,
        verbose_name="Role Name",
    )
    code = models.CharField(
        max_length=40,
        choices=OfficerRole.choices,
        unique=True,
        null=True,
        blank=True,
        verbose_name="Officer Role Code",
        help_text="Set for officer roles that can be assigned to workflow stages.",
    )
    description = models.TextField(
        blank=True,
        default="",
        verbose_name="Description",
    )
    hierarchy_level = models.PositiveSmallIntegerField(
        default=0,
        verbose_name="Hierarchy Level",
        help_text="Higher value = more authority (e.g. City Engineer=9, Clerk=2).",
    )
    permissions = models.ManyToManyField(
        Permission,
        blank=True,
        verbose_name="Permissions",
        help_text="Specific permissions for this role.",
    )

    class Meta:
        verbose_name = "Role"
        verbose_name_plural = "Roles"
        ordering = ["-hierarchy_level", "name"]

    def __str__(self):
        return self.name


class User(AbstractUser):
    """
    Custom user model shared by applicants and officers.

    Each user holds exactly **one** role at a time (FK to ``Role``).
    Applicants hold a role without an officer code (or none at all).
    """

    employee_id = models.CharField(
        max_length=30,
        unique=True,
        null=True,
        blank=True,
        verbose_name="Employee ID",
        help_text="PMC employee number. Officers only.",
    )
    department = models.CharField(
        max_length=100,
        blank=True,
        default="",
        verbose_name="Department",
    )
    phone_number = models.CharField(
        max_length=15,
        unique=True,
        verbose_name="Phone Number",
        db_index=True,
    )
    email = models.EmailField(
        unique=True,
        verbose_name="Email Address",
    )
    hsm_key_label = models.CharField(
        max_length=50,
        blank=True,
        default="",
        verbose_name="HSM Key Label",
        help_text="Signing key held for this officer. Falls back to the role default.",
    )

    # ── Single-role assignment (dynamic RBAC) ────────────────────────
    role = models.ForeignKey(
        Role,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="users",
        verbose_name="Assigned Role",
    )

    REQUIRED_FIELDS = ["email", "phone_number", "first_name", "last_name"]

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"
        permissions = [
            (AccountsPerms.CAN_MANAGE_USERS, "Admin-level officer management"),
        ]

    def __str__(self):
        role_name = self.role.name if self.role else "No Role"
        return f"{self.username} ({self.get_full_name()}) - {role_name}"

    # ── Helper predicates for role checks ────────────────────────────

    @property
    def officer_role(self) -> str | None:
        """The ``OfficerRole`` code of this user, or ``None``."""
        if self.role is None:
            return None
        return self.role.code or None

    def holds_officer_role(self, *codes: str) -> bool:
        """True if the user is active and holds one of the given role codes."""
        return self.is_active and self.officer_role in codes

    @property
    def hierarchy_level(self) -> int:
        """Return the hierarchy_level of the user's role (0 if none)."""
        return self.role.hierarchy_level if self.role else 0

    # ── RBAC Permission Overrides ────────────────────────────────────

    def get_all_permissions(self, obj=None) -> set:
        """
        Return a set of permission strings ('app_label.codename') the user has.
        """
        if not self.is_active:
            return set()

        if self.is_superuser:
            if not hasattr(self, "_superuser_perm_cache"):
                perms = Permission.objects.select_related("content_type").all()
                self._superuser_perm_cache = {f"{p.content_type.app_label}.{p.codename}" for p in perms}
            return self._superuser_perm_cache

        if not self.role:
            return set()

        if not hasattr(self, "_perm_cache"):
            perms = self.role.permissions.select_related("content_type")
            self._perm_cache = {f"{p.content_type.app_label}.{p.codename}" for p in perms}

        return self._perm_cache

    def has_perm(self, perm: str, obj=None) -> bool:
        """
        Superusers always have all permissions.  Otherwise, check if the
        assigned role has the permission.
        """
        if self.is_active and self.is_superuser:
            return True

        return perm in self.get_all_permissions(obj)

    def has_perms(self, perm_list, obj=None) -> bool:
        return all(self.has_perm(perm, obj) for perm in perm_list)

    def has_module_perms(self, app_label: str) -> bool:
        if self.is_active and self.is_superuser:
            return True

        return any(perm.startswith(f"{app_label}.") for perm in self.get_all_permissions())

    @property
    def permissions_list(self) -> list[str]:
        """Flat list of ``app_label.codename`` strings for the frontend."""
        return sorted(self.get_all_permissions())

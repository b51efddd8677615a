"""
core.domain.access — Permission-scoped queryset selectors (shared patterns).

This module provides shared utilities that each app's service layer
calls to obtain querysets filtered by the requesting user's permissions.

Per-app scoping logic does NOT live here.  Each app's ``services.py``
owns its own scope-rules list.  This module provides:

  1) ``apply_permission_scope`` — ordered permission dispatch.
  2) ``require_permission`` — guard that checks has_perm.
  3) ``get_user_role_code`` — the officer role code of a user.

Usage in an app's service layer::

    from core.domain.access import apply_permission_scope

    APPLICATION_SCOPE_RULES = [
        ("applications.can_view_all_applications", lambda qs, u: qs),
        ("applications.can_view_assigned_applications",
         lambda qs, u: qs.filter(assignments__officer=u).distinct()),
    ]

    qs = apply_permission_scope(
        PositionApplication.objects.all(), user,
        scope_rules=APPLICATION_SCOPE_RULES,
        default="none",
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from django.db.models import QuerySet

if TYPE_CHECKING:
    from accounts.models import User

# Takes (queryset, user) and returns a filtered queryset.
ScopeFilter = Callable[[QuerySet, "User"], QuerySet]

# (permission "app_label.codename", filter_fn)
ScopeRule = tuple[str, ScopeFilter]


def get_user_role_code(user: User) -> str | None:
    """
    Return the officer role code of ``user`` (e.g.
    ``"junior_structural_engineer"``), or ``None`` if the user holds no
    officer role.

    Stage authority in the workflow is decided by this code together
    with an active assignment, never by permission codenames alone.
    """
    role = getattr(user, "role", None)
    if role is None:
        return None
    return role.code or None


def apply_permission_scope(
    queryset: QuerySet,
    user: User,
    *,
    scope_rules: list[ScopeRule],
    default: str = "none",
) -> QuerySet:
    """
    Apply the first matching permission-based scope rule.

    Rules are checked **in order**; the first permission match wins.
    Order rules from broadest (unrestricted) to narrowest (most restricted)
    so that users with wider access hit their rule first.

    Args:
        queryset:     Base (unfiltered) queryset.
        user:         The authenticated user.
        scope_rules:  Ordered list of ``(perm_codename, filter_fn)`` tuples.
                      The ``perm_codename`` must include the app label.
        default:      ``"none"`` (default) → empty queryset when nothing
                      matches; ``"all"`` → return unfiltered.

    Returns:
        The (possibly filtered) queryset.
    """
    for perm, filter_fn in scope_rules:
        if user.has_perm(perm):
            return filter_fn(queryset, user)

    if default == "none":
        return queryset.none()
    return queryset


def require_permission(user: User, *perms: str, message: str = "") -> None:
    """
    Guard that raises ``PermissionDenied`` if the user lacks **all** of
    the given permissions (OR-logic: having any one is sufficient).

    Args:
        user:    Authenticated user.
        *perms:  One or more full permission strings (``app.codename``).
        message: Optional custom error message.

    Raises:
        core.domain.exceptions.PermissionDenied: If the user has none
            of the listed permissions.

    Example::

        require_permission(user, "assignments.can_manage_assignments")
    """
    from core.domain.exceptions import PermissionDenied as DomainPermissionDenied

    for perm in perms:
        if user.has_perm(perm):
            return
    raise DomainPermissionDenied(
        message or f"Missing required permission: {', '.join(perms)}."
    )

"""
core.domain — Shared domain utilities for cross-app service layers.

Modules
-------
exceptions         Domain-specific exceptions that map cleanly to HTTP responses.
exception_handler  DRF exception handler for the domain exceptions.
notifications      Synchronous in-app notification creation helper.
transactions       Helpers for ``transaction.atomic``, ``select_for_update``
                   and compare-and-swap updates.
access             Permission-scoped queryset selectors.

Usage from any app::

    from core.domain.exceptions import DomainError, StaleStateError
    from core.domain.notifications import NotificationService
    from core.domain.transactions import lock_for_update
    from core.domain.access import apply_permission_scope
"""

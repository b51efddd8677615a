"""
Smoke tests: verify that Django boots, URL routing resolves, and
the core domain modules are importable.

These tests require a DB (they use ``@pytest.mark.django_db`` where
needed) but do NOT require real data; they just prove the plumbing
works.
"""

from __future__ import annotations

import pytest
from django.urls import resolve, reverse


# ════════════════════════════════════════════════════════════════════
#  URL Routing Smoke Tests
# ════════════════════════════════════════════════════════════════════

class TestURLRouting:
    """Ensure all top-level app URL namespaces resolve without 404."""

    EXPECTED_URLS = [
        # (url_name, expected_path_prefix)
        ("application-list",          "/api/applications/"),
        ("assignment-workload",       "/api/assignments/workload/"),
        ("assignment-rule-list",      "/api/assignments/rules/"),
        ("signature-list",            "/api/signatures/"),
        ("core:system-constants",     "/api/core/constants/"),
        ("core:report-positions",     "/api/core/reports/positions/"),
        ("accounts:me",               "/api/accounts/me/"),
    ]

    @pytest.mark.parametrize("url_name,expected_prefix", EXPECTED_URLS)
    def test_url_resolves(self, url_name: str, expected_prefix: str):
        """Named URL reverses to the expected path prefix."""
        url = reverse(url_name)
        assert url.startswith(expected_prefix), (
            f"{url_name} resolved to {url}, expected prefix {expected_prefix}"
        )

    @pytest.mark.parametrize("url_name,expected_prefix", EXPECTED_URLS)
    def test_url_resolve_matches_view(self, url_name: str, expected_prefix: str):
        """Path resolves to a view function (not a 404)."""
        match = resolve(expected_prefix)
        assert match.func is not None


@pytest.mark.django_db
class TestAuthenticationRequired:

    def test_anonymous_request_is_rejected(self, api_client):
        resp = api_client.get(reverse("application-list"))
        assert resp.status_code == 401

    def test_jwt_header_authenticates(self, api_client, auth_header):
        header = auth_header(username="smoke_user")
        api_client.credentials(HTTP_AUTHORIZATION=header["Authorization"])
        resp = api_client.get(reverse("accounts:me"))
        assert resp.status_code == 200
        assert resp.data["username"] == "smoke_user"

    def test_officer_profile_carries_role_code(self, api_client, auth_header, officer):
        clerk = officer("clerk")
        api_client.credentials(HTTP_AUTHORIZATION=auth_header(clerk)["Authorization"])
        resp = api_client.get(reverse("accounts:me"))
        assert resp.status_code == 200
        assert resp.data["officer_role"] == "clerk"
        assert resp.data["open_assignments"] == 0


class TestHsmWiring:

    def test_fake_client_is_loaded_from_settings(self, fake_hsm):
        from signatures.hsm import get_hsm_client

        client = get_hsm_client()
        assert isinstance(client, fake_hsm)
        client.request_otp(transaction_id="txn-1", key_label="EE-KEY")
        assert fake_hsm.calls == [("request_otp", {"txn": "txn-1", "klabel": "EE-KEY"})]

    def test_default_client_is_the_http_one(self):
        from signatures.hsm import HttpHsmClient, get_hsm_client

        assert isinstance(get_hsm_client(), HttpHsmClient)


# ════════════════════════════════════════════════════════════════════
#  Core Domain Module Import Tests
# ════════════════════════════════════════════════════════════════════

class TestCoreDomainImports:
    """Verify that shared domain utility modules are importable."""

    def test_import_exceptions(self):
        from core.domain.exceptions import (
            AlreadyAssignedError,
            Conflict,
            DomainError,
            InvalidTransition,
            NotFound,
            PermissionDenied,
            StaleStateError,
            UnauthorizedRoleError,
        )
        # Ensure they form an inheritance chain
        assert issubclass(InvalidTransition, Conflict)
        assert issubclass(StaleStateError, Conflict)
        assert issubclass(AlreadyAssignedError, Conflict)
        assert issubclass(Conflict, DomainError)
        assert issubclass(UnauthorizedRoleError, PermissionDenied)
        assert issubclass(NotFound, DomainError)

    def test_import_notifications(self):
        from core.domain.notifications import NotificationService
        assert hasattr(NotificationService, "create")

    def test_import_transactions(self):
        from core.domain.transactions import (
            atomic_transition,
            compare_and_swap,
            lock_for_update,
        )
        assert callable(atomic_transition)
        assert callable(compare_and_swap)
        assert callable(lock_for_update)


# ════════════════════════════════════════════════════════════════════
#  Exception Behaviour Tests
# ════════════════════════════════════════════════════════════════════

class TestDomainExceptions:
    """Unit tests for domain exception classes."""

    def test_domain_error_message(self):
        from core.domain.exceptions import DomainError
        err = DomainError("test message")
        assert str(err) == "test message"

    def test_invalid_transition_structured(self):
        from core.domain.exceptions import InvalidTransition
        err = InvalidTransition(
            current="completed",
            target="confirmed",
            reason="Completed appointments are terminal",
        )
        assert "completed" in str(err)
        assert "confirmed" in str(err)
        assert "Completed appointments are terminal" in str(err)
        assert err.current == "completed"
        assert err.target == "confirmed"

    def test_stale_state_names_both_stages(self):
        from core.domain.exceptions import StaleStateError
        err = StaleStateError(expected="je_review", actual="ae_review")
        assert "je_review" in str(err)
        assert "ae_review" in str(err)
        assert err.expected == "je_review"


# ════════════════════════════════════════════════════════════════════
#  Access Helper Unit Tests
# ════════════════════════════════════════════════════════════════════

class TestAccessHelpers:
    """Unit tests for core.domain.access helpers."""

    def test_apply_permission_scope_no_match_default_all(self):
        """No matching permission with default='all' returns unfiltered qs."""
        from unittest.mock import MagicMock
        from core.domain.access import apply_permission_scope

        user = MagicMock()
        user.has_perm.return_value = False

        qs = MagicMock()
        result = apply_permission_scope(qs, user, scope_rules=[], default="all")
        assert result is qs  # returned unmodified

    def test_apply_permission_scope_no_match_default_none(self):
        """No matching permission with default='none' returns empty qs."""
        from unittest.mock import MagicMock
        from core.domain.access import apply_permission_scope

        user = MagicMock()
        user.has_perm.return_value = False

        qs = MagicMock()
        apply_permission_scope(qs, user, scope_rules=[("a.b", lambda q, u: q)], default="none")
        qs.none.assert_called_once()

    def test_first_matching_rule_wins(self):
        from unittest.mock import MagicMock
        from core.domain.access import apply_permission_scope

        user = MagicMock()
        user.has_perm.side_effect = lambda perm: perm == "app.narrow"

        qs = MagicMock()
        result = apply_permission_scope(
            qs, user,
            scope_rules=[("app.wide", lambda q, u: "wide"), ("app.narrow", lambda q, u: "narrow")],
        )
        assert result == "narrow"

    def test_require_permission_raises(self):
        """require_permission raises PermissionDenied when no perm matches."""
        from unittest.mock import MagicMock
        from core.domain.access import require_permission
        from core.domain.exceptions import PermissionDenied

        user = MagicMock()
        user.has_perm.return_value = False

        with pytest.raises(PermissionDenied):
            require_permission(user, "assignments.can_manage_assignments")

    def test_get_user_role_code(self):
        """Users without a role or with a code-less role have no code."""
        from unittest.mock import MagicMock
        from core.domain.access import get_user_role_code

        user = MagicMock()
        user.role = None
        assert get_user_role_code(user) is None

        user.role = MagicMock(code="")
        assert get_user_role_code(user) is None

        user.role = MagicMock(code="junior_architect")
        assert get_user_role_code(user) == "junior_architect"

"""
Root conftest.py: pytest fixtures shared by the plain-function tests.

Provides:
  - ``api_client``: an unauthenticated DRF ``APIClient``.
  - ``officer``: factory for active officers holding a role code.
  - ``auth_header``: JWT ``Authorization`` header for a given user.
  - ``fake_hsm``: swaps the HSM client for the in-memory fake.

Django ``TestCase`` classes use ``tests.factories`` directly.
"""

from __future__ import annotations

import pytest
from rest_framework.test import APIClient


@pytest.fixture()
def api_client() -> APIClient:
    """Unauthenticated DRF test client."""
    return APIClient()


@pytest.fixture()
def officer(db):
    """
    Factory fixture creating an officer for an ``OfficerRole`` code.

    Usage::

        def test_something(officer):
            je = officer("junior_architect")
            ee = officer("executive_engineer", username="ee_main")
    """
    from tests.factories import make_officer

    created = 0

    def _factory(code: str, *, username: str | None = None, **kwargs):
        nonlocal created
        created += 1
        return make_officer(username or f"{code}_{created}", code, **kwargs)

    return _factory


@pytest.fixture()
def auth_header(db):
    """
    Returns a helper that builds an ``Authorization`` header with a
    valid JWT access token for ``user``, or for a fresh applicant when
    only a username is given.

    Usage::

        def test_protected(auth_header, api_client, officer):
            header = auth_header(officer("clerk"))
            api_client.credentials(HTTP_AUTHORIZATION=header["Authorization"])
    """
    from rest_framework_simplejwt.tokens import AccessToken

    from tests.factories import make_user

    def _make(user=None, *, username: str | None = None) -> dict[str, str]:
        if user is None:
            user = make_user(username or "applicant")
        return {"Authorization": f"Bearer {AccessToken.for_user(user)}"}

    return _make


@pytest.fixture()
def fake_hsm(settings):
    """Route every HSM call to ``FakeHsmClient`` for the test."""
    from signatures.tests.fakes import FAKE_HSM_SETTINGS, FakeHsmClient

    settings.PMCRMS = FAKE_HSM_SETTINGS
    FakeHsmClient.reset()
    yield FakeHsmClient
    FakeHsmClient.reset()

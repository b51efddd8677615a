"""
Core constants — **Single Source of Truth** for project-wide tunables.

Any business rule that references a numeric constant should read it
from here instead of hardcoding.  Deployments override the defaults
through the ``PMCRMS`` dict in ``settings.py``; tests use
``override_settings(PMCRMS={...})``.
"""

from __future__ import annotations

from typing import Any

from django.conf import settings

#: Prefix of the human-readable application number (``PMC-2026-000001``).
APPLICATION_NUMBER_PREFIX: str = "PMC"

DEFAULTS: dict[str, Any] = {
    # ── Digital signatures ──────────────────────────────────────────
    "OTP_TTL_SECONDS": 300,
    "OTP_MAX_ATTEMPTS": 3,
    "OTP_COOLDOWN_SECONDS": 60,
    "HSM_CLIENT": "signatures.hsm.HttpHsmClient",
    "HSM_OTP_URL": "",
    "HSM_SIGNER_URL": "",
    "HSM_TIMEOUT_SECONDS": 60,
    "HSM_MAX_RETRIES": 2,
    "HSM_BACKOFF_SECONDS": 0.5,
    "HSM_KEY_LABELS": {},
    # ── Assignment engine ───────────────────────────────────────────
    "ROUND_ROBIN_CAS_RETRIES": 3,
    "DEFAULT_MAX_WORKLOAD": 50,
    "DELAY_THRESHOLD_HOURS": 72,
    # ── Appointments ────────────────────────────────────────────────
    "REMINDER_WINDOW_HOURS": 24,
}


def pmcrms_setting(name: str) -> Any:
    """Return ``settings.PMCRMS[name]``, falling back to ``DEFAULTS``."""
    configured = getattr(settings, "PMCRMS", {}) or {}
    if name in configured:
        return configured[name]
    return DEFAULTS[name]

"""
signatures.hsm — Client for the Hardware Security Module signing service.

The HSM exposes two endpoints:

- **OTP** (``HSM_OTP_URL``): sends a one-time password to the officer's
  registered mobile for a transaction and key label.
- **Signer** (``HSM_SIGNER_URL``): validates the OTP and signs the
  document held at ``document_path`` with the officer's key.

Failure classes
---------------
- ``HsmTransportError`` — network error, timeout or 5xx.  Retried by
  ``call_with_retry``; never changes a signature record.
- ``HsmOtpRejected``    — the HSM says the OTP is wrong.
- ``HsmSigningError``   — any other error reported by the HSM.

The client class is configurable (``PMCRMS["HSM_CLIENT"]``) so tests and
staging environments can plug in a fake.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, TypeVar

import requests
from django.utils.module_loading import import_string

from core.constants import pmcrms_setting

logger = logging.getLogger(__name__)

T = TypeVar("T")

#: ``status`` value the HSM returns on success.
HSM_STATUS_SUCCESS = 1

#: ``errCode`` the signer returns when the OTP does not match.
HSM_ERR_INVALID_OTP = "INVALID_OTP"


class HsmError(Exception):
    """Base class for HSM client errors."""


class HsmTransportError(HsmError):
    """The HSM could not be reached or answered with a server error."""


class HsmOtpRejected(HsmError):
    """The HSM rejected the OTP."""


class HsmSigningError(HsmError):
    """The HSM refused the request for a reason other than a wrong OTP."""


class HttpHsmClient:
    """
    JSON-over-HTTP client built on ``requests``.

    Request bodies follow the HSM's field names: ``txn`` (transaction id),
    ``klabel`` (key label), ``otptype`` and ``ptno``.  Responses carry
    ``status`` (1 = success), ``errCode`` / ``errMsg`` and ``succMsg``.
    """

    def __init__(
        self,
        otp_url: str | None = None,
        signer_url: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.otp_url = otp_url or pmcrms_setting("HSM_OTP_URL")
        self.signer_url = signer_url or pmcrms_setting("HSM_SIGNER_URL")
        self.timeout = timeout or pmcrms_setting("HSM_TIMEOUT_SECONDS")
        self.session = session or requests.Session()

    def request_otp(self, *, transaction_id: str, key_label: str) -> dict[str, Any]:
        """Ask the HSM to send an OTP for ``transaction_id``."""
        body = self._post(self.otp_url, {
            "otptype": "single",
            "ptno": "1",
            "txn": transaction_id,
            "klabel": key_label,
        })
        if body.get("status") != HSM_STATUS_SUCCESS:
            raise HsmSigningError(body.get("errMsg") or "OTP generation failed.")
        return body

    def sign(
        self,
        *,
        transaction_id: str,
        key_label: str,
        otp: str,
        document_path: str,
    ) -> dict[str, Any]:
        """
        Sign the document at ``document_path``.

        Returns
        -------
        dict
            The HSM response; ``signed_document_path`` holds the location
            of the signed copy.
        """
        body = self._post(self.signer_url, {
            "otptype": "single",
            "txn": transaction_id,
            "klabel": key_label,
            "otp": otp,
            "document_path": document_path,
        })
        if body.get("status") == HSM_STATUS_SUCCESS:
            return body
        if body.get("errCode") == HSM_ERR_INVALID_OTP:
            raise HsmOtpRejected(body.get("errMsg") or "Invalid OTP.")
        raise HsmSigningError(body.get("errMsg") or "Signing failed.")

    def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        if not url:
            raise HsmTransportError("HSM endpoint is not configured.")
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise HsmTransportError(str(exc)) from exc

        if response.status_code >= 500:
            raise HsmTransportError(f"HSM answered HTTP {response.status_code}.")
        if response.status_code >= 400:
            raise HsmSigningError(f"HSM rejected the request: HTTP {response.status_code}.")
        try:
            return response.json()
        except ValueError as exc:
            raise HsmSigningError("HSM returned a malformed response.") from exc


def get_hsm_client():
    """Instantiate the client class named by ``PMCRMS["HSM_CLIENT"]``."""
    return import_string(pmcrms_setting("HSM_CLIENT"))()


def call_with_retry(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Call ``func`` retrying ``HsmTransportError`` up to ``HSM_MAX_RETRIES``
    times with exponential backoff.  Other errors propagate at once.
    """
    retries = pmcrms_setting("HSM_MAX_RETRIES")
    backoff = pmcrms_setting("HSM_BACKOFF_SECONDS")
    attempt = 0
    while True:
        try:
            return func(*args, **kwargs)
        except HsmTransportError as exc:
            if attempt >= retries:
                raise
            delay = backoff * (2 ** attempt)
            logger.warning(
                "HSM call %s failed (%s); retry %d/%d in %.1fs",
                getattr(func, "__name__", func), exc, attempt + 1, retries, delay,
            )
            time.sleep(delay)
            attempt += 1

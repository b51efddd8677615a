"""
core.domain.exceptions — Domain-specific exception hierarchy.

These exceptions represent business-rule violations inside service layers.
They are deliberately **not** DRF exceptions so that the domain layer stays
framework-agnostic.  ``core.domain.exception_handler`` maps them to HTTP
responses.

Mapping cheatsheet
------------------
┌──────────────────────────┬────────────────────┬──────┐
│ Domain Exception         │ Parent             │ Code │
├──────────────────────────┼────────────────────┼──────┤
│ DomainError              │ Exception          │ 400  │
│ PermissionDenied         │ DomainError        │ 403  │
│ UnauthorizedRoleError    │ PermissionDenied   │ 403  │
│ NotFound                 │ DomainError        │ 404  │
│ Conflict                 │ DomainError        │ 409  │
│ InvalidTransition        │ Conflict           │ 409  │
│ StaleStateError          │ Conflict           │ 409  │
│ AlreadyAssignedError     │ Conflict           │ 409  │
│ AppointmentConflictError │ Conflict           │ 409  │
│ OtpAlreadyIssuedError    │ Conflict           │ 409  │
│ OtpExpiredError          │ DomainError        │ 410  │
│ NoEligibleOfficerError   │ DomainError        │ 422  │
│ OtpAttemptsExceededError │ DomainError        │ 429  │
│ HsmUnavailableError      │ DomainError        │ 503  │
└──────────────────────────┴────────────────────┴──────┘

Recommended usage inside a service::

    from core.domain.exceptions import StaleStateError

    if application.current_stage != stage:
        raise StaleStateError(
            expected=stage, actual=application.current_stage,
        )
"""

from __future__ import annotations


class DomainError(Exception):
    """
    Base class for all domain / business-rule errors.

    Catch this at the view boundary and convert to a 400 Bad Request.
    """

    code = "domain_error"

    def __init__(self, message: str = "A business rule was violated.") -> None:
        self.message = message
        super().__init__(self.message)


class PermissionDenied(DomainError):
    """
    The authenticated user does not have the required role or permission
    for this operation.

    Maps to HTTP 403.
    """

    code = "permission_denied"

    def __init__(self, message: str = "You do not have permission to perform this action.") -> None:
        super().__init__(message)


class NotFound(DomainError):
    """
    The requested resource does not exist (or is not visible to the
    requesting user given their role scope).

    Maps to HTTP 404.
    """

    code = "not_found"

    def __init__(self, message: str = "The requested resource was not found.") -> None:
        super().__init__(message)


class Conflict(DomainError):
    """
    The operation conflicts with the current state of the resource.

    Typical usage: duplicate creation attempt, optimistic-lock failure.
    Maps to HTTP 409.
    """

    code = "conflict"

    def __init__(self, message: str = "The operation conflicts with the current state.") -> None:
        super().__init__(message)


class InvalidTransition(Conflict):
    """
    A state-machine transition that is not allowed from the current status.

    Example::

        raise InvalidTransition(
            current="completed",
            target="confirmed",
            reason="Completed appointments are terminal.",
        )
    """

    code = "invalid_transition"

    def __init__(
        self,
        message: str | None = None,
        *,
        current: str | None = None,
        target: str | None = None,
        reason: str | None = None,
    ) -> None:
        if message is None:
            parts = ["Invalid state transition"]
            if current and target:
                parts.append(f"from '{current}' to '{target}'")
            if reason:
                parts.append(f"({reason})")
            message = " ".join(parts) + "."
        super().__init__(message)
        self.current = current
        self.target = target
        self.reason = reason


# ── Workflow ────────────────────────────────────────────────────────


class StaleStateError(Conflict):
    """
    A transition referenced a stage the application has already left,
    or a sub-review that already carries a decision.

    The caller must refetch the application before retrying.
    """

    code = "stale_state"

    def __init__(
        self,
        message: str | None = None,
        *,
        expected: str | None = None,
        actual: str | None = None,
    ) -> None:
        if message is None:
            message = (
                f"Application is at stage '{actual}', not '{expected}'. "
                f"Refresh and try again."
            )
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class UnauthorizedRoleError(PermissionDenied):
    """The officer does not hold the role (or assignment) the stage requires."""

    code = "unauthorized_role"

    def __init__(self, message: str = "Officer is not authorised for this stage.") -> None:
        super().__init__(message)


# ── Assignment ──────────────────────────────────────────────────────


class AlreadyAssignedError(Conflict):
    """The stage was claimed or assigned by another officer first."""

    code = "already_assigned"

    def __init__(self, message: str = "This stage already has an assigned officer.") -> None:
        super().__init__(message)


class NoEligibleOfficerError(DomainError):
    """An explicit assignment request found no officer who may take the stage."""

    code = "no_eligible_officer"

    def __init__(self, message: str = "No eligible officer is available for this stage.") -> None:
        super().__init__(message)


# ── Appointments ────────────────────────────────────────────────────


class AppointmentConflictError(Conflict):
    """The application already has a Scheduled or Confirmed appointment."""

    code = "appointment_conflict"

    def __init__(
        self,
        message: str = "The application already has an active appointment. Reschedule it instead.",
    ) -> None:
        super().__init__(message)


# ── Digital signatures ──────────────────────────────────────────────


class OtpAlreadyIssuedError(Conflict):
    """A non-expired OTP already exists for this application, stage and officer."""

    code = "otp_already_issued"

    def __init__(self, message: str = "An OTP has already been issued and has not expired.") -> None:
        super().__init__(message)


class OtpExpiredError(DomainError):
    """The OTP expired before it was used. A new OTP may be requested."""

    code = "otp_expired"

    def __init__(self, message: str = "The OTP has expired. Request a new one.") -> None:
        super().__init__(message)


class OtpAttemptsExceededError(DomainError):
    """Too many wrong OTPs, or a new OTP was requested during the cool-down."""

    code = "otp_attempts_exceeded"

    def __init__(self, message: str = "Maximum OTP attempts exceeded.") -> None:
        super().__init__(message)


class HsmUnavailableError(DomainError):
    """The HSM could not be reached after all retries."""

    code = "hsm_unavailable"

    def __init__(self, message: str = "The signing service is unavailable. Try again later.") -> None:
        super().__init__(message)

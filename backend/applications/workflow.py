"""
Pipeline tables for the position-application workflow.

One parameterised state machine serves every position type.  This module
holds only the static tables and pure helpers; the transition function
itself lives in ``applications.services.WorkflowService``.

Pipeline
--------
::

    SUBMITTED → JE_REVIEW → AE_REVIEW → EE_REVIEW → CE_REVIEW
      → CLERK_PROCESSING → EE_STAGE2_SIGN → CE_STAGE2_SIGN → COMPLETED

    Any review stage ──(rejected)──▶ REJECTED

AE_REVIEW is a parallel stage for supervisor positions: both Assistant
Supervisor 1 and Assistant Supervisor 2 must approve.
"""

from __future__ import annotations

from accounts.models import OfficerRole
from core.domain.exceptions import InvalidTransition

from .models import PositionType, Stage

#: Stages in the order an application passes through them.
PIPELINE: tuple[str, ...] = (
    Stage.SUBMITTED,
    Stage.JE_REVIEW,
    Stage.AE_REVIEW,
    Stage.EE_REVIEW,
    Stage.CE_REVIEW,
    Stage.CLERK_PROCESSING,
    Stage.EE_STAGE2_SIGN,
    Stage.CE_STAGE2_SIGN,
    Stage.COMPLETED,
)

#: The only legal forward edges.
NEXT_STAGE: dict[str, str] = dict(zip(PIPELINE[:-1], PIPELINE[1:]))

#: Stages decided by officers (everything between submission and completion).
REVIEW_STAGES: frozenset[str] = frozenset(PIPELINE[1:-1])

TERMINAL_STAGES: frozenset[str] = frozenset({Stage.COMPLETED, Stage.REJECTED})

#: Approval on these stages needs a Signed digital signature by the officer.
SIGNATURE_REQUIRED_STAGES: frozenset[str] = frozenset({
    Stage.EE_STAGE2_SIGN,
    Stage.CE_STAGE2_SIGN,
})

_JUNIOR_ROLE: dict[str, str] = {
    PositionType.ARCHITECT: OfficerRole.JUNIOR_ARCHITECT,
    PositionType.LICENCE_ENGINEER: OfficerRole.JUNIOR_LICENCE_ENGINEER,
    PositionType.STRUCTURAL_ENGINEER: OfficerRole.JUNIOR_STRUCTURAL_ENGINEER,
    PositionType.SUPERVISOR1: OfficerRole.JUNIOR_SUPERVISOR1,
    PositionType.SUPERVISOR2: OfficerRole.JUNIOR_SUPERVISOR2,
}

_ASSISTANT_ROLES: dict[str, tuple[str, ...]] = {
    PositionType.ARCHITECT: (OfficerRole.ASSISTANT_ARCHITECT,),
    PositionType.LICENCE_ENGINEER: (OfficerRole.ASSISTANT_LICENCE_ENGINEER,),
    PositionType.STRUCTURAL_ENGINEER: (OfficerRole.ASSISTANT_STRUCTURAL_ENGINEER,),
    PositionType.SUPERVISOR1: (OfficerRole.ASSISTANT_SUPERVISOR1, OfficerRole.ASSISTANT_SUPERVISOR2),
    PositionType.SUPERVISOR2: (OfficerRole.ASSISTANT_SUPERVISOR1, OfficerRole.ASSISTANT_SUPERVISOR2),
}

_POSITION_INDEPENDENT_ROLE: dict[str, str] = {
    Stage.EE_REVIEW: OfficerRole.EXECUTIVE_ENGINEER,
    Stage.CE_REVIEW: OfficerRole.CITY_ENGINEER,
    Stage.CLERK_PROCESSING: OfficerRole.CLERK,
    Stage.EE_STAGE2_SIGN: OfficerRole.EXECUTIVE_ENGINEER,
    Stage.CE_STAGE2_SIGN: OfficerRole.CITY_ENGINEER,
}

#: Human-readable description of what is awaited at each stage.
STAGE_ACTIONS: dict[str, str] = {
    Stage.SUBMITTED: "Applicant must submit the application for review.",
    Stage.JE_REVIEW: "Junior Engineer must verify documents, meet the applicant and approve or reject.",
    Stage.AE_REVIEW: "Assistant Engineer review and approval.",
    Stage.EE_REVIEW: "Executive Engineer review and approval.",
    Stage.CE_REVIEW: "City Engineer review and approval.",
    Stage.CLERK_PROCESSING: "Clerk must process the application and prepare the certificate.",
    Stage.EE_STAGE2_SIGN: "Executive Engineer must digitally sign the certificate.",
    Stage.CE_STAGE2_SIGN: "City Engineer must digitally sign the certificate.",
    Stage.COMPLETED: "No action required. The licence has been issued.",
    Stage.REJECTED: "Applicant may resubmit the application.",
}


def required_roles(position_type: str, stage: str) -> tuple[str, ...]:
    """
    Return the officer role codes that must each decide ``stage`` for an
    application of ``position_type``.  Empty for SUBMITTED and terminals.
    """
    if stage == Stage.JE_REVIEW:
        return (_JUNIOR_ROLE[position_type],)
    if stage == Stage.AE_REVIEW:
        return _ASSISTANT_ROLES[position_type]
    role = _POSITION_INDEPENDENT_ROLE.get(stage)
    return (role,) if role else ()


def next_stage(stage: str) -> str:
    """Return the stage that follows ``stage`` on approval."""
    try:
        return NEXT_STAGE[stage]
    except KeyError:
        raise InvalidTransition(
            current=str(stage),
            target="next stage",
            reason="terminal stages have no successor",
        )


def stage_number(stage: str) -> int:
    """1-based position of ``stage`` in the pipeline (0 for Rejected)."""
    try:
        return PIPELINE.index(stage) + 1
    except ValueError:
        return 0


def progress_percentage(stage: str, rejected_at_stage: str = "") -> int:
    """
    Share of the pipeline already passed, 0–100.

    Submitted is 0 and Completed is 100.  A rejected application reports
    the progress it had reached at the stage that rejected it.
    """
    if stage == Stage.REJECTED:
        stage = rejected_at_stage or Stage.SUBMITTED
    index = PIPELINE.index(stage)
    return round(index * 100 / (len(PIPELINE) - 1))

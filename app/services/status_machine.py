"""Claim status state machine."""

from typing import List, Optional

from app.core.constants import ClaimStatus
from app.core.exceptions import InvalidClaimStatusTransition
from app.models.base import StatusChange, utc_now
from app.models.claim import Claim


def allowed_transitions(current: ClaimStatus) -> List[ClaimStatus]:
    return ClaimStatus.valid_transitions()[ClaimStatus(current)]


def can_transition(current: ClaimStatus, new: ClaimStatus) -> bool:
    return ClaimStatus(new) in allowed_transitions(current)


def validate_transition(current: ClaimStatus, new: ClaimStatus):
    """Raise InvalidClaimStatusTransition unless current -> new is an edge."""
    if not can_transition(current, new):
        raise InvalidClaimStatusTransition(ClaimStatus(current).value, ClaimStatus(new).value)


def apply_transition(
    claim: Claim,
    new_status: ClaimStatus,
    actor: str,
    notes: Optional[str] = None
) -> StatusChange:
    """
    Move `claim` to `new_status` in place and append the audit entry.

    Validation happens first, so an illegal transition leaves the claim
    untouched.
    """
    validate_transition(claim.status, new_status)

    entry = StatusChange(
        changed_at=utc_now(),
        from_status=claim.status.value,
        to_status=ClaimStatus(new_status).value,
        actor=actor,
        notes=notes,
    )
    claim.status = ClaimStatus(new_status)
    claim.reviewed_at = entry.changed_at
    claim.status_history.append(entry)
    return entry

"""Pure state transition rules for the completion verification lifecycle.

A completion starts as none_required (adult) or pending (child). Pending
moves once to approved or rejected. Rejected is terminal; re-doing the task
creates a new completion. Undo removes a completion in any state and is not
modelled as a transition.
"""

from fantastic_task.core.errors import ErrorCode, ValidationError
from fantastic_task.domain.completion import VerificationStatus


VALID_TRANSITIONS: dict[VerificationStatus, frozenset[VerificationStatus]] = {
    VerificationStatus.NONE_REQUIRED: frozenset(),
    VerificationStatus.PENDING: frozenset({VerificationStatus.APPROVED, VerificationStatus.REJECTED}),
    VerificationStatus.APPROVED: frozenset(),
    VerificationStatus.REJECTED: frozenset(),
}


def can_transition(current: VerificationStatus, target: VerificationStatus) -> bool:
    return target in VALID_TRANSITIONS[current]


def ensure_transition(*, completion_id: str, current: VerificationStatus, target: VerificationStatus) -> None:
    """Raise if a completion may not move from current to target.

    Raises:
        ValidationError: With ERR_INVALID_STATE_TRANSITION when the move is not allowed
    """
    if not can_transition(current, target):
        msg = f"Cannot move completion {completion_id} from {current} to {target}"
        raise ValidationError(msg, code=ErrorCode.ERR_INVALID_STATE_TRANSITION)

"""Review state machine shared by deposits, withdrawals and task submissions.

pending -> approved and pending -> rejected are the only transitions; both
targets are terminal.
"""

from typing import Optional

from .errors import AlreadyDecidedError
from .models import Outcome, RequestStatus, StatusChange, utcnow

ALLOWED_TRANSITIONS = {
    RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
}


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[RequestStatus(current)]


def opening_history(actor: Optional[str] = None) -> list[dict]:
    return [StatusChange(status=RequestStatus.PENDING, at=utcnow(), actor=actor).model_dump()]


def ensure_pending(record_data: dict, label: str) -> None:
    status = RequestStatus(record_data["status"])
    if status.is_terminal:
        raise AlreadyDecidedError(f"{label} {record_data['id']} is already {status.value}")


def apply_outcome(record_data: dict, outcome: Outcome, label: str, actor: Optional[str] = None) -> RequestStatus:
    """Move a pending record to the outcome's terminal status and append history.

    Raises AlreadyDecidedError without touching the record when it is terminal.
    """
    ensure_pending(record_data, label)
    target = Outcome(outcome).status
    if not can_transition(record_data["status"], target):
        raise AlreadyDecidedError(f"{label} {record_data['id']} cannot move to {target.value}")
    record_data["status"] = target
    record_data["history"] = [
        *record_data["history"],
        StatusChange(status=target, at=utcnow(), actor=actor).model_dump(),
    ]
    return target

"""State machine for Work Item status transitions.

Lifecycle: TODO -> IN_PROGRESS -> DONE, with IN_PROGRESS -> TODO and
DONE -> IN_PROGRESS | TODO (reopen) also allowed. No status is unreachable.

Entering or leaving DONE is the only transition with a side effect: it sets
or clears the work item's completed_at timestamp.
"""
import logging
from datetime import datetime
from typing import Optional

from .exceptions import ValidationError
from .models import WorkItemStatus

logger = logging.getLogger("trackwise-core.work_item_state_machine")


class WorkItemStateTransitionError(ValidationError):
    """Raised when an invalid Work Item state transition is attempted."""

    def __init__(
        self,
        message: str,
        current_status: WorkItemStatus,
        requested_status: WorkItemStatus,
        allowed_transitions: list[WorkItemStatus]
    ):
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed_transitions = allowed_transitions


# Work Item state machine transition matrix
# Maps current status -> list of allowed next statuses
WORK_ITEM_TRANSITION_MATRIX: dict[WorkItemStatus, list[WorkItemStatus]] = {
    WorkItemStatus.TODO: [
        WorkItemStatus.TODO,          # No-op (allowed)
        WorkItemStatus.IN_PROGRESS,   # Forward: work started
        WorkItemStatus.DONE,          # Forward: finished without tracking progress
    ],
    WorkItemStatus.IN_PROGRESS: [
        WorkItemStatus.IN_PROGRESS,   # No-op (allowed)
        WorkItemStatus.TODO,          # Back: blocked, return to backlog
        WorkItemStatus.DONE,          # Forward: finished
    ],
    WorkItemStatus.DONE: [
        WorkItemStatus.DONE,          # No-op (allowed)
        WorkItemStatus.IN_PROGRESS,   # Reopen: more work needed
        WorkItemStatus.TODO,          # Reopen: back to backlog
    ],
}


def is_work_item_transition_valid(current_status: WorkItemStatus, new_status: WorkItemStatus) -> bool:
    """
    Check if a Work Item status transition is valid.

    Args:
        current_status: Current status
        new_status: Requested new status

    Returns:
        True if transition is allowed, False otherwise
    """
    return new_status in WORK_ITEM_TRANSITION_MATRIX.get(current_status, [])


def validate_work_item_transition(current_status: WorkItemStatus, new_status: WorkItemStatus) -> None:
    """
    Validate a Work Item status transition and raise exception if invalid.

    Args:
        current_status: Current status
        new_status: Requested new status

    Raises:
        WorkItemStateTransitionError: If the transition is not allowed
    """
    if current_status == new_status:
        logger.debug(f"No-op Work Item transition: {current_status.value} -> {new_status.value}")
        return

    if not is_work_item_transition_valid(current_status, new_status):
        allowed_transitions = WORK_ITEM_TRANSITION_MATRIX.get(current_status, [])
        allowed_names = [s.value for s in allowed_transitions if s != current_status]
        error_msg = (
            f"Invalid Work Item status transition: {current_status.value} -> {new_status.value}. "
            f"From {current_status.value}, you can only transition to: {', '.join(allowed_names)}."
        )
        logger.warning(f"Blocked Work Item transition: {error_msg}")
        raise WorkItemStateTransitionError(
            message=error_msg,
            current_status=current_status,
            requested_status=new_status,
            allowed_transitions=allowed_transitions,
        )

    logger.debug(f"Valid Work Item transition: {current_status.value} -> {new_status.value}")


def get_allowed_work_item_transitions(current_status: WorkItemStatus) -> list[WorkItemStatus]:
    """Get list of allowed transitions from current status (excluding the no-op)."""
    return [s for s in WORK_ITEM_TRANSITION_MATRIX.get(current_status, []) if s != current_status]


def completed_at_for_transition(
    old_status: Optional[WorkItemStatus],
    new_status: WorkItemStatus,
    current_completed_at: Optional[datetime],
    now: datetime,
) -> Optional[datetime]:
    """
    Compute completed_at after a status change.

    Entering DONE stamps ``now``; leaving DONE clears it; staying in DONE keeps
    the original completion time. ``old_status`` is None for a new work item.
    """
    if new_status == WorkItemStatus.DONE:
        if old_status == WorkItemStatus.DONE and current_completed_at is not None:
            return current_completed_at
        return now
    return None


# Work Item status sort order for list queries
# Lower number = shown first: active work, then backlog, then done
WORK_ITEM_STATUS_SORT_ORDER: dict[WorkItemStatus, int] = {
    WorkItemStatus.IN_PROGRESS: 1,
    WorkItemStatus.TODO: 2,
    WorkItemStatus.DONE: 3,
}

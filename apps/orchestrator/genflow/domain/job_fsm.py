"""Job lifecycle transition rules."""

from genflow.errors import ApiError
from genflow.schemas.job import JobStatus

_TERMINAL_STATES: set[JobStatus] = {
    JobStatus.COMPLETED,
    JobStatus.FAILED,
    JobStatus.NO_CREDITS,
}

_ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.NO_CREDITS, JobStatus.FAILED},
    # processing -> completed is taken inline by the orchestrator or later by the webhook handler.
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
    JobStatus.NO_CREDITS: set(),
}


def is_terminal(status: JobStatus) -> bool:
    return status in _TERMINAL_STATES


def allowed_next_statuses(status: JobStatus) -> list[JobStatus]:
    """Return deterministically ordered allowed successors for a status."""
    return sorted(_ALLOWED_TRANSITIONS.get(status, set()), key=lambda s: s.value)


def ensure_transition(old_status: JobStatus, new_status: JobStatus) -> None:
    """Validate transition according to lifecycle rules."""
    if old_status in _TERMINAL_STATES:
        raise ApiError(
            status_code=409,
            code="FSM_TERMINAL_IMMUTABLE",
            message="Terminal state cannot be mutated",
            details={
                "current_status": old_status,
                "attempted_status": new_status,
                "allowed_next_statuses": [],
            },
        )

    if new_status not in _ALLOWED_TRANSITIONS.get(old_status, set()):
        raise ApiError(
            status_code=409,
            code="FSM_TRANSITION_INVALID",
            message="Invalid status transition",
            details={
                "current_status": old_status,
                "attempted_status": new_status,
                "allowed_next_statuses": allowed_next_statuses(old_status),
            },
        )


def ensure_mutable(status: JobStatus) -> None:
    """Reject field writes on a record that already reached a terminal status."""
    if status in _TERMINAL_STATES:
        raise ApiError(
            status_code=409,
            code="FSM_TERMINAL_IMMUTABLE",
            message="Terminal state cannot be mutated",
            details={"current_status": status, "allowed_next_statuses": []},
        )


def ensure_chargeable(status: JobStatus) -> None:
    """Only a job that is running or finished successfully may be charged."""
    if status in (JobStatus.FAILED, JobStatus.NO_CREDITS):
        raise ApiError(
            status_code=409,
            code="JOB_NOT_CHARGEABLE",
            message="Job cannot be charged in its current state",
            details={"current_status": status},
        )

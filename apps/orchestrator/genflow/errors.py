"""Application exception types."""

from genflow.schemas.error import ErrorResponse


class ApiError(Exception):
    """Structured API error that maps directly to contract error payloads."""

    def __init__(self, status_code: int, code: str, message: str, details: dict | None = None) -> None:
        self.status_code = status_code
        self.payload = ErrorResponse(code=code, message=message, details=details)
        super().__init__(message)


class OrchestrationError(Exception):
    """Base class for failures raised inside an orchestration run.

    ``retryable`` tells the step executor whether the failure may succeed on a
    later attempt. ``code`` is persisted on the job record when the run fails.
    """

    code = "UNHANDLED_STEP_FAILURE"
    retryable = False


class RecordNotFoundError(OrchestrationError):
    code = "RECORD_NOT_FOUND"

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class TransientNetworkError(OrchestrationError):
    code = "TRANSIENT_NETWORK_ERROR"
    retryable = True


class MalformedResponseError(OrchestrationError):
    code = "MALFORMED_RESPONSE"


class BackendRejectedError(OrchestrationError):
    code = "BACKEND_REJECTED"

    def __init__(self, message: str, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(message)


class InvalidJobInputsError(OrchestrationError):
    code = "INVALID_JOB_INPUTS"


class InsufficientCreditsError(OrchestrationError):
    """Raised by the store when a debit would take a balance below zero."""

    code = "INSUFFICIENT_CREDITS"


class StepRetriesExhaustedError(OrchestrationError):
    code = "STEP_RETRIES_EXHAUSTED"

    def __init__(self, step_name: str, attempts: int, last_error: Exception) -> None:
        self.step_name = step_name
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Step {step_name!r} failed after {attempts} attempts: {last_error}")


__all__ = [
    "ApiError",
    "BackendRejectedError",
    "InsufficientCreditsError",
    "InvalidJobInputsError",
    "MalformedResponseError",
    "OrchestrationError",
    "RecordNotFoundError",
    "StepRetriesExhaustedError",
    "TransientNetworkError",
]

"""Event ingress routes."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, status
from pydantic import ValidationError

from genflow.core.logging_safety import safe_log_identifier
from genflow.errors import ApiError
from genflow.routes.dependencies import get_orchestrator, get_request_correlation_id, require_event_key
from genflow.schemas.error import ErrorResponse, ValidationErrorResponse
from genflow.schemas.events import EventAcceptedResponse, event_kind, parse_trigger_event
from genflow.services.orchestrator import Orchestrator

router = APIRouter(prefix="/events", tags=["Events"])
logger = logging.getLogger(__name__)


@router.post(
    "",
    response_model=EventAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={401: {"model": ErrorResponse}, 422: {"model": ValidationErrorResponse}},
)
async def post_event(
    payload: Annotated[dict[str, Any], Body()],
    background_tasks: BackgroundTasks,
    correlation_id: Annotated[str, Depends(get_request_correlation_id)],
    __: Annotated[None, Depends(require_event_key)],
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
) -> EventAcceptedResponse:
    try:
        event = parse_trigger_event(payload)
    except ValidationError as exc:
        logger.warning(
            "events.rejected correlation_id=%s code=VALIDATION_ERROR errors=%s",
            safe_log_identifier(correlation_id, prefix="cid"),
            exc.error_count(),
        )
        raise ApiError(
            status_code=422,
            code="VALIDATION_ERROR",
            message="Invalid event payload",
            details={"fields": sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})},
        ) from exc

    background_tasks.add_task(orchestrator.handle_event, event)
    logger.info(
        "events.accepted correlation_id=%s job_id=%s event=%s",
        safe_log_identifier(correlation_id, prefix="cid"),
        safe_log_identifier(event.data.job_id, prefix="jid"),
        event.name,
    )
    return EventAcceptedResponse(job_id=event.data.job_id, name=event_kind(event))

"""External job completion webhook routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from genflow.routes.dependencies import get_webhook_service, require_webhook_token
from genflow.schemas.error import ErrorResponse, FsmTransitionError, NoLeakNotFoundError
from genflow.schemas.webhook import ExternalJobWebhookRequest, ExternalJobWebhookResponse
from genflow.services.webhooks import WebhookService

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post(
    "/sieve",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        200: {"model": ExternalJobWebhookResponse},
        401: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
        409: {"model": FsmTransitionError},
        204: {"description": "Job updated"},
    },
)
async def post_sieve_webhook(
    payload: ExternalJobWebhookRequest,
    __: Annotated[None, Depends(require_webhook_token)],
    webhook_service: Annotated[WebhookService, Depends(get_webhook_service)],
) -> Response:
    result = webhook_service.process_completion(payload)
    if result.replayed:
        replay_payload = ExternalJobWebhookResponse(
            job_id=result.job_id,
            external_job_id=payload.body.external_job_id,
            replayed=True,
            current_status=result.current_status,
        )
        return JSONResponse(status_code=status.HTTP_200_OK, content=replay_payload.model_dump(mode="json"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)

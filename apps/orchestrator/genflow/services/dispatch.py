"""External job dispatch."""

from __future__ import annotations

import logging

from genflow.adapters.backends import InferenceClient, require_string_field
from genflow.core.logging_safety import redact_url
from genflow.schemas.dispatch import DispatchRequest, DispatchResult
from genflow.schemas.job import DispatchMode

logger = logging.getLogger(__name__)


class ExternalJobDispatcher:
    """Submits one unit of work and interprets the response by dispatch mode."""

    def __init__(self, client: InferenceClient) -> None:
        self._client = client

    async def dispatch(self, request: DispatchRequest) -> DispatchResult:
        payload = await self._client.post_json(request.url, headers=request.headers, body=request.body)
        value = require_string_field(payload, request.result_field, source=request.backend)

        if request.mode is DispatchMode.INLINE:
            result = DispatchResult(mode=request.mode, backend=request.backend, result_artifact_key=value)
        else:
            result = DispatchResult(mode=request.mode, backend=request.backend, external_job_id=value)

        logger.info(
            "dispatch.accepted backend=%s mode=%s url=%s",
            request.backend,
            request.mode.value,
            redact_url(request.url),
        )
        return result

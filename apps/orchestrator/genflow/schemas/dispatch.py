"""External dispatch request/result schemas."""

from typing import Any

from pydantic import BaseModel, Field

from genflow.schemas.job import DispatchMode


class DispatchRequest(BaseModel):
    """One POST to an inference backend.

    ``result_field`` names the response key holding the artifact key (inline)
    or the external job id (deferred). Headers carry credentials and are never
    logged or checkpointed.
    """

    mode: DispatchMode
    url: str
    headers: dict[str, str] = Field(default_factory=dict, repr=False)
    body: dict[str, Any]
    result_field: str
    backend: str


class DispatchResult(BaseModel):
    mode: DispatchMode
    backend: str
    external_job_id: str | None = None
    result_artifact_key: str | None = None

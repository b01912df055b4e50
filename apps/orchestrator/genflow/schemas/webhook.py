"""External job completion webhook schemas."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from genflow.schemas.job import JobStatus


class ExternalJobOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: str | None = None
    url: str | None = None


class ExternalJobBody(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    external_job_id: str = Field(alias="id", min_length=1)
    status: Literal["finished", "error", "cancelled"]
    outputs: list[ExternalJobOutput] | None = None
    error: str | None = None


class ExternalJobWebhookRequest(BaseModel):
    type: Literal["job.complete"]
    body: ExternalJobBody


class ExternalJobWebhookResponse(BaseModel):
    job_id: str
    external_job_id: str
    replayed: bool
    current_status: JobStatus

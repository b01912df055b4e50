"""External job completion webhook service layer."""

from dataclasses import dataclass
import logging

from genflow.core.logging_safety import safe_log_identifier
from genflow.domain.job_fsm import ensure_transition, is_terminal
from genflow.errors import ApiError
from genflow.repositories.memory import InMemoryStore, JobRecord
from genflow.schemas.job import JobStatus
from genflow.schemas.webhook import ExternalJobBody, ExternalJobWebhookRequest

logger = logging.getLogger(__name__)

_FAILURE_CODES = {
    "error": "EXTERNAL_JOB_FAILED",
    "cancelled": "EXTERNAL_JOB_CANCELLED",
}
_MISSING_OUTPUT_CODE = "EXTERNAL_JOB_OUTPUT_MISSING"


@dataclass(slots=True)
class WebhookProcessResult:
    job_id: str
    replayed: bool
    current_status: JobStatus


class WebhookService:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def process_completion(self, payload: ExternalJobWebhookRequest) -> WebhookProcessResult:
        body = payload.body
        safe_external_id = safe_log_identifier(body.external_job_id, prefix="xid")

        job = self._store.get_job_by_external_id(body.external_job_id)
        if job is None:
            logger.warning(
                "webhook.rejected external_job_id=%s code=RESOURCE_NOT_FOUND",
                safe_external_id,
            )
            raise ApiError(status_code=404, code="RESOURCE_NOT_FOUND", message="Resource not found")

        safe_job_id = safe_log_identifier(job.id, prefix="jid")
        output_key = self._output_key(body)
        target_status = JobStatus.COMPLETED if body.status == "finished" and output_key else JobStatus.FAILED

        if is_terminal(job.status):
            if job.status is target_status:
                logger.info(
                    "webhook.replayed job_id=%s external_job_id=%s current_status=%s",
                    safe_job_id,
                    safe_external_id,
                    job.status,
                )
                return WebhookProcessResult(job_id=job.id, replayed=True, current_status=job.status)
            logger.warning(
                "webhook.rejected job_id=%s external_job_id=%s code=FSM_TERMINAL_IMMUTABLE current_status=%s "
                "attempted_status=%s",
                safe_job_id,
                safe_external_id,
                job.status,
                target_status,
            )
            ensure_transition(job.status, target_status)

        previous_status = job.status
        self._apply(job=job, body=body, output_key=output_key, target_status=target_status)
        logger.info(
            "webhook.applied job_id=%s external_job_id=%s prev_status=%s new_status=%s",
            safe_job_id,
            safe_external_id,
            previous_status,
            job.status,
        )
        return WebhookProcessResult(job_id=job.id, replayed=False, current_status=job.status)

    def _apply(
        self,
        *,
        job: JobRecord,
        body: ExternalJobBody,
        output_key: str | None,
        target_status: JobStatus,
    ) -> None:
        if target_status is JobStatus.COMPLETED and output_key is not None:
            self._store.complete_job(job=job, output_artifact_key=output_key)
            return

        if body.status == "finished":
            failure_code = _MISSING_OUTPUT_CODE
            failure_message = "External job finished without an output artifact"
        else:
            failure_code = _FAILURE_CODES[body.status]
            failure_message = body.error or f"External job {body.status}"
        self._store.fail_job(
            job=job,
            failure_code=failure_code,
            failure_message=failure_message,
            failed_step="external-job",
        )

    @staticmethod
    def _output_key(body: ExternalJobBody) -> str | None:
        for output in body.outputs or []:
            candidate = output.key or output.url
            if candidate:
                return candidate
        return None

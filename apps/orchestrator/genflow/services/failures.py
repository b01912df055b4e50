"""Failure handling for orchestration runs."""

from __future__ import annotations

import logging

from genflow.core.logging_safety import safe_log_identifier
from genflow.domain.job_fsm import is_terminal
from genflow.errors import OrchestrationError
from genflow.repositories.memory import InMemoryStore

logger = logging.getLogger(__name__)

_FAILURE_MESSAGE_LIMIT = 512


def failure_code_for(error: Exception) -> str:
    if isinstance(error, OrchestrationError):
        return error.code
    code = getattr(getattr(error, "payload", None), "code", None)
    if isinstance(code, str):
        return code
    return OrchestrationError.code


def _truncate(message: str, limit: int = _FAILURE_MESSAGE_LIMIT) -> str:
    text = message.strip()
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def mark_job_failed(
    store: InMemoryStore,
    *,
    job_id: str,
    error: Exception,
    failed_step: str | None,
) -> bool:
    """Force the job into ``failed``. Returns whether the record was changed.

    Partial side effects (credit debits, dispatched external jobs) are left in
    place. A record that already reached a terminal status is left untouched.
    """
    safe_job_id = safe_log_identifier(job_id, prefix="jid")
    code = failure_code_for(error)
    job = store.get_job(job_id)
    if job is None:
        logger.error("failure.unrecorded job_id=%s code=%s reason=record_missing", safe_job_id, code)
        return False

    if is_terminal(job.status):
        logger.warning(
            "failure.skipped job_id=%s code=%s current_status=%s reason=already_terminal",
            safe_job_id,
            code,
            job.status,
        )
        return False

    store.fail_job(
        job=job,
        failure_code=code,
        failure_message=_truncate(str(error) or type(error).__name__),
        failed_step=failed_step,
    )
    logger.error(
        "failure.recorded job_id=%s code=%s failed_step=%s external_job_id_set=%s",
        safe_job_id,
        code,
        failed_step,
        job.external_job_id is not None,
    )
    return True

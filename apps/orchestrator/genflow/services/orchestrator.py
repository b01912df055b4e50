"""Credit-gated orchestration of media generation jobs."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any

from pydantic import BaseModel

from genflow.core.config import Settings
from genflow.core.logging_safety import safe_log_identifier
from genflow.domain.credit_gate import CreditDecision, evaluate_credit_gate
from genflow.domain.job_fsm import is_terminal
from genflow.domain.job_types import DRIVING_AUDIO_KEY, JobTypeDescriptor, descriptor_for
from genflow.errors import RecordNotFoundError
from genflow.repositories.memory import InMemoryStore, JobRecord
from genflow.schemas.dispatch import DispatchRequest, DispatchResult
from genflow.schemas.events import TriggerEvent, event_kind
from genflow.schemas.job import DispatchMode, JobKind, JobStatus
from genflow.services.dispatch import ExternalJobDispatcher
from genflow.services.failures import failure_code_for, mark_job_failed
from genflow.services.inputs import InputResolver
from genflow.services.steps import DurableStepExecutor, StepRun

logger = logging.getLogger(__name__)


class RunOutcome(str, Enum):
    COMPLETED = "completed"
    AWAITING_WEBHOOK = "awaiting_webhook"
    NO_CREDITS = "no_credits"
    FAILED = "failed"


_OUTCOME_BY_TERMINAL_STATUS: dict[JobStatus, RunOutcome] = {
    JobStatus.COMPLETED: RunOutcome.COMPLETED,
    JobStatus.FAILED: RunOutcome.FAILED,
    JobStatus.NO_CREDITS: RunOutcome.NO_CREDITS,
}


@dataclass(slots=True)
class RunResult:
    job_id: str
    outcome: RunOutcome
    status: JobStatus | None
    error_code: str | None = None
    failed_step: str | None = None


class JobSnapshot(BaseModel):
    """Job and owner state captured by the memoized ``load-job`` step.

    Replays gate on this snapshot, so a balance already reduced by this run's
    own debit cannot flip the decision to ``no credits``.
    """

    job_id: str
    kind: JobKind
    owner_id: str
    status: JobStatus
    credits: int
    inputs: dict[str, Any]


class Orchestrator:
    def __init__(
        self,
        *,
        store: InMemoryStore,
        settings: Settings,
        resolver: InputResolver,
        dispatcher: ExternalJobDispatcher,
        executor: DurableStepExecutor,
    ) -> None:
        self._store = store
        self._settings = settings
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._executor = executor

    async def handle_event(self, event: TriggerEvent) -> RunResult:
        """Run one event to completion; never raises for step failures."""
        job_id = event.data.job_id
        safe_job_id = safe_log_identifier(job_id, prefix="jid")
        safe_owner_id = safe_log_identifier(event.data.user_id, prefix="uid")

        async with self._executor.limiter.slot(event.data.user_id):
            steps = self._executor.execution(job_id)
            logger.info("run.started job_id=%s owner_id=%s event=%s", safe_job_id, safe_owner_id, event.name)
            try:
                result = await self._run(event, steps)
            except RecordNotFoundError as exc:
                if exc.entity != "job":
                    return self._fail(job_id, exc, steps.current_step)
                logger.error(
                    "run.aborted job_id=%s code=%s entity=%s step=%s",
                    safe_job_id,
                    exc.code,
                    exc.entity,
                    steps.current_step,
                )
                return RunResult(
                    job_id=job_id,
                    outcome=RunOutcome.FAILED,
                    status=None,
                    error_code=exc.code,
                    failed_step=steps.current_step,
                )
            except Exception as exc:
                return self._fail(job_id, exc, steps.current_step)

        logger.info(
            "run.finished job_id=%s outcome=%s status=%s executed=%s memoized=%s",
            safe_job_id,
            result.outcome.value,
            result.status,
            len(steps.executed),
            len(steps.memoized),
        )
        return result

    async def _run(self, event: TriggerEvent, steps: StepRun) -> RunResult:
        job_id = event.data.job_id
        descriptor = descriptor_for(event_kind(event))

        async def load_job() -> dict[str, Any]:
            return self._load_snapshot(job_id, descriptor.kind, event.data.user_id).model_dump(mode="json")

        snapshot = JobSnapshot.model_validate(await steps.run("load-job", load_job))
        if snapshot.owner_id != event.data.user_id:
            raise RecordNotFoundError("job", job_id)

        # The live record decides, not the snapshot: a run that already failed or
        # was rejected must not dispatch or debit again on redelivery.
        live_status = self._require_job(job_id).status
        if is_terminal(live_status) and not self._resumable(job_id, live_status):
            logger.info(
                "run.skipped job_id=%s status=%s reason=already_terminal",
                safe_log_identifier(job_id, prefix="jid"),
                live_status,
            )
            return RunResult(job_id=job_id, outcome=_OUTCOME_BY_TERMINAL_STATUS[live_status], status=live_status)

        if evaluate_credit_gate(snapshot) is CreditDecision.REJECT:
            await steps.run("set-status-no-credits", lambda: self._mark_no_credits(job_id))
            return self._result(job_id, RunOutcome.NO_CREDITS)

        inputs = descriptor.parse_inputs(snapshot.inputs)
        mode = descriptor.select_mode(inputs)

        await steps.run("set-status-processing", lambda: self._mark_processing(job_id))

        derived = await self._resolve_derived_inputs(job_id, descriptor, inputs, steps)

        presign_keys = descriptor.presign_keys(inputs, derived, mode)
        urls: dict[str, str] = {}
        if presign_keys:
            urls = await steps.run("create-presigned-urls", lambda: self._resolver.presign_all(presign_keys))

        request = descriptor.build_request(inputs, derived, urls, mode, self._settings)
        dispatch = DispatchResult.model_validate(
            await steps.run("dispatch-external-job", lambda: self._dispatch(request))
        )

        if dispatch.mode is DispatchMode.DEFERRED:
            await steps.run(
                "persist-external-job-id",
                lambda: self._persist_external_job_id(job_id, dispatch.external_job_id or ""),
            )
            outcome = RunOutcome.AWAITING_WEBHOOK
        else:
            await steps.run(
                "persist-inline-result",
                lambda: self._persist_inline_result(job_id, dispatch.result_artifact_key or ""),
            )
            outcome = RunOutcome.COMPLETED

        await steps.run("deduct-credits", lambda: self._deduct_credit(snapshot.owner_id, job_id))
        return self._result(job_id, outcome)

    def _load_snapshot(self, job_id: str, kind: JobKind, owner_id: str) -> JobSnapshot:
        job = self._store.get_job(job_id)
        # Each workflow only sees its own kind of record, and only for the owner named by the event.
        if job is None or job.kind is not kind or job.owner_id != owner_id:
            raise RecordNotFoundError("job", job_id)
        owner = self._store.get_user(job.owner_id)
        if owner is None:
            raise RecordNotFoundError("user", job.owner_id)
        return JobSnapshot(
            job_id=job.id,
            kind=job.kind,
            owner_id=owner.id,
            status=job.status,
            credits=owner.credits,
            inputs=dict(job.inputs),
        )

    async def _resolve_derived_inputs(
        self,
        job_id: str,
        descriptor: JobTypeDescriptor,
        inputs: Any,
        steps: StepRun,
    ) -> dict[str, str]:
        derived = dict(self._require_job(job_id).derived_inputs)
        if not descriptor.needs_driving_audio:
            return derived

        # The persisted field decides, not the step memo: a key stored by an
        # interrupted attempt must not trigger a second synthesis.
        if self._resolver.persisted_driving_audio(job_id) is None:
            derived[DRIVING_AUDIO_KEY] = await steps.run(
                "synthesize-driving-audio",
                lambda: self._resolver.ensure_driving_audio(job_id=job_id, inputs=inputs),
            )
        return derived

    async def _mark_no_credits(self, job_id: str) -> str:
        job = self._require_job(job_id)
        if job.status is not JobStatus.NO_CREDITS:
            self._store.transition_job_status(job=job, new_status=JobStatus.NO_CREDITS)
        return job.status.value

    async def _mark_processing(self, job_id: str) -> str:
        job = self._require_job(job_id)
        if job.status is not JobStatus.PROCESSING:
            self._store.transition_job_status(job=job, new_status=JobStatus.PROCESSING)
        return job.status.value

    async def _dispatch(self, request: DispatchRequest) -> dict[str, Any]:
        result = await self._dispatcher.dispatch(request)
        return result.model_dump(mode="json")

    async def _persist_external_job_id(self, job_id: str, external_job_id: str) -> str:
        job = self._require_job(job_id)
        return self._store.set_external_job_id(job=job, external_job_id=external_job_id)

    async def _persist_inline_result(self, job_id: str, artifact_key: str) -> str:
        job = self._require_job(job_id)
        if job.status is JobStatus.COMPLETED and job.output_artifact_key == artifact_key:
            return artifact_key
        self._store.complete_job(job=job, output_artifact_key=artifact_key)
        return artifact_key

    async def _deduct_credit(self, user_id: str, job_id: str) -> int:
        debit = self._store.debit_credit(user_id=user_id, job_id=job_id)
        logger.info(
            "credits.debited job_id=%s owner_id=%s balance_after=%s",
            safe_log_identifier(job_id, prefix="jid"),
            safe_log_identifier(user_id, prefix="uid"),
            debit.balance_after,
        )
        return debit.balance_after

    def _resumable(self, job_id: str, status: JobStatus) -> bool:
        # An inline result completes the job before the debit step runs.
        if status is not JobStatus.COMPLETED:
            return False
        return self._store.get_step_checkpoint(job_id, "dispatch-external-job") is not None

    def _fail(self, job_id: str, error: Exception, failed_step: str | None) -> RunResult:
        mark_job_failed(self._store, job_id=job_id, error=error, failed_step=failed_step)
        job = self._store.get_job(job_id)
        return RunResult(
            job_id=job_id,
            outcome=RunOutcome.FAILED,
            status=job.status if job is not None else None,
            error_code=failure_code_for(error),
            failed_step=failed_step,
        )

    def _require_job(self, job_id: str) -> JobRecord:
        job = self._store.get_job(job_id)
        if job is None:
            raise RecordNotFoundError("job", job_id)
        return job

    def _result(self, job_id: str, outcome: RunOutcome) -> RunResult:
        job = self._store.get_job(job_id)
        return RunResult(job_id=job_id, outcome=outcome, status=job.status if job is not None else None)

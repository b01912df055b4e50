"""In-memory repositories used by the service scaffold and tests."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from genflow.domain.job_fsm import ensure_chargeable, ensure_mutable, ensure_transition
from genflow.errors import InsufficientCreditsError
from genflow.schemas.job import JobKind, JobStatus


@dataclass(slots=True)
class UserRecord:
    id: str
    credits: int
    created_at: datetime


@dataclass(slots=True)
class JobRecord:
    id: str
    kind: JobKind
    owner_id: str
    status: JobStatus
    inputs: dict[str, Any]
    created_at: datetime
    updated_at: datetime | None = None
    derived_inputs: dict[str, str] = field(default_factory=dict)
    external_job_id: str | None = None
    output_artifact_key: str | None = None
    failure_code: str | None = None
    failure_message: str | None = None
    failed_step: str | None = None


@dataclass(slots=True)
class StepCheckpoint:
    job_id: str
    step_name: str
    result: Any
    recorded_at: datetime


@dataclass(slots=True)
class CreditDebitRecord:
    user_id: str
    job_id: str
    balance_after: int
    recorded_at: datetime


@dataclass(slots=True)
class InMemoryStore:
    """Simple, deterministic persistence layer for scaffolding and tests.

    Every mutating method is synchronous and completes without awaiting, so
    under a single event loop each call is atomic with respect to other runs.
    """

    users: dict[str, UserRecord] = field(default_factory=dict)
    jobs: dict[str, JobRecord] = field(default_factory=dict)
    step_checkpoints: dict[tuple[str, str], StepCheckpoint] = field(default_factory=dict)
    credit_debits: dict[tuple[str, str], CreditDebitRecord] = field(default_factory=dict)
    job_write_count: int = 0
    user_write_count: int = 0
    checkpoint_write_count: int = 0

    def create_user(self, credits: int, user_id: str | None = None) -> UserRecord:
        if credits < 0:
            raise ValueError("credits must be non-negative")
        user = UserRecord(id=user_id or str(uuid4()), credits=credits, created_at=datetime.now(UTC))
        self.users[user.id] = user
        self.user_write_count += 1
        return user

    def get_user(self, user_id: str) -> UserRecord | None:
        return self.users.get(user_id)

    def create_job(
        self,
        *,
        kind: JobKind,
        owner_id: str,
        inputs: dict[str, Any],
        derived_inputs: dict[str, str] | None = None,
    ) -> JobRecord:
        now = datetime.now(UTC)
        job = JobRecord(
            id=str(uuid4()),
            kind=kind,
            owner_id=owner_id,
            status=JobStatus.PENDING,
            inputs=dict(inputs),
            created_at=now,
            updated_at=now,
            derived_inputs=dict(derived_inputs or {}),
        )
        self.jobs[job.id] = job
        self.job_write_count += 1
        return job

    def get_job(self, job_id: str) -> JobRecord | None:
        return self.jobs.get(job_id)

    def get_job_by_external_id(self, external_job_id: str) -> JobRecord | None:
        for job in self.jobs.values():
            if job.external_job_id == external_job_id:
                return job
        return None

    def transition_job_status(self, *, job: JobRecord, new_status: JobStatus) -> None:
        """Apply an FSM-validated status mutation with consistent write bookkeeping."""
        ensure_transition(job.status, new_status)
        job.status = new_status
        self._touch(job)

    def set_derived_input(self, *, job: JobRecord, name: str, value: str) -> str:
        """Write-once: the first persisted value wins and is returned."""
        existing = job.derived_inputs.get(name)
        if existing is not None:
            return existing
        job.derived_inputs[name] = value
        self._touch(job)
        return value

    def set_external_job_id(self, *, job: JobRecord, external_job_id: str) -> str:
        """Write-once: a replayed persist never replaces the first external id."""
        if job.external_job_id is not None:
            return job.external_job_id
        ensure_mutable(job.status)
        job.external_job_id = external_job_id
        self._touch(job)
        return external_job_id

    def complete_job(self, *, job: JobRecord, output_artifact_key: str) -> None:
        ensure_transition(job.status, JobStatus.COMPLETED)
        job.status = JobStatus.COMPLETED
        job.output_artifact_key = output_artifact_key
        self._touch(job)

    def fail_job(self, *, job: JobRecord, failure_code: str, failure_message: str, failed_step: str | None) -> None:
        ensure_transition(job.status, JobStatus.FAILED)
        job.status = JobStatus.FAILED
        job.failure_code = failure_code
        job.failure_message = failure_message
        job.failed_step = failed_step
        self._touch(job)

    def debit_credit(self, *, user_id: str, job_id: str) -> CreditDebitRecord:
        """Atomically take one credit for ``job_id``; repeated calls for the same job are no-ops."""
        debit_key = (user_id, job_id)
        existing = self.credit_debits.get(debit_key)
        if existing is not None:
            return existing

        job = self.jobs.get(job_id)
        if job is not None:
            ensure_chargeable(job.status)
        user = self.users.get(user_id)
        if user is None:
            raise InsufficientCreditsError(f"User {user_id} has no credit balance")
        if user.credits <= 0:
            raise InsufficientCreditsError("Credit balance exhausted before debit")

        user.credits -= 1
        self.user_write_count += 1
        debit = CreditDebitRecord(
            user_id=user_id,
            job_id=job_id,
            balance_after=user.credits,
            recorded_at=datetime.now(UTC),
        )
        self.credit_debits[debit_key] = debit
        return debit

    def get_step_checkpoint(self, job_id: str, step_name: str) -> StepCheckpoint | None:
        return self.step_checkpoints.get((job_id, step_name))

    def save_step_checkpoint(self, *, job_id: str, step_name: str, result: Any) -> StepCheckpoint:
        checkpoint = StepCheckpoint(
            job_id=job_id,
            step_name=step_name,
            result=copy.deepcopy(result),
            recorded_at=datetime.now(UTC),
        )
        self.step_checkpoints[(job_id, step_name)] = checkpoint
        self.checkpoint_write_count += 1
        return checkpoint

    def list_step_checkpoints(self, job_id: str) -> list[StepCheckpoint]:
        # Insertion order is execution order.
        return [record for (owner_job_id, _), record in self.step_checkpoints.items() if owner_job_id == job_id]

    def _touch(self, job: JobRecord) -> None:
        job.updated_at = datetime.now(UTC)
        self.job_write_count += 1

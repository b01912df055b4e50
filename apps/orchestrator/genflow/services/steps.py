"""Durable step execution.

A run is a sequence of named steps. Each completed step's result is
checkpointed in the store under ``(job_id, step_name)``; when the run is
replayed after a crash or redelivery, checkpointed steps return their recorded
result instead of executing again. Transient failures inside a step are
retried with bounded exponential backoff before the run gives up.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import random
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, TypeVar

from genflow.core.config import Settings
from genflow.core.logging_safety import safe_log_identifier
from genflow.errors import OrchestrationError, StepRetriesExhaustedError
from genflow.repositories.memory import InMemoryStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MAX_BACKOFF_EXPONENT = 6


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 4
    base_seconds: float = 0.5
    max_seconds: float = 30.0
    jitter_pct: float = 0.2

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_attempts=settings.step_max_attempts,
            base_seconds=settings.step_backoff_base_seconds,
            max_seconds=settings.step_backoff_max_seconds,
            jitter_pct=settings.step_backoff_jitter_pct,
        )


def calculate_backoff_seconds(attempt: int, policy: RetryPolicy, rng: random.Random) -> float:
    """Return the delay before retry number ``attempt`` (0-based) applying jitter."""
    bounded_attempt = max(0, min(attempt, _MAX_BACKOFF_EXPONENT))
    delay = min(policy.base_seconds * (2**bounded_attempt), policy.max_seconds)
    jitter_pct = max(0.0, policy.jitter_pct)
    jitter_factor = rng.uniform(1 - jitter_pct, 1 + jitter_pct) if jitter_pct else 1.0
    return max(0.0, delay * jitter_factor)


class OwnerConcurrencyLimiter:
    """Caps concurrently active runs per owner key; excess runs wait in FIFO order."""

    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._limit = limit
        self._semaphores: dict[str, asyncio.Semaphore] = {}
        self._holders: dict[str, int] = {}
        self._active: dict[str, int] = {}

    @property
    def limit(self) -> int:
        return self._limit

    def active(self, owner_key: str) -> int:
        return self._active.get(owner_key, 0)

    @asynccontextmanager
    async def slot(self, owner_key: str) -> AsyncIterator[None]:
        semaphore = self._semaphores.get(owner_key)
        if semaphore is None:
            semaphore = asyncio.Semaphore(self._limit)
            self._semaphores[owner_key] = semaphore
        # Holders count waiters too, so the semaphore is only dropped once nobody references it.
        self._holders[owner_key] = self._holders.get(owner_key, 0) + 1
        try:
            async with semaphore:
                self._active[owner_key] = self._active.get(owner_key, 0) + 1
                try:
                    yield
                finally:
                    self._active[owner_key] -= 1
                    if not self._active[owner_key]:
                        del self._active[owner_key]
        finally:
            self._holders[owner_key] -= 1
            if not self._holders[owner_key]:
                del self._holders[owner_key]
                del self._semaphores[owner_key]


@dataclass(slots=True)
class StepRun:
    """Step runner bound to one execution identity."""

    job_id: str
    store: InMemoryStore
    retry_policy: RetryPolicy
    sleep: Callable[[float], Awaitable[Any]]
    rng: random.Random
    executed: list[str] = field(default_factory=list)
    memoized: list[str] = field(default_factory=list)
    # Left set when a step raises, so the failure boundary can report it.
    current_step: str | None = None
    _seen: set[str] = field(default_factory=set)

    async def run(self, name: str, thunk: Callable[[], Awaitable[T]]) -> T:
        if name in self._seen:
            raise ValueError(f"Step name {name!r} already used in this execution")
        self._seen.add(name)
        self.current_step = name

        safe_job_id = safe_log_identifier(self.job_id, prefix="jid")
        checkpoint = self.store.get_step_checkpoint(self.job_id, name)
        if checkpoint is not None:
            self.memoized.append(name)
            self.current_step = None
            logger.info("step.memoized job_id=%s step=%s", safe_job_id, name)
            return copy.deepcopy(checkpoint.result)

        attempt = 0
        while True:
            attempt += 1
            try:
                result = await thunk()
            except OrchestrationError as exc:
                if not exc.retryable:
                    raise
                if attempt >= self.retry_policy.max_attempts:
                    logger.warning(
                        "step.retries_exhausted job_id=%s step=%s attempts=%s code=%s",
                        safe_job_id,
                        name,
                        attempt,
                        exc.code,
                    )
                    raise StepRetriesExhaustedError(name, attempt, exc) from exc
                delay = calculate_backoff_seconds(attempt - 1, self.retry_policy, self.rng)
                logger.info(
                    "step.retry_scheduled job_id=%s step=%s attempt=%s delay_seconds=%.3f code=%s",
                    safe_job_id,
                    name,
                    attempt,
                    delay,
                    exc.code,
                )
                await self.sleep(delay)
                continue
            break

        self.store.save_step_checkpoint(job_id=self.job_id, step_name=name, result=result)
        self.executed.append(name)
        self.current_step = None
        logger.info("step.completed job_id=%s step=%s attempts=%s", safe_job_id, name, attempt)
        return result


class DurableStepExecutor:
    """Creates step runs and enforces the per-owner concurrency ceiling."""

    def __init__(
        self,
        store: InMemoryStore,
        *,
        retry_policy: RetryPolicy | None = None,
        concurrency_limit: int = 5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.limiter = OwnerConcurrencyLimiter(concurrency_limit)

    @classmethod
    def from_settings(cls, store: InMemoryStore, settings: Settings, **kwargs: Any) -> DurableStepExecutor:
        return cls(
            store,
            retry_policy=RetryPolicy.from_settings(settings),
            concurrency_limit=settings.owner_concurrency_limit,
            **kwargs,
        )

    def execution(self, job_id: str) -> StepRun:
        return StepRun(
            job_id=job_id,
            store=self._store,
            retry_policy=self._retry_policy,
            sleep=self._sleep,
            rng=self._rng,
        )

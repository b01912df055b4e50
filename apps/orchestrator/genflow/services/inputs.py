"""Input resolution for external dispatch."""

from __future__ import annotations

import logging

from genflow.adapters.backends import TextToSpeechBackend
from genflow.adapters.storage import ObjectPresigner
from genflow.core.logging_safety import safe_log_identifier
from genflow.domain.job_types import DRIVING_AUDIO_KEY
from genflow.errors import RecordNotFoundError
from genflow.repositories.memory import InMemoryStore
from genflow.schemas.job import PhotoToVideoInputs

logger = logging.getLogger(__name__)


class InputResolver:
    def __init__(
        self,
        *,
        store: InMemoryStore,
        presigner: ObjectPresigner,
        tts: TextToSpeechBackend,
        presign_expires_seconds: int,
    ) -> None:
        self._store = store
        self._presigner = presigner
        self._tts = tts
        self._expires = presign_expires_seconds

    async def presign(self, key: str) -> str:
        return await self._presigner.presign(key, expires_in=self._expires)

    async def presign_all(self, keys: dict[str, str]) -> dict[str, str]:
        """Presign each named key, preserving names. Order follows ``keys``."""
        return {name: await self.presign(key) for name, key in keys.items()}

    def persisted_driving_audio(self, job_id: str) -> str | None:
        job = self._store.get_job(job_id)
        if job is None:
            raise RecordNotFoundError("job", job_id)
        return job.derived_inputs.get(DRIVING_AUDIO_KEY)

    async def ensure_driving_audio(self, *, job_id: str, inputs: PhotoToVideoInputs) -> str:
        """Return the persisted driving audio key, synthesizing it only when absent.

        The persisted record is the source of truth: if a previous attempt
        already stored a key, the text-to-speech backend is not called again.
        """
        existing = self.persisted_driving_audio(job_id)
        safe_job_id = safe_log_identifier(job_id, prefix="jid")
        if existing is not None:
            logger.info("inputs.derive_skipped job_id=%s input=%s", safe_job_id, DRIVING_AUDIO_KEY)
            return existing

        audio_key = await self._tts.synthesize(text=inputs.script, voice_key=inputs.voice_key)
        job = self._store.get_job(job_id)
        if job is None:
            raise RecordNotFoundError("job", job_id)
        persisted = self._store.set_derived_input(job=job, name=DRIVING_AUDIO_KEY, value=audio_key)
        logger.info("inputs.derived job_id=%s input=%s", safe_job_id, DRIVING_AUDIO_KEY)
        return persisted

"""External job completion webhook tests."""

from __future__ import annotations

import os
import unittest

from fastapi.testclient import TestClient

from genflow.core.config import get_settings
from genflow.errors import ApiError
from genflow.main import create_app
from genflow.repositories.memory import InMemoryStore, JobRecord
from genflow.schemas.job import JobKind, JobStatus
from genflow.schemas.webhook import ExternalJobWebhookRequest
from genflow.services.webhooks import WebhookService

_WEBHOOK_PATH = "/api/v1/webhooks/sieve"


def _processing_job(store: InMemoryStore, external_job_id: str = "ext-77") -> JobRecord:
    owner = store.create_user(credits=1)
    job = store.create_job(
        kind=JobKind.CHANGE_VIDEO_AUDIO,
        owner_id=owner.id,
        inputs={"source_video_key": "videos/v.mp4", "new_audio_key": "audio/a.wav"},
    )
    store.transition_job_status(job=job, new_status=JobStatus.PROCESSING)
    store.set_external_job_id(job=job, external_job_id=external_job_id)
    return job


def _payload(status: str = "finished", *, external_job_id: str = "ext-77", outputs=None, error=None) -> dict:
    body: dict = {"id": external_job_id, "status": status}
    if outputs is not None:
        body["outputs"] = outputs
    if error is not None:
        body["error"] = error
    return {"type": "job.complete", "body": body}


class WebhookServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()
        self.service = WebhookService(self.store)

    def _process(self, payload: dict):
        return self.service.process_completion(ExternalJobWebhookRequest.model_validate(payload))

    def test_finished_job_completes_with_first_output(self) -> None:
        job = _processing_job(self.store)

        result = self._process(_payload(outputs=[{"key": "out/v.mp4"}, {"key": "out/other.mp4"}]))

        self.assertFalse(result.replayed)
        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertEqual(job.output_artifact_key, "out/v.mp4")

    def test_output_url_is_used_when_key_is_absent(self) -> None:
        job = _processing_job(self.store)

        self._process(_payload(outputs=[{"url": "https://cdn.test/out.mp4"}]))

        self.assertEqual(job.output_artifact_key, "https://cdn.test/out.mp4")

    def test_error_and_cancelled_jobs_fail(self) -> None:
        cases = [
            ("error", "EXTERNAL_JOB_FAILED", "face not detected"),
            ("cancelled", "EXTERNAL_JOB_CANCELLED", None),
        ]
        for status, code, error in cases:
            with self.subTest(status=status):
                job = _processing_job(self.store, external_job_id=f"ext-{status}")

                self._process(_payload(status, external_job_id=f"ext-{status}", error=error))

                self.assertEqual(job.status, JobStatus.FAILED)
                self.assertEqual(job.failure_code, code)
                self.assertEqual(job.failed_step, "external-job")
                self.assertEqual(job.failure_message, error or f"External job {status}")

    def test_finished_without_output_fails(self) -> None:
        job = _processing_job(self.store)

        self._process(_payload(outputs=[]))

        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.failure_code, "EXTERNAL_JOB_OUTPUT_MISSING")

    def test_duplicate_delivery_is_replayed_without_writes(self) -> None:
        _processing_job(self.store)
        self._process(_payload(outputs=[{"key": "out/v.mp4"}]))
        writes = self.store.job_write_count

        result = self._process(_payload(outputs=[{"key": "out/v.mp4"}]))

        self.assertTrue(result.replayed)
        self.assertEqual(result.current_status, JobStatus.COMPLETED)
        self.assertEqual(self.store.job_write_count, writes)

    def test_conflicting_delivery_after_terminal_status_is_rejected(self) -> None:
        job = _processing_job(self.store)
        self._process(_payload(outputs=[{"key": "out/v.mp4"}]))

        with self.assertRaises(ApiError) as context:
            self._process(_payload("error", error="late failure"))

        self.assertEqual(context.exception.status_code, 409)
        self.assertEqual(context.exception.payload.code, "FSM_TERMINAL_IMMUTABLE")
        self.assertEqual(job.status, JobStatus.COMPLETED)

    def test_unknown_external_job_is_not_found(self) -> None:
        with self.assertRaises(ApiError) as context:
            self._process(_payload(external_job_id="ext-unknown", outputs=[{"key": "out/v.mp4"}]))
        self.assertEqual(context.exception.status_code, 404)
        self.assertEqual(context.exception.payload.code, "RESOURCE_NOT_FOUND")


class _SettingsEnvCase(unittest.TestCase):
    _env_keys = (
        "GENFLOW_WEBHOOK_SECRET",
        "GENFLOW_EVENT_KEY",
        "GENFLOW_S3_BUCKET",
    )

    def setUp(self) -> None:
        self._old_env = {k: os.environ.get(k) for k in self._env_keys}
        os.environ["GENFLOW_WEBHOOK_SECRET"] = "test-webhook-secret"
        os.environ["GENFLOW_EVENT_KEY"] = "test-event-key"
        os.environ.pop("GENFLOW_S3_BUCKET", None)
        get_settings.cache_clear()

    def tearDown(self) -> None:
        for key, value in self._old_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        get_settings.cache_clear()


class WebhookRouteTests(_SettingsEnvCase):
    def setUp(self) -> None:
        super().setUp()
        self.app = create_app()
        self.client = TestClient(self.app)
        self.store = self.app.state.store

    def _post(self, payload, token: str | None = "test-webhook-secret"):
        params = {"token": token} if token is not None else {}
        return self.client.post(_WEBHOOK_PATH, params=params, json=payload)

    def test_completion_returns_no_content(self) -> None:
        job = _processing_job(self.store)

        response = self._post(_payload(outputs=[{"key": "out/v.mp4"}]))

        self.assertEqual(response.status_code, 204)
        self.assertEqual(job.status, JobStatus.COMPLETED)

    def test_replay_returns_current_status(self) -> None:
        job = _processing_job(self.store)
        self._post(_payload(outputs=[{"key": "out/v.mp4"}]))

        response = self._post(_payload(outputs=[{"key": "out/v.mp4"}]))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {"job_id": job.id, "external_job_id": "ext-77", "replayed": True, "current_status": "completed"},
        )

    def test_conflict_returns_transition_error(self) -> None:
        _processing_job(self.store)
        self._post(_payload("error", error="boom"))

        response = self._post(_payload(outputs=[{"key": "out/v.mp4"}]))

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "FSM_TERMINAL_IMMUTABLE")
        self.assertEqual(response.json()["details"]["current_status"], "failed")

    def test_unknown_external_job_returns_not_found(self) -> None:
        response = self._post(_payload(external_job_id="ext-missing", outputs=[{"key": "out/v.mp4"}]))

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"code": "RESOURCE_NOT_FOUND", "message": "Resource not found"})

    def test_missing_or_wrong_token_is_unauthorized(self) -> None:
        job = _processing_job(self.store)
        for token in (None, "wrong-secret"):
            with self.subTest(token=token):
                response = self._post(_payload(outputs=[{"key": "out/v.mp4"}]), token=token)
                self.assertEqual(response.status_code, 401)
                self.assertEqual(response.json()["code"], "UNAUTHORIZED")
        self.assertEqual(job.status, JobStatus.PROCESSING)

    def test_invalid_payload_returns_validation_error(self) -> None:
        _processing_job(self.store)

        response = self._post({"type": "job.complete", "body": {"id": "ext-77", "status": "exploded"}})

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json(), {"code": "VALIDATION_ERROR", "message": "Invalid webhook payload"})


if __name__ == "__main__":
    unittest.main()

"""Event ingress route tests."""

from __future__ import annotations

import os
import unittest

from fastapi.testclient import TestClient
import httpx

from genflow.core.config import get_settings
from genflow.main import create_app
from genflow.schemas.job import JobKind, JobStatus

_EVENTS_PATH = "/api/v1/events"
_EVENT_HEADERS = {"X-Event-Key": "test-event-key"}


class _SettingsEnvCase(unittest.TestCase):
    _env_keys = (
        "GENFLOW_WEBHOOK_SECRET",
        "GENFLOW_EVENT_KEY",
        "GENFLOW_S3_BUCKET",
        "GENFLOW_SIEVE_PUSH_URL",
    )

    def setUp(self) -> None:
        self._old_env = {k: os.environ.get(k) for k in self._env_keys}
        os.environ["GENFLOW_WEBHOOK_SECRET"] = "test-webhook-secret"
        os.environ["GENFLOW_EVENT_KEY"] = "test-event-key"
        os.environ["GENFLOW_SIEVE_PUSH_URL"] = "https://sieve.test/v2/push"
        os.environ.pop("GENFLOW_S3_BUCKET", None)
        get_settings.cache_clear()

    def tearDown(self) -> None:
        for key, value in self._old_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        get_settings.cache_clear()


class EventRouteTests(_SettingsEnvCase):
    def setUp(self) -> None:
        super().setUp()
        self.pushed: list[httpx.Request] = []

        def sieve(request: httpx.Request) -> httpx.Response:
            self.pushed.append(request)
            return httpx.Response(200, json={"id": "ext-501"})

        self.app = create_app(http_transport=httpx.MockTransport(sieve))
        self.client = TestClient(self.app)
        self.store = self.app.state.store
        self.owner = self.store.create_user(credits=2, user_id="user-1")
        self.job = self.store.create_job(
            kind=JobKind.TRANSLATE_VIDEO,
            owner_id=self.owner.id,
            inputs={"source_video_key": "videos/v.mp4", "target_language": "german"},
        )

    def _event(self, name: str = "translate-video") -> dict:
        return {"name": name, "data": {"jobId": self.job.id, "userId": self.owner.id}}

    def test_accepted_event_runs_orchestration_in_background(self) -> None:
        response = self.client.post(_EVENTS_PATH, headers=_EVENT_HEADERS, json=self._event())

        self.assertEqual(response.status_code, 202)
        self.assertEqual(response.json(), {"job_id": self.job.id, "name": "translate-video", "accepted": True})
        self.assertEqual(len(self.pushed), 1)
        self.assertEqual(self.job.status, JobStatus.PROCESSING)
        self.assertEqual(self.job.external_job_id, "ext-501")
        self.assertEqual(self.owner.credits, 1)

    def test_legacy_event_name_is_accepted(self) -> None:
        response = self.client.post(_EVENTS_PATH, headers=_EVENT_HEADERS, json=self._event("translate-video-event"))

        self.assertEqual(response.status_code, 202)
        self.assertEqual(response.json()["name"], "translate-video")

    def test_missing_or_wrong_event_key_is_unauthorized(self) -> None:
        for headers in ({}, {"X-Event-Key": "nope"}):
            with self.subTest(headers=headers):
                response = self.client.post(_EVENTS_PATH, headers=headers, json=self._event())
                self.assertEqual(response.status_code, 401)
                self.assertEqual(response.json()["code"], "UNAUTHORIZED")
        self.assertEqual(self.pushed, [])
        self.assertEqual(self.job.status, JobStatus.PENDING)

    def test_unknown_event_name_is_rejected(self) -> None:
        response = self.client.post(_EVENTS_PATH, headers=_EVENT_HEADERS, json=self._event("upscale-video"))

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")
        self.assertEqual(self.pushed, [])

    def test_non_object_body_is_rejected(self) -> None:
        response = self.client.post(_EVENTS_PATH, headers=_EVENT_HEADERS, json=["translate-video"])

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json(), {"code": "VALIDATION_ERROR", "message": "Invalid event payload"})

    def test_zero_credit_owner_is_marked_without_dispatch(self) -> None:
        self.owner.credits = 0

        response = self.client.post(_EVENTS_PATH, headers=_EVENT_HEADERS, json=self._event())

        self.assertEqual(response.status_code, 202)
        self.assertEqual(self.job.status, JobStatus.NO_CREDITS)
        self.assertEqual(self.pushed, [])


if __name__ == "__main__":
    unittest.main()

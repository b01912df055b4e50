"""Job-type descriptor and event parsing tests."""

from __future__ import annotations

import unittest

from pydantic import ValidationError

from genflow.core.config import Settings
from genflow.domain.job_types import DRIVING_AUDIO_KEY, JOB_TYPES, descriptor_for
from genflow.errors import InvalidJobInputsError
from genflow.schemas.events import ChangeVideoAudioEvent, PhotoToVideoEvent, event_kind, parse_trigger_event
from genflow.schemas.job import DispatchMode, JobKind


def _settings() -> Settings:
    return Settings(
        webhook_secret="hook-secret",
        event_key="event-key",
        sieve_api_key="sieve-key",
        webhook_base_url="https://orchestrator.test/",
        photo_to_video_endpoint="https://modal.test/p2v",
    )


class JobTypeDescriptorTests(unittest.TestCase):
    def test_every_kind_has_a_descriptor(self) -> None:
        self.assertEqual(set(JOB_TYPES), set(JobKind))

    def test_photo_mode_follows_experimental_flag(self) -> None:
        descriptor = descriptor_for(JobKind.PHOTO_TO_VIDEO)
        standard = descriptor.parse_inputs({"photo_key": "p.jpg", "script": "Hi"})
        experimental = descriptor.parse_inputs({"photo_key": "p.jpg", "script": "Hi", "experimental_model": True})

        self.assertIs(descriptor.select_mode(standard), DispatchMode.INLINE)
        self.assertIs(descriptor.select_mode(experimental), DispatchMode.DEFERRED)
        self.assertTrue(descriptor.needs_driving_audio)

    def test_inline_photo_request_passes_raw_keys(self) -> None:
        descriptor = descriptor_for(JobKind.PHOTO_TO_VIDEO)
        inputs = descriptor.parse_inputs({"photo_key": "p.jpg", "script": "Hi"})
        derived = {DRIVING_AUDIO_KEY: "audio/a.wav"}

        self.assertEqual(descriptor.presign_keys(inputs, derived, DispatchMode.INLINE), {})
        request = descriptor.build_request(inputs, derived, {}, DispatchMode.INLINE, _settings())

        self.assertEqual(request.url, "https://modal.test/p2v")
        self.assertEqual(request.result_field, "video_s3_key")
        self.assertEqual(
            request.body,
            {"transcript": "Hi", "photo_s3_key": "p.jpg", "audio_s3_key": "audio/a.wav"},
        )

    def test_deferred_photo_request_uses_presigned_urls_and_webhook(self) -> None:
        descriptor = descriptor_for(JobKind.PHOTO_TO_VIDEO)
        inputs = descriptor.parse_inputs(
            {"photo_key": "p.jpg", "script": "Hi", "experimental_model": True, "enhancement": True}
        )
        derived = {DRIVING_AUDIO_KEY: "audio/a.wav"}

        keys = descriptor.presign_keys(inputs, derived, DispatchMode.DEFERRED)
        self.assertEqual(keys, {"photo": "p.jpg", "audio": "audio/a.wav"})

        urls = {"photo": "https://s/p", "audio": "https://s/a"}
        request = descriptor.build_request(inputs, derived, urls, DispatchMode.DEFERRED, _settings())

        self.assertEqual(request.headers["X-API-Key"], "sieve-key")
        self.assertEqual(request.result_field, "id")
        self.assertEqual(request.body["function"], "sieve/portrait-avatar")
        self.assertEqual(request.body["inputs"]["source_image"], {"url": "https://s/p"})
        self.assertEqual(request.body["inputs"]["driving_audio"], {"url": "https://s/a"})
        self.assertEqual(request.body["inputs"]["enhancement"], "codeformer")
        self.assertEqual(
            request.body["webhooks"],
            [{"type": "job.complete", "url": "https://orchestrator.test/api/v1/webhooks/sieve?token=hook-secret"}],
        )

    def test_translation_and_audio_swap_are_always_deferred(self) -> None:
        cases = [
            (JobKind.TRANSLATE_VIDEO, {"source_video_key": "v.mp4", "target_language": "spanish"}, "sieve/dubbing"),
            (JobKind.CHANGE_VIDEO_AUDIO, {"source_video_key": "v.mp4", "new_audio_key": "a.wav"}, "sieve/lipsync"),
        ]
        for kind, raw_inputs, function in cases:
            with self.subTest(kind=kind):
                descriptor = descriptor_for(kind)
                inputs = descriptor.parse_inputs(raw_inputs)
                mode = descriptor.select_mode(inputs)
                keys = descriptor.presign_keys(inputs, {}, mode)
                urls = {name: f"https://s/{name}" for name in keys}
                request = descriptor.build_request(inputs, {}, urls, mode, _settings())

                self.assertIs(mode, DispatchMode.DEFERRED)
                self.assertFalse(descriptor.needs_driving_audio)
                self.assertEqual(request.body["function"], function)
                self.assertEqual(request.url, "https://mango.sievedata.com/v2/push")

    def test_invalid_inputs_raise_with_field_names(self) -> None:
        with self.assertRaises(InvalidJobInputsError) as context:
            descriptor_for(JobKind.CHANGE_VIDEO_AUDIO).parse_inputs({"source_video_key": "v.mp4"})
        self.assertIn("new_audio_key", str(context.exception))


class TriggerEventParsingTests(unittest.TestCase):
    def test_event_is_discriminated_by_name(self) -> None:
        event = parse_trigger_event({"name": "change-video-audio", "data": {"jobId": "job-1", "userId": "user-1"}})

        self.assertIsInstance(event, ChangeVideoAudioEvent)
        self.assertEqual(event.data.job_id, "job-1")
        self.assertEqual(event.data.user_id, "user-1")
        self.assertIs(event_kind(event), JobKind.CHANGE_VIDEO_AUDIO)

    def test_legacy_event_suffix_is_normalized(self) -> None:
        event = parse_trigger_event({"name": "photo-to-video-event", "data": {"jobId": "job-1", "userId": "user-1"}})
        self.assertIsInstance(event, PhotoToVideoEvent)

    def test_unknown_or_incomplete_events_are_rejected(self) -> None:
        payloads = [
            {"name": "upscale-video", "data": {"jobId": "job-1", "userId": "user-1"}},
            {"name": "translate-video", "data": {"jobId": "job-1"}},
            {"name": "translate-video", "data": {"jobId": "", "userId": "user-1"}},
            ["translate-video"],
        ]
        for payload in payloads:
            with self.subTest(payload=payload):
                with self.assertRaises(ValidationError):
                    parse_trigger_event(payload)


if __name__ == "__main__":
    unittest.main()

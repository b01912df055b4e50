"""Job-type descriptor table.

Each media workflow is the same credit-gated orchestration; what differs is
captured here: the input schema, whether a driving audio track has to be
synthesized, which inputs get presigned, and how the backend request is
shaped for the selected dispatch mode.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from genflow.core.config import Settings
from genflow.errors import InvalidJobInputsError
from genflow.schemas.dispatch import DispatchRequest
from genflow.schemas.job import (
    ChangeVideoAudioInputs,
    DispatchMode,
    JobKind,
    PhotoToVideoInputs,
    VideoTranslationInputs,
)

DRIVING_AUDIO_KEY = "driving_audio_key"

_SIEVE_RESULT_FIELD = "id"
_INLINE_VIDEO_RESULT_FIELD = "video_s3_key"


@dataclass(frozen=True, slots=True)
class JobTypeDescriptor:
    kind: JobKind
    inputs_model: type[BaseModel]
    needs_driving_audio: bool
    select_mode: Callable[[Any], DispatchMode]
    presign_keys: Callable[[Any, dict[str, str], DispatchMode], dict[str, str]]
    build_request: Callable[[Any, dict[str, str], dict[str, str], DispatchMode, Settings], DispatchRequest]

    def parse_inputs(self, raw_inputs: dict[str, Any]) -> Any:
        try:
            return self.inputs_model.model_validate(raw_inputs)
        except ValidationError as exc:
            fields = sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})
            raise InvalidJobInputsError(f"Invalid {self.kind.value} inputs: {', '.join(fields)}") from exc


def _modal_headers(settings: Settings) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Modal-Key": settings.modal_key,
        "Modal-Secret": settings.modal_secret,
    }


def _sieve_request(settings: Settings, *, function: str, inputs: dict[str, Any]) -> DispatchRequest:
    return DispatchRequest(
        mode=DispatchMode.DEFERRED,
        url=settings.sieve_push_url,
        headers={"Content-Type": "application/json", "X-API-Key": settings.sieve_api_key},
        body={
            "function": function,
            "inputs": inputs,
            "webhooks": [{"type": "job.complete", "url": settings.sieve_webhook_url}],
        },
        result_field=_SIEVE_RESULT_FIELD,
        backend=function,
    )


# photo-to-video

def _photo_mode(inputs: PhotoToVideoInputs) -> DispatchMode:
    return DispatchMode.DEFERRED if inputs.experimental_model else DispatchMode.INLINE


def _photo_presign(inputs: PhotoToVideoInputs, derived: dict[str, str], mode: DispatchMode) -> dict[str, str]:
    # The inline backend shares the bucket and reads raw keys.
    if mode is DispatchMode.INLINE:
        return {}
    return {"photo": inputs.photo_key, "audio": derived[DRIVING_AUDIO_KEY]}


def _photo_request(
    inputs: PhotoToVideoInputs,
    derived: dict[str, str],
    urls: dict[str, str],
    mode: DispatchMode,
    settings: Settings,
) -> DispatchRequest:
    if mode is DispatchMode.INLINE:
        return DispatchRequest(
            mode=DispatchMode.INLINE,
            url=settings.photo_to_video_endpoint,
            headers=_modal_headers(settings),
            body={
                "transcript": inputs.script,
                "photo_s3_key": inputs.photo_key,
                "audio_s3_key": derived[DRIVING_AUDIO_KEY],
            },
            result_field=_INLINE_VIDEO_RESULT_FIELD,
            backend="modal/photo-to-video",
        )
    return _sieve_request(
        settings,
        function="sieve/portrait-avatar",
        inputs={
            "source_image": {"url": urls["photo"]},
            "driving_audio": {"url": urls["audio"]},
            "backend": "lemonslice-v2.5",
            "enhancement": "codeformer" if inputs.enhancement else "none",
        },
    )


# translate-video

def _always_deferred(_: Any) -> DispatchMode:
    return DispatchMode.DEFERRED


def _translation_presign(
    inputs: VideoTranslationInputs, _derived: dict[str, str], _mode: DispatchMode
) -> dict[str, str]:
    return {"video": inputs.source_video_key}


def _translation_request(
    inputs: VideoTranslationInputs,
    _derived: dict[str, str],
    urls: dict[str, str],
    _mode: DispatchMode,
    settings: Settings,
) -> DispatchRequest:
    return _sieve_request(
        settings,
        function="sieve/dubbing",
        inputs={
            "source_file": {"url": urls["video"]},
            "target_language": inputs.target_language,
            "translation_engine": "sieve-default-translator",
            "voice_engine": "sieve-default-cloning",
            "transcription_engine": "sieve-transcribe",
            "output_mode": "voice-dubbing",
            "preserve_background_audio": True,
            "enable_lipsyncing": False,
            "lipsync_backend": "sync-2.0",
            "lipsync_enhance": "default",
        },
    )


# change-video-audio

def _audio_swap_presign(
    inputs: ChangeVideoAudioInputs, _derived: dict[str, str], _mode: DispatchMode
) -> dict[str, str]:
    return {"video": inputs.source_video_key, "audio": inputs.new_audio_key}


def _audio_swap_request(
    _inputs: ChangeVideoAudioInputs,
    _derived: dict[str, str],
    urls: dict[str, str],
    _mode: DispatchMode,
    settings: Settings,
) -> DispatchRequest:
    return _sieve_request(
        settings,
        function="sieve/lipsync",
        inputs={
            "file": {"url": urls["video"]},
            "audio": {"url": urls["audio"]},
            "backend": "sievesync-1.1",
            "enhance": "default",
        },
    )


JOB_TYPES: dict[JobKind, JobTypeDescriptor] = {
    JobKind.PHOTO_TO_VIDEO: JobTypeDescriptor(
        kind=JobKind.PHOTO_TO_VIDEO,
        inputs_model=PhotoToVideoInputs,
        needs_driving_audio=True,
        select_mode=_photo_mode,
        presign_keys=_photo_presign,
        build_request=_photo_request,
    ),
    JobKind.TRANSLATE_VIDEO: JobTypeDescriptor(
        kind=JobKind.TRANSLATE_VIDEO,
        inputs_model=VideoTranslationInputs,
        needs_driving_audio=False,
        select_mode=_always_deferred,
        presign_keys=_translation_presign,
        build_request=_translation_request,
    ),
    JobKind.CHANGE_VIDEO_AUDIO: JobTypeDescriptor(
        kind=JobKind.CHANGE_VIDEO_AUDIO,
        inputs_model=ChangeVideoAudioInputs,
        needs_driving_audio=False,
        select_mode=_always_deferred,
        presign_keys=_audio_swap_presign,
        build_request=_audio_swap_request,
    ),
}


def descriptor_for(kind: JobKind) -> JobTypeDescriptor:
    return JOB_TYPES[kind]

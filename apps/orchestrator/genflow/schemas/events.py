"""Triggering event schemas.

Events arrive untyped from the event bus and are validated exactly once, here,
into a union discriminated by ``name``. Older producers append ``-event`` to
the name; those spellings are normalized before discrimination.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from genflow.schemas.job import JobKind

_LEGACY_SUFFIX = "-event"


class EventData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    job_id: str = Field(alias="jobId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)


class PhotoToVideoEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Literal["photo-to-video"]
    data: EventData


class TranslateVideoEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Literal["translate-video"]
    data: EventData


class ChangeVideoAudioEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Literal["change-video-audio"]
    data: EventData


TriggerEvent = PhotoToVideoEvent | TranslateVideoEvent | ChangeVideoAudioEvent

_trigger_event_adapter: TypeAdapter[TriggerEvent] = TypeAdapter(
    Annotated[TriggerEvent, Field(discriminator="name")]
)


def parse_trigger_event(payload: Any) -> TriggerEvent:
    """Validate a raw event payload into its typed variant."""
    if isinstance(payload, dict):
        name = payload.get("name")
        if isinstance(name, str) and name.endswith(_LEGACY_SUFFIX):
            payload = {**payload, "name": name[: -len(_LEGACY_SUFFIX)]}
    return _trigger_event_adapter.validate_python(payload)


def event_kind(event: TriggerEvent) -> JobKind:
    return JobKind(event.name)


class EventAcceptedResponse(BaseModel):
    job_id: str
    name: JobKind
    accepted: bool = True

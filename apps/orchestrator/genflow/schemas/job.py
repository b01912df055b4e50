"""Job schemas."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    NO_CREDITS = "no credits"


class JobKind(str, Enum):
    PHOTO_TO_VIDEO = "photo-to-video"
    TRANSLATE_VIDEO = "translate-video"
    CHANGE_VIDEO_AUDIO = "change-video-audio"


class DispatchMode(str, Enum):
    INLINE = "inline"
    DEFERRED = "deferred"


class _JobInputs(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class PhotoToVideoInputs(_JobInputs):
    photo_key: str = Field(min_length=1)
    script: str = Field(min_length=1)
    voice_key: str | None = None
    experimental_model: bool = False
    enhancement: bool = False


class VideoTranslationInputs(_JobInputs):
    source_video_key: str = Field(min_length=1)
    target_language: str = Field(min_length=1)


class ChangeVideoAudioInputs(_JobInputs):
    source_video_key: str = Field(min_length=1)
    new_audio_key: str = Field(min_length=1)


"""Text-to-speech synthesis backend."""

from genflow.adapters.backends.http_client import InferenceClient, require_string_field
from genflow.core.config import Settings


class TextToSpeechBackend:
    """Synthesizes a driving audio track and returns its storage key."""

    def __init__(self, client: InferenceClient, settings: Settings) -> None:
        self._client = client
        self._endpoint = settings.text_to_speech_endpoint
        self._headers = {
            "Content-Type": "application/json",
            "Modal-Key": settings.modal_key,
            "Modal-Secret": settings.modal_secret,
        }

    async def synthesize(self, *, text: str, voice_key: str | None) -> str:
        payload = await self._client.post_json(
            self._endpoint,
            headers=self._headers,
            body={"text": text, "voice_S3_key": voice_key},
        )
        return require_string_field(payload, "s3_key", source="text-to-speech")


__all__ = ["TextToSpeechBackend"]

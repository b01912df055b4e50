"""Inference backend adapters."""

from .http_client import InferenceClient, require_string_field
from .text_to_speech import TextToSpeechBackend

__all__ = [
    "InferenceClient",
    "TextToSpeechBackend",
    "require_string_field",
]

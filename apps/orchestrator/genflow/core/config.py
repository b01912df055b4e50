"""Application configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables.

    The orchestrator receives an instance explicitly; ``get_settings`` is only
    used at the application boundary.
    """

    # Modal-hosted inference endpoints
    text_to_speech_endpoint: str = "http://localhost:9001/text-to-speech"
    photo_to_video_endpoint: str = "http://localhost:9001/photo-to-video"
    modal_key: str = ""
    modal_secret: str = ""

    # Sieve job API
    sieve_push_url: str = "https://mango.sievedata.com/v2/push"
    sieve_api_key: str = ""

    # Webhook + event ingress
    webhook_base_url: str = "http://localhost:8000"
    webhook_secret: str
    event_key: str

    # Object storage
    s3_bucket: str = ""
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None
    presign_expires_seconds: int = Field(default=3600, ge=60)

    # Durable execution
    owner_concurrency_limit: int = Field(default=5, ge=1)
    step_max_attempts: int = Field(default=4, ge=1)
    step_backoff_base_seconds: float = Field(default=0.5, ge=0)
    step_backoff_max_seconds: float = Field(default=30.0, ge=0)
    step_backoff_jitter_pct: float = Field(default=0.2, ge=0, le=1)
    http_timeout_seconds: float = Field(default=300.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="GENFLOW_", extra="ignore")

    @property
    def sieve_webhook_url(self) -> str:
        return f"{self.webhook_base_url.rstrip('/')}/api/v1/webhooks/sieve?token={self.webhook_secret}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

"""S3-compatible presigner backed by boto3."""

from __future__ import annotations

import asyncio
from typing import Any

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError, EndpointConnectionError

from genflow.adapters.storage.base import ObjectPresigner
from genflow.core.config import Settings
from genflow.errors import OrchestrationError, TransientNetworkError


class PresignError(OrchestrationError):
    code = "PRESIGN_FAILED"


class S3Presigner(ObjectPresigner):
    """Signs GET URLs for objects in the configured bucket."""

    def __init__(self, *, bucket: str, client: Any) -> None:
        if not bucket:
            raise ValueError("bucket is required")
        self._bucket = bucket
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> S3Presigner:
        client = boto3.client(
            "s3",
            region_name=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
        )
        return cls(bucket=settings.s3_bucket, client=client)

    async def presign(self, key: str, *, expires_in: int) -> str:
        # Signing may resolve credentials over the network; keep it off the event loop.
        try:
            return await asyncio.to_thread(
                self._client.generate_presigned_url,
                ClientMethod="get_object",
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (EndpointConnectionError, ConnectTimeoutError) as exc:
            raise TransientNetworkError(f"Presign endpoint unreachable: {type(exc).__name__}") from exc
        except (BotoCoreError, ClientError) as exc:
            raise PresignError(f"Presign failed: {type(exc).__name__}") from exc


__all__ = ["PresignError", "S3Presigner"]

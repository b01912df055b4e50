"""JSON-over-HTTP client for inference backends."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from genflow.core.logging_safety import redact_url
from genflow.errors import BackendRejectedError, MalformedResponseError, TransientNetworkError

logger = logging.getLogger(__name__)

_TRANSIENT_STATUS_CODES = frozenset({408, 425, 429})


class InferenceClient:
    """Thin wrapper over ``httpx.AsyncClient`` that classifies failures.

    Transport errors, 5xx and throttling responses raise ``TransientNetworkError``
    so the step executor retries them. Other non-2xx responses raise
    ``BackendRejectedError``; bodies that are not JSON objects raise
    ``MalformedResponseError``.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def post_json(self, url: str, *, headers: dict[str, str], body: dict[str, Any]) -> dict[str, Any]:
        safe_url = redact_url(url)
        try:
            response = await self._client.post(url, headers=headers, json=body)
        except httpx.TransportError as exc:
            logger.warning("backend.transport_error url=%s reason=%s", safe_url, type(exc).__name__)
            raise TransientNetworkError(f"Transport error calling {safe_url}: {type(exc).__name__}") from exc

        if response.status_code >= 500 or response.status_code in _TRANSIENT_STATUS_CODES:
            logger.warning("backend.transient_status url=%s status=%s", safe_url, response.status_code)
            raise TransientNetworkError(f"Backend {safe_url} returned {response.status_code}")
        if response.status_code >= 400:
            logger.warning("backend.rejected url=%s status=%s", safe_url, response.status_code)
            raise BackendRejectedError(
                f"Backend {safe_url} rejected request with {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"Backend {safe_url} returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise MalformedResponseError(f"Backend {safe_url} returned {type(payload).__name__}, expected object")
        return payload

    async def aclose(self) -> None:
        await self._client.aclose()


def require_string_field(payload: dict[str, Any], field: str, *, source: str) -> str:
    """Extract a non-blank string field or raise ``MalformedResponseError``."""
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise MalformedResponseError(f"{source} response missing {field!r}")
    return value


__all__ = ["InferenceClient", "require_string_field"]

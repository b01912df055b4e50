"""Dependency wiring for routes."""

from __future__ import annotations

import logging
from secrets import compare_digest
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, Request, Security
from fastapi.security import APIKeyHeader, APIKeyQuery

from genflow.core.config import Settings
from genflow.core.logging_safety import safe_log_identifier
from genflow.errors import ApiError
from genflow.repositories.memory import InMemoryStore
from genflow.services.orchestrator import Orchestrator
from genflow.services.webhooks import WebhookService

event_key_scheme = APIKeyHeader(
    name="X-Event-Key",
    auto_error=False,
    scheme_name="eventKey",
)
webhook_token_scheme = APIKeyQuery(
    name="token",
    auto_error=False,
    scheme_name="webhookToken",
)
logger = logging.getLogger(__name__)


def _auth_error(message: str) -> ApiError:
    return ApiError(status_code=401, code="UNAUTHORIZED", message=message)


def _request_correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    if isinstance(existing, str) and existing:
        return existing

    correlation_id = request.headers.get("X-Correlation-Id")
    if correlation_id:
        request.state.correlation_id = correlation_id
        return correlation_id

    generated = f"req-{uuid4()}"
    request.state.correlation_id = generated
    return generated


def get_request_correlation_id(request: Request) -> str:
    return _request_correlation_id(request)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


async def require_event_key(
    request: Request,
    event_key: Annotated[str | None, Security(event_key_scheme)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> None:
    """Validate the shared key presented by the event bus."""
    safe_correlation_id = safe_log_identifier(_request_correlation_id(request), prefix="cid")
    if event_key is None or not compare_digest(event_key, settings.event_key):
        logger.warning(
            "events.auth_rejected correlation_id=%s method=%s path=%s reason=invalid_event_key",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error("Invalid event authentication")


async def require_webhook_token(
    request: Request,
    token: Annotated[str | None, Security(webhook_token_scheme)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> None:
    """Validate the token embedded in the registered webhook URL."""
    safe_correlation_id = safe_log_identifier(_request_correlation_id(request), prefix="cid")
    if token is None or not compare_digest(token, settings.webhook_secret):
        logger.warning(
            "webhook.auth_rejected correlation_id=%s method=%s path=%s reason=invalid_webhook_token",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error("Invalid webhook authentication")


def get_store(request: Request) -> InMemoryStore:
    return request.app.state.store


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def get_webhook_service(store: Annotated[InMemoryStore, Depends(get_store)]) -> WebhookService:
    return WebhookService(store)

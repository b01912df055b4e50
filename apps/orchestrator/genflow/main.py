"""FastAPI application entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging

import httpx
from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from genflow.adapters.backends import InferenceClient, TextToSpeechBackend
from genflow.adapters.storage import ObjectPresigner, S3Presigner, StaticPresigner
from genflow.core.config import Settings, get_settings
from genflow.errors import ApiError
from genflow.repositories.memory import InMemoryStore
from genflow.routes import events_router, webhooks_router
from genflow.schemas.error import ErrorResponse
from genflow.services.dispatch import ExternalJobDispatcher
from genflow.services.inputs import InputResolver
from genflow.services.orchestrator import Orchestrator
from genflow.services.steps import DurableStepExecutor

logger = logging.getLogger(__name__)

_VALIDATION_MESSAGES: dict[tuple[str, str], str] = {
    ("POST", "/api/v1/events"): "Invalid event payload",
    ("POST", "/api/v1/webhooks/sieve"): "Invalid webhook payload",
}


def _build_presigner(settings: Settings) -> ObjectPresigner:
    if settings.s3_bucket:
        return S3Presigner.from_settings(settings)
    logger.warning("storage.presigner_fallback reason=no_bucket_configured presigner=static")
    return StaticPresigner()


def create_app(
    settings: Settings | None = None,
    *,
    store: InMemoryStore | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
    presigner: ObjectPresigner | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    store = store or InMemoryStore()

    http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds, transport=http_transport)
    inference_client = InferenceClient(http_client)
    resolver = InputResolver(
        store=store,
        presigner=presigner or _build_presigner(settings),
        tts=TextToSpeechBackend(inference_client, settings),
        presign_expires_seconds=settings.presign_expires_seconds,
    )
    orchestrator = Orchestrator(
        store=store,
        settings=settings,
        resolver=resolver,
        dispatcher=ExternalJobDispatcher(inference_client),
        executor=DurableStepExecutor.from_settings(store, settings),
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await inference_client.aclose()

    app = FastAPI(title="Genflow Orchestrator", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.orchestrator = orchestrator

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        route = request.scope.get("route")
        route_path = getattr(route, "path", request.url.path)
        message = _VALIDATION_MESSAGES.get((request.method.upper(), route_path))
        if message is not None:
            payload = ErrorResponse(code="VALIDATION_ERROR", message=message)
            return JSONResponse(status_code=422, content=payload.model_dump(exclude_none=True))

        return await request_validation_exception_handler(request, exc)

    api_prefix = "/api/v1"
    app.include_router(events_router, prefix=api_prefix)
    app.include_router(webhooks_router, prefix=api_prefix)

    return app

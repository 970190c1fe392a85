"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from wadesk.infra.settings import Settings, load_settings
from wadesk.observability.correlation import CORRELATION_ID_HEADER, correlation_scope
from wadesk.observability.logging import get_logger
from wadesk.observability.redaction import safe_log_context
from wadesk.runtime import Runtime
from wadesk.whatsapp.bridge_client import BridgeClient

from .routers import public
from .routes import chats, messages, pins, realtime, status, webhooks_bridge

logger = get_logger(__name__)

API_PREFIX = "/api"


def _api_router() -> APIRouter:
    router = APIRouter()
    router.include_router(public.router)
    router.include_router(status.router)
    router.include_router(messages.router)
    router.include_router(chats.router)
    router.include_router(pins.router)
    return router


def create_app(
    runtime: Runtime | None = None,
    settings: Settings | None = None,
    *,
    auto_initialize: bool = True,
) -> FastAPI:
    """Create the FastAPI app around a Runtime.

    Args:
        runtime: Prebuilt runtime (tests pass one around an in-memory client).
                 If None, one is built with a BridgeClient.
        settings: Settings for the default runtime. Read from the environment
                  when None.
        auto_initialize: Start the WhatsApp client when the app starts.

    Returns:
        Configured FastAPI application.
    """
    if runtime is None:
        settings = settings or load_settings()
        runtime = Runtime(BridgeClient(settings), settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if auto_initialize:
            runtime.schedule_initialize()
        try:
            yield
        finally:
            await runtime.shutdown()

    app = FastAPI(
        title="wadesk",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> Response:
        # dict details (`{"error": ...}`) are also lifted to the top level
        content: dict = {"detail": exc.detail}
        if isinstance(exc.detail, dict):
            content.update(exc.detail)
        return JSONResponse(status_code=exc.status_code, content=content, headers=dict(exc.headers or {}))

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as cid:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            if response.status_code >= 500:
                logger.warning(
                    "request failed",
                    extra={
                        "extra_fields": safe_log_context(
                            path=request.url.path, status_code=response.status_code
                        )
                    },
                )
            return response

    # Same routes at the root and under /api
    api = _api_router()
    app.include_router(api)
    app.include_router(api, prefix=API_PREFIX)
    app.include_router(realtime.router)
    app.include_router(webhooks_bridge.router)

    return app

"""
FastAPI application factory for the bridge.

Wires the aggregator and the status broadcaster to HTTP and WebSocket
routes. Tests build the app with their own aggregator; production uses the
adapters configured in Settings.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .aggregator import Aggregator
from .broadcaster import StatusBroadcaster
from .config import Settings, get_settings
from .errors import InvalidRequestError, UnknownProviderError, UpstreamError
from .models import ChatRequest, ChatResponse, DetectResponse, ErrorResponse, UsageInfo
from .policies import select_first_available
from .providers import build_adapters
from .stats import ChatStats
from .system import SystemService

logger = logging.getLogger(__name__)


def build_aggregator(settings: Settings) -> Aggregator:
    """Aggregator with every provider configured in settings."""
    return Aggregator(
        adapters=build_adapters(settings),
        system=SystemService(gpu_timeout=settings.status_timeout),
        stats=ChatStats(),
        default_provider=settings.default_provider,
        default_temperature=settings.default_temperature,
        default_max_tokens=settings.default_max_tokens,
    )


def _error(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


def create_app(
    aggregator: Optional[Aggregator] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Create the bridge FastAPI application.

    Args:
        aggregator: Pre-built aggregator. Built from settings when omitted.
        settings: Settings to use. Defaults to get_settings().

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    aggregator = aggregator or build_aggregator(settings)
    broadcaster = StatusBroadcaster(
        snapshot_factory=aggregator.get_aggregated_status,
        interval=settings.broadcast_interval,
        send_timeout=settings.send_timeout,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("LuxRig Bridge v%s starting up", settings.version)
        for provider_id in aggregator.providers:
            logger.info("Provider: %s", provider_id)

        await aggregator.initialize()
        broadcaster.start()

        yield

        logger.info("LuxRig Bridge shutting down")
        await broadcaster.stop()
        await aggregator.shutdown()

    app = FastAPI(
        title="LuxRig Bridge",
        description="Aggregates local and cloud LLM providers behind one API",
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.aggregator = aggregator
    app.state.broadcaster = broadcaster

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # Error translation
    # =========================================================================

    @app.exception_handler(UnknownProviderError)
    @app.exception_handler(InvalidRequestError)
    async def bad_request_handler(request: Request, exc: Exception):
        return _error(400, ErrorResponse(error=str(exc)))

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
        return _error(400, ErrorResponse(error=f"Invalid request: {details}"))

    @app.exception_handler(UpstreamError)
    async def upstream_handler(request: Request, exc: UpstreamError):
        return _error(502, ErrorResponse(
            error=exc.message,
            provider=exc.provider,
            upstream_status=exc.status_code,
            upstream_body=exc.body[:1000] if exc.body else None,
        ))

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception):
        logger.error("Unhandled error on %s: %s", request.url.path, exc, exc_info=exc)
        return _error(500, ErrorResponse(error=str(exc) or "Internal server error"))

    # =========================================================================
    # Info & Status
    # =========================================================================

    @app.get("/")
    async def root():
        """Service information and endpoint map."""
        return {
            "name": "LuxRig Bridge",
            "version": settings.version,
            "status": "operational",
            "providers": aggregator.providers,
            "endpoints": {
                "status": "/status",
                "models": "/models",
                "chat": "/chat",
                "llm": "/llm/*",
                "system": "/system",
                "stats": "/stats",
                "stream": f"ws://localhost:{settings.port}/stream",
            },
        }

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "providers": aggregator.providers,
            "subscribers": broadcaster.subscriber_count,
        }

    @app.get("/status")
    async def status():
        """Full status snapshot. Offline providers are reported, never fatal."""
        snapshot = await aggregator.get_aggregated_status()
        return snapshot.to_dict()

    # =========================================================================
    # Models
    # =========================================================================

    async def _models_by_provider() -> dict[str, list[dict]]:
        models = await aggregator.list_all_models()
        return {
            provider_id: [m.to_dict() for m in descriptors]
            for provider_id, descriptors in models.items()
        }

    @app.get("/models")
    async def models():
        return await _models_by_provider()

    @app.get("/llm/models")
    async def llm_models():
        result: dict = await _models_by_provider()
        result["total"] = sum(len(v) for v in result.values())
        return result

    @app.get("/llm/detect", response_model=DetectResponse)
    async def detect():
        """Pick the first provider (by configured priority) that has models."""
        models = await aggregator.list_all_models()
        selection = select_first_available(models, settings.priority_list)
        available = {
            provider_id: [m.id for m in descriptors]
            for provider_id, descriptors in models.items()
            if descriptors
        }

        if not selection.found:
            message = "No local LLM detected"
        else:
            message = f"Connected to {selection.provider} ({selection.model})"

        return DetectResponse(
            provider=selection.provider,
            model=selection.model,
            available=available,
            message=message,
        )

    # =========================================================================
    # Chat
    # =========================================================================

    async def _chat(request: ChatRequest) -> ChatResponse:
        start_time = time.time()
        result = await aggregator.route_chat(request)
        latency_ms = int((time.time() - start_time) * 1000)

        usage = None
        if result.usage:
            usage = UsageInfo(
                prompt_tokens=result.usage.prompt_tokens,
                completion_tokens=result.usage.completion_tokens,
                total_tokens=result.usage.total_tokens,
            )

        return ChatResponse(
            provider=result.provider,
            model=result.model,
            content=result.content,
            usage=usage,
            data=result.data,
            latency_ms=latency_ms,
        )

    @app.post("/chat", response_model=ChatResponse)
    async def chat(request: ChatRequest):
        """Chat completion, routed by the request's provider field."""
        return await _chat(request)

    @app.post("/llm/chat", response_model=ChatResponse)
    async def llm_chat(request: ChatRequest):
        return await _chat(request)

    # =========================================================================
    # System & Stats
    # =========================================================================

    @app.get("/system")
    async def system():
        return await aggregator.get_system_metrics()

    @app.get("/system/gpu")
    async def system_gpu():
        return await aggregator.get_gpu()

    @app.get("/stats")
    async def stats():
        """Chat statistics per provider."""
        return aggregator.stats.get_stats()

    # =========================================================================
    # Stream
    # =========================================================================

    @app.websocket("/stream")
    async def stream(websocket: WebSocket):
        await broadcaster.handle(websocket)

    return app

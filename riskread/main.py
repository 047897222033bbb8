from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable

from fastapi import FastAPI

from .api.v1.routes_ai import router as ai_router
from .api.v1.routes_analysis import router as analysis_router
from .api.v1.routes_health import router as health_router
from .api.v1.routes_upload import router as upload_router
from .config import Settings, get_settings
from .logging import configure_logging
from .services.ai_gateway import AIGateway
from .services.analysis_service import AnalysisService
from .services.analysis_store import AnalysisStore, ExpiryScheduler, utcnow
from .services.document_processing import DocumentExtractor
from .services.gemini import GeminiClient, TextGenerator
from .services.storage import FileStorage
from .workers.jobs import JobRunner


def build_gateway(settings: Settings, provider: TextGenerator | None = None) -> AIGateway:
    if provider is None and settings.gemini_api_key:
        provider = GeminiClient(settings)
    return AIGateway(
        provider,
        temperature=settings.gemini_temperature,
        max_output_tokens=settings.gemini_max_output_tokens,
    )


def create_app(
        settings: Settings | None = None,
        provider: TextGenerator | None = None,
        scheduler: ExpiryScheduler | None = None,
        clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    """Create and configure FastAPI application.

    ``provider``, ``scheduler`` and ``clock`` replace the Gemini client, the
    expiry timers and the wall clock; tests inject fakes here.
    """
    settings = settings or get_settings()
    configure_logging(env=settings.app_env, level=settings.log_level)

    storage = FileStorage(settings.upload_dir, fetch_timeout=settings.fetch_timeout_seconds)
    store = AnalysisStore(ttl_seconds=settings.result_ttl_seconds, scheduler=scheduler, clock=clock)
    gateway = build_gateway(settings, provider)
    runner = JobRunner()
    service = AnalysisService(
        store=store,
        extractor=DocumentExtractor(storage, text_char_limit=settings.text_char_limit),
        gateway=gateway,
        storage=storage,
        runner=runner,
        extraction_timeout=settings.extraction_timeout_seconds,
        ai_timeout=settings.ai_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await runner.shutdown()

    app = FastAPI(
        title="RiskRead API",
        version="0.1.0",
        docs_url="/api/docs",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.storage = storage
    app.state.store = store
    app.state.gateway = gateway
    app.state.analysis_service = service

    # Routers
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(upload_router, prefix="/api/v1")
    app.include_router(analysis_router, prefix="/api/v1")
    app.include_router(ai_router, prefix="/api/v1")

    return app


app = create_app()

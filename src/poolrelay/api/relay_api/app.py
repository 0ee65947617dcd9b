"""FastAPI application configuration (Relay API)."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    generate_latest,
    multiprocess,
)

from ...envs.relay_env import Settings, get_settings
from ...infrastructure.scheduler import build_scheduler
from .dependencies import build_relay_container
from .routers import claims, sends

logger = logging.getLogger(__name__)


def _metrics_payload() -> bytes:
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        return generate_latest(registry)
    return generate_latest(REGISTRY)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure FastAPI application."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        container = build_relay_container(settings)
        await container.register_scripts()
        await container.settlement_worker.recover_interrupted()
        app.state.relay = container
        logger.info("Relay services ready")

        scheduler = None
        if settings.scheduler_enabled:
            scheduler = build_scheduler(
                container.settlement_worker.run_once,
                container.claim_registry.expire_sweep,
                sweep_interval_seconds=settings.sweep_interval_seconds,
                expiry_interval_seconds=settings.expiry_interval_seconds,
            )
            scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown(wait=False)
            await container.aclose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="PoolRelay claim link and payout relay API",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(claims.router, prefix="/api/v1")
    app.include_router(sends.router, prefix="/api/v1")

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": f"Welcome to {settings.app_name} API",
            "version": settings.app_version,
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
        }

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(content=_metrics_payload(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()

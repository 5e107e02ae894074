from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.app.logging_config import configure_logging
from backend.app.routes.health import router as health_router
from backend.app.routes.translations import router as translations_router
from backend.app.settings import Settings, build_settings
from backend.app.translation.orchestrator import RequestOrchestrator
from backend.app.translation.providers.base import TranslationProvider


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _service_logger() -> logging.Logger:
    return logging.getLogger("cstranslator.backend")


def create_app(
    settings: Settings | None = None,
    provider_override: TranslationProvider | None = None,
) -> FastAPI:
    settings = settings or build_settings(_project_root())
    configure_logging(
        settings.log_level,
        service_name=settings.service_name,
        service_version=settings.service_version,
    )
    logger = _service_logger()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.settings = settings
        app.state.started_at = datetime.now(timezone.utc)
        app.state.orchestrator = RequestOrchestrator(
            settings=settings,
            logger=logger,
            provider_override=provider_override,
        )

        logger.info(
            "service_startup",
            extra={
                "event": "startup",
                "service_name": settings.service_name,
                "service_version": settings.service_version,
            },
        )
        logger.info(
            "service_config_loaded",
            extra={
                "event": "config_loaded",
                "service_name": settings.service_name,
                "service_version": settings.service_version,
                "config": settings.redacted(),
            },
        )
        await app.state.orchestrator.start()
        yield
        await app.state.orchestrator.stop()
        logger.info(
            "service_shutdown",
            extra={
                "event": "shutdown",
                "service_name": settings.service_name,
                "service_version": settings.service_version,
            },
        )

    app = FastAPI(
        title=settings.service_name,
        version=settings.service_version,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root() -> dict[str, str]:
        return {"message": "Customer service translator backend is running."}

    app.include_router(health_router)
    app.include_router(translations_router)
    return app


app = create_app()

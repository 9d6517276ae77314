"""ASGI entry point for the webhook reshaper service."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.responses import Response

from src.reshaper.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.reshaper.api.v1.router import router as v1_router
from src.reshaper.categories import CATEGORIES
from src.reshaper.config import get_settings
from src.reshaper.core.monitoring import METRICS_PATH, MetricsMiddleware, get_metrics_response

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_structlog(settings)
    logger.info(
        "reshaper_started",
        environment=settings.ENVIRONMENT.value,
        namespace=settings.NAMESPACE,
        categories=sorted(CATEGORIES),
    )
    yield
    logger.info("reshaper_stopped")


def create_app() -> FastAPI:
    """Build the app: v1 transform routes, health and the Prometheus scrape route.

    Logging wraps metrics, so the request id is bound before anything
    downstream logs.
    """
    app = FastAPI(
        title="Webhook Reshaper",
        version="0.1.0",
        description="Idempotent classification, fingerprinting and provenance for CRM webhooks",
        lifespan=lifespan,
    )
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.include_router(v1_router)
    app.add_api_route(METRICS_PATH, get_metrics_response, methods=["GET"], include_in_schema=False, response_class=Response)
    return app


app = create_app()


def run() -> None:
    """Console entry point: serve ``app`` with uvicorn on the configured address."""
    settings = get_settings()
    uvicorn.run("src.reshaper.main:app", host=settings.HOST, port=settings.PORT, log_config=None)

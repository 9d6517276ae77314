"""Health check endpoint.

The reshaper has no external dependencies, so liveness is the only probe.
"""

from __future__ import annotations

from fastapi import APIRouter

from src.reshaper.categories import CATEGORIES
from src.reshaper.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check. Reports environment and registered categories."""
    settings = get_settings()
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT.value,
        "categories": len(CATEGORIES),
    }

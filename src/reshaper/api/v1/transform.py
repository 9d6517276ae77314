"""Transformation endpoints.

POST /api/v1/transform/{category} runs one raw delivery through the
ingestion pipeline and returns its outcome:

- classified -> 200 with the ClassifiedOutcome
- rejected   -> 422 with the RejectedOutcome (callers must inspect the
  reason before retrying)
- degraded   -> 200 with the DegradedOutcome, so the delivery is forwarded
  rather than dropped
- unknown category -> 404

GET /api/v1/categories lists the registered categories and their cascades.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, HTTPException, Request, status
from fastapi.responses import JSONResponse

from src.reshaper.categories import CATEGORIES, UnknownCategoryError, get_category
from src.reshaper.config import get_settings
from src.reshaper.ingestion.pipeline import process_delivery
from src.reshaper.ingestion.schemas import RejectedOutcome

router = APIRouter(prefix="/api/v1", tags=["transform"])


@router.post("/transform/{category}")
async def transform_delivery(category: str, request: Request, body: Any = Body(...)) -> JSONResponse:
    """Classify, fingerprint and stamp one delivery."""
    try:
        config = get_category(category)
    except UnknownCategoryError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    outcome = process_delivery(body, config, headers=request.headers)

    # 422 Unprocessable Content
    status_code = 422 if isinstance(outcome, RejectedOutcome) else status.HTTP_200_OK
    return JSONResponse(status_code=status_code, content=outcome.model_dump(mode="json"))


@router.get("/categories")
async def list_categories() -> dict[str, Any]:
    """Registered categories with namespace, policy and tag enumeration."""
    namespace = get_settings().NAMESPACE
    return {"categories": [config.describe(namespace) for config in CATEGORIES.values()]}

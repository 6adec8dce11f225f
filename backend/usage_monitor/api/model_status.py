"""Per-model health API endpoints."""

import logging
from typing import List, Literal
from fastapi import APIRouter, Depends, Query, Request

from ..schemas.model_status import ActiveModel, ModelStatus, ModelStatusOverview
from ..middleware.auth import verify_access
from ..services.model_status import ModelStatusService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/model-status", tags=["Model Status"])

WindowName = Literal["1h", "6h", "12h", "24h"]


def get_model_status_service(request: Request) -> ModelStatusService:
    return request.app.state.model_status


@router.get("/overview", response_model=ModelStatusOverview)
async def model_status_overview(
    window: WindowName = Query("24h"),
    _: bool = Depends(verify_access),
    service: ModelStatusService = Depends(get_model_status_service)
):
    """Status of the busiest models over a window."""
    return await service.overview(window)


@router.get("/models", response_model=List[ActiveModel])
async def active_models(
    _: bool = Depends(verify_access),
    service: ModelStatusService = Depends(get_model_status_service)
):
    """Models with traffic in the last 24 hours."""
    return await service.available_models()


# Model names may contain slashes (e.g. "meta/llama-3")
@router.get("/{model_name:path}", response_model=ModelStatus)
async def model_status(
    model_name: str,
    window: WindowName = Query("24h"),
    _: bool = Depends(verify_access),
    service: ModelStatusService = Depends(get_model_status_service)
):
    """Success rate of one model, overall and per slot."""
    return await service.model_status(model_name, window)

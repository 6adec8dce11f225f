"""Gateway credential API endpoints."""

import logging
import time
from typing import List
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_source_db
from ..schemas.reports import TokenOverview, TokenUsageRow
from ..middleware.auth import verify_access
from ..services.reports import token_hourly_usage, token_overview
from ..services.source import list_tokens

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tokens", tags=["Tokens"])


@router.get("/overview", response_model=TokenOverview)
async def tokens_overview(
    _: bool = Depends(verify_access),
    source: AsyncSession = Depends(get_source_db)
):
    """All credentials with expiry, exhaustion and usage share."""
    tokens = await list_tokens(source)
    return token_overview(tokens, int(time.time()))


@router.get("/{token_id}/usage", response_model=List[TokenUsageRow])
async def token_usage(
    token_id: int,
    start_ts: int,
    end_ts: int,
    request: Request,
    _: bool = Depends(verify_access),
    source: AsyncSession = Depends(get_source_db)
):
    """Hourly successful usage by one credential."""
    return await token_hourly_usage(
        source, token_id, start_ts, end_ts, request.app.state.settings.quota_per_unit
    )

"""Error log API endpoints."""

import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_aggregate_db, get_source_db
from ..schemas.reports import ErrorLogPage, ErrorLogRow, ErrorSummaryRow
from ..middleware.auth import verify_access
from ..services.reports import error_summary, list_error_logs

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/errors", tags=["Errors"])


@router.get("", response_model=ErrorLogPage)
async def list_errors(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    channel_id: Optional[int] = None,
    model_name: Optional[str] = None,
    start_ts: Optional[int] = None,
    end_ts: Optional[int] = None,
    _: bool = Depends(verify_access),
    source: AsyncSession = Depends(get_source_db)
):
    """Failed requests from the gateway, newest first."""
    total, logs = await list_error_logs(
        source,
        page=page,
        page_size=page_size,
        channel_id=channel_id,
        model_name=model_name,
        start_ts=start_ts,
        end_ts=end_ts,
    )
    return ErrorLogPage(
        logs=[ErrorLogRow.model_validate(log) for log in logs],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/summary", response_model=List[ErrorSummaryRow])
async def errors_summary(
    start_ts: int,
    end_ts: int,
    _: bool = Depends(verify_access),
    db: AsyncSession = Depends(get_aggregate_db)
):
    """Channels and models with the most errors over a time range."""
    return await error_summary(db, start_ts, end_ts)

"""Aggregate statistics API endpoints."""

import logging
from typing import List, Literal, Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_aggregate_db, get_source_db
from ..models.stats import Stat
from ..schemas.stats import StatRow, UsageSummary, AnalysisRow, SyncStatus
from ..schemas.reports import LatencyAnalysis
from ..middleware.auth import verify_access
from ..services.cursor import get_last_synced_id
from ..services.reports import latency_analysis

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Stats"])


def _in_range(query, start_ts: Optional[int], end_ts: Optional[int]):
    if start_ts is not None:
        query = query.where(Stat.hour >= start_ts)
    if end_ts is not None:
        query = query.where(Stat.hour <= end_ts)
    return query


@router.get("/stats", response_model=List[StatRow])
async def list_stats(
    channel_id: Optional[int] = None,
    model_name: Optional[str] = None,
    start_ts: Optional[int] = None,
    end_ts: Optional[int] = None,
    _: bool = Depends(verify_access),
    db: AsyncSession = Depends(get_aggregate_db)
):
    """Hourly buckets, optionally filtered by channel, model and time range."""
    query = _in_range(select(Stat), start_ts, end_ts)
    if channel_id is not None:
        query = query.where(Stat.channel_id == channel_id)
    if model_name:
        query = query.where(Stat.model_name == model_name)

    result = await db.execute(query.order_by(Stat.hour.asc()))
    return [StatRow.model_validate(row) for row in result.scalars().all()]


@router.get("/summary", response_model=UsageSummary)
async def get_summary(
    request: Request,
    start_ts: Optional[int] = None,
    end_ts: Optional[int] = None,
    _: bool = Depends(verify_access),
    db: AsyncSession = Depends(get_aggregate_db)
):
    """Totals over a time range."""
    query = _in_range(
        select(
            func.sum(Stat.tokens).label("total_tokens"),
            func.sum(Stat.request_count).label("total_requests"),
            func.sum(Stat.quota).label("total_quota"),
            func.sum(Stat.error_count).label("total_errors"),
            func.count(func.distinct(Stat.model_name)).label("active_models"),
        ),
        start_ts, end_ts,
    )
    row = (await db.execute(query)).first()
    total_quota = row.total_quota or 0

    return UsageSummary(
        total_tokens=row.total_tokens or 0,
        total_requests=row.total_requests or 0,
        total_quota=total_quota,
        total_errors=row.total_errors or 0,
        active_models=row.active_models or 0,
        total_cost=total_quota / request.app.state.settings.quota_per_unit,
    )


@router.get("/analysis", response_model=List[AnalysisRow])
async def get_analysis(
    type: Literal["channel", "model"] = Query("model"),
    start_ts: Optional[int] = None,
    end_ts: Optional[int] = None,
    limit: int = Query(20, ge=1, le=200),
    _: bool = Depends(verify_access),
    db: AsyncSession = Depends(get_aggregate_db)
):
    """Top channels or models by tokens."""
    group_col = Stat.channel_id if type == "channel" else Stat.model_name
    value = func.sum(Stat.tokens).label("value")

    query = _in_range(
        select(
            group_col.label("name"),
            value,
            func.sum(Stat.quota).label("quota"),
            func.sum(Stat.request_count).label("requests"),
            func.sum(Stat.error_count).label("errors"),
        ),
        start_ts, end_ts,
    ).group_by(group_col).order_by(value.desc()).limit(limit)

    result = await db.execute(query)
    return [
        AnalysisRow(
            name=str(row.name),
            value=row.value or 0,
            quota=row.quota or 0,
            requests=row.requests or 0,
            errors=row.errors or 0,
        )
        for row in result.all()
    ]


@router.get("/sync/status", response_model=SyncStatus)
async def get_sync_status(
    _: bool = Depends(verify_access),
    db: AsyncSession = Depends(get_aggregate_db)
):
    """Current sync watermark and bucket count."""
    last_id = await get_last_synced_id(db)
    row = (await db.execute(
        select(func.count().label("buckets"), func.max(Stat.hour).label("latest_hour")).select_from(Stat)
    )).first()

    return SyncStatus(
        last_synced_id=last_id,
        bucket_count=row.buckets or 0,
        latest_hour=row.latest_hour,
    )


@router.get("/analysis/latency", response_model=LatencyAnalysis)
async def get_latency_analysis(
    start_ts: int,
    end_ts: int,
    _: bool = Depends(verify_access),
    db: AsyncSession = Depends(get_aggregate_db),
    source: AsyncSession = Depends(get_source_db)
):
    """Slowest successful requests and the hourly latency trend."""
    return await latency_analysis(source, db, start_ts, end_ts)

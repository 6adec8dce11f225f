"""Channel monitoring API endpoints."""

import logging
from typing import List
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_aggregate_db, get_source_db
from ..models.gateway import (
    CHANNEL_STATUS_ENABLED,
    CHANNEL_STATUS_MANUALLY_DISABLED,
    CHANNEL_STATUS_AUTO_DISABLED,
)
from ..models.stats import Stat, ChannelSnapshot
from ..schemas.channel import ChannelInfo, ChannelOverview, ChannelStatusCount, SnapshotRow
from ..schemas.stats import ChannelPerformance
from ..middleware.auth import verify_access
from ..services.source import list_channels

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/channels", tags=["Channels"])


@router.get("/overview", response_model=ChannelOverview)
async def channels_overview(
    _: bool = Depends(verify_access),
    source: AsyncSession = Depends(get_source_db)
):
    """All gateway channels with a status breakdown."""
    channels = await list_channels(source)

    counts = ChannelStatusCount()
    for channel in channels:
        if channel.status == CHANNEL_STATUS_ENABLED:
            counts.enabled += 1
        elif channel.status == CHANNEL_STATUS_MANUALLY_DISABLED:
            counts.disabled += 1
        elif channel.status == CHANNEL_STATUS_AUTO_DISABLED:
            counts.auto_disabled += 1

    return ChannelOverview(
        channels=[ChannelInfo.model_validate(c) for c in channels],
        status_count=counts,
        total=len(channels),
    )


@router.get("/performance", response_model=List[ChannelPerformance])
async def channels_performance(
    request: Request,
    start_ts: int,
    end_ts: int,
    _: bool = Depends(verify_access),
    db: AsyncSession = Depends(get_aggregate_db),
    source: AsyncSession = Depends(get_source_db)
):
    """Requests, errors and latency per channel over a time range."""
    requests = func.sum(Stat.request_count).label("requests")
    result = await db.execute(
        select(
            Stat.channel_id,
            func.sum(Stat.tokens).label("tokens"),
            requests,
            func.sum(Stat.quota).label("quota"),
            func.sum(Stat.error_count).label("errors"),
            func.sum(Stat.avg_latency * Stat.request_count).label("latency_weighted"),
        )
        .where(Stat.hour >= start_ts, Stat.hour <= end_ts)
        .group_by(Stat.channel_id)
        .order_by(requests.desc())
    )
    rows = result.all()

    names = {c.id: c.name for c in await list_channels(source)}
    quota_per_unit = request.app.state.settings.quota_per_unit

    performance = []
    for row in rows:
        total = row.requests or 0
        performance.append(ChannelPerformance(
            channel_id=row.channel_id,
            channel_name=names.get(row.channel_id) or f"Channel {row.channel_id}",
            requests=total,
            tokens=row.tokens or 0,
            quota=row.quota or 0,
            cost=(row.quota or 0) / quota_per_unit,
            errors=row.errors or 0,
            error_rate=round((row.errors or 0) / total * 100, 2) if total else 0.0,
            avg_latency=round((row.latency_weighted or 0) / total) if total else 0,
        ))
    return performance


@router.get("/{channel_id}/snapshots", response_model=List[SnapshotRow])
async def channel_snapshots(
    channel_id: int,
    limit: int = Query(168, ge=1, le=5000),
    _: bool = Depends(verify_access),
    db: AsyncSession = Depends(get_aggregate_db)
):
    """Recent snapshots for one channel, newest first."""
    result = await db.execute(
        select(ChannelSnapshot)
        .where(ChannelSnapshot.channel_id == channel_id)
        .order_by(ChannelSnapshot.snapshot_time.desc())
        .limit(limit)
    )
    return [SnapshotRow.model_validate(s) for s in result.scalars().all()]

"""Read-only reports over gateway logs, credentials and the hourly aggregates."""

from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.gateway import (
    Log,
    Token,
    LOG_TYPE_CONSUME,
    LOG_TYPE_ERROR,
    TOKEN_STATUS_ENABLED,
)
from ..models.stats import Stat
from ..schemas.reports import (
    ErrorSummaryRow,
    LatencyAnalysis,
    LatencyPoint,
    SlowRequest,
    TokenInfo,
    TokenOverview,
    TokenStatusCount,
    TokenUsageRow,
)
from .syncer import hour_start

TOKEN_STATUS_DISABLED = 2
NEVER_EXPIRES = -1
SLOW_REQUEST_LIMIT = 20


# ===== Errors =====

async def list_error_logs(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 50,
    channel_id: Optional[int] = None,
    model_name: Optional[str] = None,
    start_ts: Optional[int] = None,
    end_ts: Optional[int] = None,
) -> Tuple[int, List[Log]]:
    """Failed requests, newest first. ``model_name`` matches as a substring."""
    conditions = [Log.type == LOG_TYPE_ERROR]
    if channel_id is not None:
        conditions.append(Log.channel_id == channel_id)
    if model_name:
        conditions.append(Log.model_name.contains(model_name, autoescape=True))
    if start_ts is not None:
        conditions.append(Log.created_at >= start_ts)
    if end_ts is not None:
        conditions.append(Log.created_at <= end_ts)

    total = (await db.execute(select(func.count()).select_from(Log).where(*conditions))).scalar() or 0
    result = await db.execute(
        select(Log)
        .where(*conditions)
        .order_by(Log.created_at.desc(), Log.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return total, list(result.scalars().all())


async def error_summary(db: AsyncSession, start_ts: int, end_ts: int, limit: int = 50) -> List[ErrorSummaryRow]:
    """Channel/model pairs with errors in the range, most errors first."""
    errors = func.sum(Stat.error_count).label("errors")
    result = await db.execute(
        select(
            Stat.channel_id,
            Stat.model_name,
            errors,
            func.sum(Stat.request_count).label("total"),
        )
        .where(Stat.hour >= start_ts, Stat.hour <= end_ts, Stat.error_count > 0)
        .group_by(Stat.channel_id, Stat.model_name)
        .order_by(errors.desc())
        .limit(limit)
    )
    return [
        ErrorSummaryRow(
            channel_id=row.channel_id,
            model_name=row.model_name,
            errors=row.errors or 0,
            total=row.total or 0,
            error_rate=round(row.errors / row.total * 100, 2) if row.total else 0.0,
        )
        for row in result.all()
    ]


# ===== Tokens =====

def describe_token(token: Token, now: int) -> TokenInfo:
    """Token with its expiry, exhaustion and usage share worked out."""
    remain = token.remain_quota or 0
    used = token.used_quota or 0
    expired_time = NEVER_EXPIRES if token.expired_time is None else token.expired_time
    unlimited = bool(token.unlimited_quota)

    usage_percent = None
    if not unlimited:
        usage_percent = round(used / (used + remain) * 100, 1) if used + remain > 0 else 0.0

    return TokenInfo(
        id=token.id,
        name=token.name,
        status=token.status,
        remain_quota=remain,
        used_quota=used,
        unlimited_quota=unlimited,
        expired_time=expired_time,
        accessed_time=token.accessed_time,
        group=token.group,
        used_count=token.used_count or 0,
        # 0 and -1 both mean "no expiry"
        is_expired=expired_time > 0 and expired_time < now,
        is_exhausted=not unlimited and remain <= 0,
        usage_percent=usage_percent,
    )


def token_overview(tokens: Iterable[Token], now: int) -> TokenOverview:
    """All credentials with a state breakdown."""
    infos = [describe_token(t, now) for t in tokens]
    counts = TokenStatusCount(
        enabled=sum(1 for t in infos if t.status == TOKEN_STATUS_ENABLED),
        disabled=sum(1 for t in infos if t.status == TOKEN_STATUS_DISABLED),
        expired=sum(1 for t in infos if t.is_expired),
        exhausted=sum(1 for t in infos if t.is_exhausted),
    )
    return TokenOverview(tokens=infos, status_count=counts, total=len(infos))


async def token_hourly_usage(
    db: AsyncSession,
    token_id: int,
    start_ts: int,
    end_ts: int,
    quota_per_unit: float,
) -> List[TokenUsageRow]:
    """Successful usage by one credential, per hour, oldest first."""
    result = await db.execute(
        select(Log.created_at, Log.quota, Log.prompt_tokens, Log.completion_tokens).where(
            Log.token_id == token_id,
            Log.created_at >= start_ts,
            Log.created_at <= end_ts,
            Log.type == LOG_TYPE_CONSUME,
        )
    )

    hours: Dict[int, Dict[str, int]] = {}
    for row in result.all():
        bucket = hours.setdefault(hour_start(row.created_at), {"quota": 0, "requests": 0, "tokens": 0})
        bucket["quota"] += row.quota or 0
        bucket["requests"] += 1
        bucket["tokens"] += (row.prompt_tokens or 0) + (row.completion_tokens or 0)

    return [
        TokenUsageRow(
            hour=hour,
            quota=data["quota"],
            cost=data["quota"] / quota_per_unit,
            requests=data["requests"],
            tokens=data["tokens"],
        )
        for hour, data in sorted(hours.items())
    ]


# ===== Latency =====

async def latency_analysis(
    source: AsyncSession,
    db: AsyncSession,
    start_ts: int,
    end_ts: int,
    limit: int = SLOW_REQUEST_LIMIT,
) -> LatencyAnalysis:
    """Slowest successful requests from the gateway plus the hourly latency trend from the aggregates."""
    slow = await source.execute(
        select(Log)
        .where(
            Log.created_at >= start_ts,
            Log.created_at <= end_ts,
            Log.type == LOG_TYPE_CONSUME,
        )
        .order_by(Log.use_time.desc())
        .limit(limit)
    )

    requests = func.sum(Stat.request_count).label("requests")
    trend = await db.execute(
        select(
            Stat.hour,
            requests,
            func.sum(Stat.tokens).label("tokens"),
            func.sum(Stat.avg_latency * Stat.request_count).label("latency_weighted"),
        )
        .where(Stat.hour >= start_ts, Stat.hour <= end_ts)
        .group_by(Stat.hour)
        .order_by(Stat.hour.asc())
    )

    return LatencyAnalysis(
        slow_requests=[
            SlowRequest(
                id=log.id,
                use_time=log.use_time or 0,
                model_name=log.model_name,
                channel_id=log.channel_id,
                created_at=log.created_at,
            )
            for log in slow.scalars().all()
        ],
        latency_trend=[
            LatencyPoint(
                hour=row.hour,
                requests=row.requests or 0,
                tokens=row.tokens or 0,
                avg_latency=round((row.latency_weighted or 0) / row.requests) if row.requests else 0,
            )
            for row in trend.all()
        ],
    )

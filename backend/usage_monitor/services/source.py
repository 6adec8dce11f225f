"""Read access to the gateway's store."""

from typing import List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.gateway import (
    Log,
    Channel,
    Token,
    LOG_TYPE_CONSUME,
    LOG_TYPE_ERROR,
    CHANNEL_STATUS_MANUALLY_DISABLED,
    CHANNEL_STATUS_AUTO_DISABLED,
    TOKEN_STATUS_ENABLED,
)

SYNCED_LOG_TYPES = (LOG_TYPE_CONSUME, LOG_TYPE_ERROR)
DISABLED_CHANNEL_STATUSES = (CHANNEL_STATUS_MANUALLY_DISABLED, CHANNEL_STATUS_AUTO_DISABLED)


async def fetch_logs_after(db: AsyncSession, last_id: int, limit: int) -> List[Log]:
    """Success and error logs with id > last_id, oldest first."""
    result = await db.execute(
        select(Log)
        .where(Log.id > last_id, Log.type.in_(SYNCED_LOG_TYPES))
        .order_by(Log.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_channels(db: AsyncSession) -> List[Channel]:
    """All gateway channels."""
    result = await db.execute(select(Channel).order_by(Channel.id.asc()))
    return list(result.scalars().all())


async def list_disabled_channels(db: AsyncSession) -> List[Channel]:
    """Channels switched off by an operator or by the gateway itself."""
    result = await db.execute(
        select(Channel)
        .where(Channel.status.in_(DISABLED_CHANNEL_STATUSES))
        .order_by(Channel.id.asc())
    )
    return list(result.scalars().all())


async def list_low_quota_tokens(db: AsyncSession, threshold: float) -> List[Token]:
    """Enabled, limited credentials whose remaining quota is below threshold."""
    result = await db.execute(
        select(Token)
        .where(
            Token.status == TOKEN_STATUS_ENABLED,
            Token.unlimited_quota == False,  # noqa: E712
            Token.remain_quota < threshold,
        )
        .order_by(Token.remain_quota.asc())
    )
    return list(result.scalars().all())


async def list_tokens(db: AsyncSession) -> List[Token]:
    """All gateway credentials."""
    result = await db.execute(select(Token).order_by(Token.id.asc()))
    return list(result.scalars().all())

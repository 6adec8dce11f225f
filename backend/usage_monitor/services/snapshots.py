"""Periodic capture of gateway channel health into the aggregate store."""

import logging
import time
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from ..models.stats import ChannelSnapshot
from .source import list_channels

logger = logging.getLogger(__name__)


async def snapshot_channels(
    source_sessions: async_sessionmaker,
    aggregate_sessions: async_sessionmaker,
    now: Optional[float] = None,
) -> int:
    """Append one snapshot row per gateway channel. Returns the number written."""
    snapshot_time = int(now if now is not None else time.time())

    async with source_sessions() as source:
        channels = await list_channels(source)

    if not channels:
        return 0

    async with aggregate_sessions() as db:
        async with db.begin():
            db.add_all([
                ChannelSnapshot(
                    channel_id=channel.id,
                    status=channel.status,
                    response_time=channel.response_time,
                    balance=channel.balance,
                    snapshot_time=snapshot_time,
                )
                for channel in channels
            ])

    logger.info(f"Saved snapshots for {len(channels)} channels")
    return len(channels)

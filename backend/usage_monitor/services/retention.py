"""Deletes aggregate rows that fell out of the retention window."""

import logging
import time
from typing import Dict, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..models.alert import AlertHistory
from ..models.stats import Stat, ChannelSnapshot

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30


async def clean_old_data(
    aggregate_sessions: async_sessionmaker,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    now: Optional[float] = None,
) -> Dict[str, int]:
    """Delete stats, snapshots and alert history older than the window. Returns rows deleted per table."""
    cutoff = int(now if now is not None else time.time()) - retention_days * 86400

    async with aggregate_sessions() as db:
        async with db.begin():
            stats = await db.execute(delete(Stat).where(Stat.hour < cutoff))
            snapshots = await db.execute(delete(ChannelSnapshot).where(ChannelSnapshot.snapshot_time < cutoff))
            history = await db.execute(delete(AlertHistory).where(AlertHistory.triggered_at < cutoff))

    deleted = {
        "stats": stats.rowcount,
        "channel_snapshots": snapshots.rowcount,
        "alert_history": history.rowcount,
    }
    logger.info(f"Retention cleanup (older than {retention_days} days): {deleted}")
    return deleted

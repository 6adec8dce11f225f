"""
Incremental sync of gateway logs into hourly aggregate buckets.

Each cycle reads the watermark, pulls the next batch of success/error logs
past it, folds them into (channel, model, hour) buckets and commits the
bucket upserts together with the new watermark in one transaction. A failed
cycle leaves both untouched, so the next cycle retries the same range.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, Tuple

from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.gateway import Log, LOG_TYPE_ERROR
from ..models.stats import Stat
from .cursor import get_last_synced_id, set_last_synced_id
from .source import fetch_logs_after

logger = logging.getLogger(__name__)

HOUR_SECONDS = 3600
DEFAULT_BATCH_SIZE = 1000

BucketKey = Tuple[int, str, int]


@dataclass
class BucketDelta:
    """One batch's contribution to a bucket."""
    tokens: int = 0
    request_count: int = 0
    quota: int = 0
    error_count: int = 0
    latency_sum: float = 0.0

    @property
    def avg_latency(self) -> float:
        if not self.request_count:
            return 0.0
        return self.latency_sum / self.request_count


def hour_start(created_at: int) -> int:
    """Floor a unix timestamp to the start of its hour."""
    return (int(created_at) // HOUR_SECONDS) * HOUR_SECONDS


def merge_average(old_avg: float, old_count: int, new_avg: float, new_count: int) -> float:
    """Request-weighted merge of two means. Mirrors the SQL used in ``upsert_buckets``."""
    total = old_count + new_count
    if total == 0:
        return 0.0
    return (old_avg * old_count + new_avg * new_count) / total


def aggregate_logs(logs: Iterable[Log]) -> Dict[BucketKey, BucketDelta]:
    """Fold a batch of logs into per-bucket deltas."""
    buckets: Dict[BucketKey, BucketDelta] = defaultdict(BucketDelta)

    for log in logs:
        key = (log.channel_id or 0, log.model_name or "", hour_start(log.created_at))
        delta = buckets[key]
        # Error logs usually carry zero tokens but still count as requests
        delta.tokens += (log.prompt_tokens or 0) + (log.completion_tokens or 0)
        delta.request_count += 1
        delta.quota += log.quota or 0
        delta.latency_sum += log.use_time or 0
        if log.type == LOG_TYPE_ERROR:
            delta.error_count += 1

    return dict(buckets)


async def upsert_buckets(db: AsyncSession, buckets: Dict[BucketKey, BucketDelta]) -> None:
    """
    Add deltas into the stats table.
    Sums are added in place; avg_latency is merged as a request-weighted mean
    because per-request latencies are not retained.
    """
    for (channel_id, model_name, hour), delta in buckets.items():
        stmt = sqlite_insert(Stat).values(
            channel_id=channel_id,
            model_name=model_name,
            hour=hour,
            tokens=delta.tokens,
            request_count=delta.request_count,
            quota=delta.quota,
            error_count=delta.error_count,
            avg_latency=delta.avg_latency,
        )
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=[Stat.channel_id, Stat.model_name, Stat.hour],
            set_={
                "tokens": Stat.tokens + excluded.tokens,
                "request_count": Stat.request_count + excluded.request_count,
                "quota": Stat.quota + excluded.quota,
                "error_count": Stat.error_count + excluded.error_count,
                "avg_latency": (
                    Stat.avg_latency * Stat.request_count + excluded.avg_latency * excluded.request_count
                ) / (Stat.request_count + excluded.request_count),
            },
        )
        await db.execute(stmt)


class SyncEngine:
    """
    Pulls new gateway logs past the watermark and rolls them into hourly buckets.
    One ``sync()`` call processes at most one batch.
    """

    def __init__(
        self,
        source_sessions: async_sessionmaker,
        aggregate_sessions: async_sessionmaker,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.source_sessions = source_sessions
        self.aggregate_sessions = aggregate_sessions
        self.batch_size = batch_size

    async def sync(self) -> int:
        """Run one cycle. Returns the number of logs folded in (0 on no-op or failure)."""
        try:
            async with self.aggregate_sessions() as db:
                last_id = await get_last_synced_id(db)

            async with self.source_sessions() as source:
                logs = await fetch_logs_after(source, last_id, self.batch_size)

            if not logs:
                return 0

            logger.info(f"Fetched {len(logs)} new logs after id {last_id}. Processing...")

            buckets = aggregate_logs(logs)
            new_last_id = logs[-1].id

            # Buckets and watermark commit together or not at all
            async with self.aggregate_sessions() as db:
                async with db.begin():
                    await upsert_buckets(db, buckets)
                    await set_last_synced_id(db, new_last_id)

        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Sync cycle aborted, cursor unchanged: {e}")
            return 0

        logger.info(f"Synced {len(logs)} logs into {len(buckets)} buckets, cursor now {new_last_id}")
        return len(logs)

"""
Per-model health computed from raw gateway logs.

A window (1h, 6h, 12h or 24h) is split into fixed slots. Each slot reports
its success rate and a green/yellow/red status, as does the window overall.
Results are cached briefly so dashboards polling every few seconds do not
rescan the logs table.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..models.gateway import Log, LOG_TYPE_CONSUME
from ..schemas.model_status import (
    ActiveModel,
    ModelStatus,
    ModelStatusOverview,
    ModelStatusSummary,
    StatusSlot,
)
from .source import SYNCED_LOG_TYPES

logger = logging.getLogger(__name__)

STATUS_GREEN = "green"
STATUS_YELLOW = "yellow"
STATUS_RED = "red"

# Success rate (%) at or above which a model is healthy / only degraded
HEALTHY_RATE = 95.0
DEGRADED_RATE = 80.0

STATUS_CACHE_TTL = 30
MODELS_CACHE_TTL = 300
ACTIVE_MODELS_LOOKBACK = 86400
OVERVIEW_MODEL_LIMIT = 20


@dataclass(frozen=True)
class SlotLayout:
    """How a status window is divided."""
    total_seconds: int
    num_slots: int

    @property
    def slot_seconds(self) -> int:
        return self.total_seconds // self.num_slots


TIME_WINDOWS: Dict[str, SlotLayout] = {
    "1h": SlotLayout(total_seconds=3600, num_slots=12),     # 5 minute slots
    "6h": SlotLayout(total_seconds=21600, num_slots=24),    # 15 minute slots
    "12h": SlotLayout(total_seconds=43200, num_slots=24),   # 30 minute slots
    "24h": SlotLayout(total_seconds=86400, num_slots=24),   # 1 hour slots
}
DEFAULT_WINDOW = "24h"


def status_color(success_rate: float, total_requests: int) -> str:
    """Traffic-light status. No traffic counts as healthy."""
    if total_requests == 0 or success_rate >= HEALTHY_RATE:
        return STATUS_GREEN
    if success_rate >= DEGRADED_RATE:
        return STATUS_YELLOW
    return STATUS_RED


def success_rate(success_count: int, total_requests: int) -> float:
    if not total_requests:
        return 100.0
    return round(success_count / total_requests * 100, 2)


def bucket_slots(events: Iterable[Tuple[int, int]], window_start: int, layout: SlotLayout) -> List[StatusSlot]:
    """Spread (created_at, log type) pairs over the window's slots. Events outside the window are dropped."""
    totals = [0] * layout.num_slots
    successes = [0] * layout.num_slots

    for created_at, log_type in events:
        index = (int(created_at) - window_start) // layout.slot_seconds
        if 0 <= index < layout.num_slots:
            totals[index] += 1
            if log_type == LOG_TYPE_CONSUME:
                successes[index] += 1

    slots = []
    for index in range(layout.num_slots):
        start = window_start + index * layout.slot_seconds
        rate = success_rate(successes[index], totals[index])
        slots.append(StatusSlot(
            slot=index,
            start_time=start,
            end_time=start + layout.slot_seconds,
            total_requests=totals[index],
            success_count=successes[index],
            success_rate=rate,
            status=status_color(rate, totals[index]),
        ))
    return slots


class ModelStatusService:
    """Sliding-window success rates per model, with a short-lived in-memory cache."""

    def __init__(
        self,
        source_sessions: async_sessionmaker,
        cache_ttl: float = STATUS_CACHE_TTL,
        models_cache_ttl: float = MODELS_CACHE_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.source_sessions = source_sessions
        self.cache_ttl = cache_ttl
        self.models_cache_ttl = models_cache_ttl
        self.clock = clock
        self._cache: Dict[str, Tuple[float, Any]] = {}

    def _cached(self, key: str, ttl: float) -> Optional[Any]:
        entry = self._cache.get(key)
        if entry and self.clock() - entry[0] < ttl:
            return entry[1]
        return None

    def _store(self, key: str, value: Any) -> Any:
        self._cache[key] = (self.clock(), value)
        return value

    def clear_cache(self) -> None:
        self._cache.clear()

    async def available_models(self) -> List[ActiveModel]:
        """Models with traffic in the last day, busiest first."""
        cached = self._cached("available_models", self.models_cache_ttl)
        if cached is not None:
            return cached

        since = int(self.clock()) - ACTIVE_MODELS_LOOKBACK
        requests = func.count(Log.id).label("requests")
        stmt = (
            select(Log.model_name, requests)
            .where(
                Log.created_at >= since,
                Log.type.in_(SYNCED_LOG_TYPES),
                Log.model_name != "",
            )
            .group_by(Log.model_name)
            .order_by(requests.desc())
        )
        async with self.source_sessions() as db:
            rows = (await db.execute(stmt)).all()

        models = [ActiveModel(model_name=row.model_name, request_count_24h=row.requests) for row in rows]
        return self._store("available_models", models)

    async def model_status(self, model_name: str, window: str = DEFAULT_WINDOW) -> ModelStatus:
        """Success rate of one model over a window. Unknown windows fall back to 24h."""
        if window not in TIME_WINDOWS:
            window = DEFAULT_WINDOW
        layout = TIME_WINDOWS[window]

        key = f"model_status:{model_name}:{window}"
        cached = self._cached(key, self.cache_ttl)
        if cached is not None:
            return cached

        now = int(self.clock())
        window_start = now - layout.total_seconds
        async with self.source_sessions() as db:
            rows = (await db.execute(
                select(Log.created_at, Log.type).where(
                    Log.model_name == model_name,
                    Log.created_at >= window_start,
                    Log.created_at < now,
                    Log.type.in_(SYNCED_LOG_TYPES),
                )
            )).all()

        slots = bucket_slots(((row.created_at, row.type) for row in rows), window_start, layout)
        total = sum(slot.total_requests for slot in slots)
        success = sum(slot.success_count for slot in slots)
        rate = success_rate(success, total)

        status = ModelStatus(
            model_name=model_name,
            display_name=model_name,
            time_window=window,
            total_requests=total,
            success_count=success,
            success_rate=rate,
            current_status=status_color(rate, total),
            slot_data=slots,
        )
        return self._store(key, status)

    async def overview(self, window: str = DEFAULT_WINDOW, limit: int = OVERVIEW_MODEL_LIMIT) -> ModelStatusOverview:
        """Status of the busiest models."""
        models = (await self.available_models())[:limit]
        statuses = [await self.model_status(m.model_name, window) for m in models]

        summary = ModelStatusSummary(total=len(statuses))
        for status in statuses:
            if status.current_status == STATUS_GREEN:
                summary.healthy += 1
            elif status.current_status == STATUS_YELLOW:
                summary.warning += 1
            else:
                summary.critical += 1

        logger.debug(f"Model status overview ({window}): {summary}")

        return ModelStatusOverview(
            models=statuses,
            summary=summary,
            time_window=window if window in TIME_WINDOWS else DEFAULT_WINDOW,
            generated_at=int(self.clock()),
        )

"""Wall-clock and period arithmetic for alert evaluation."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

DAY_SECONDS = 86400
DEFAULT_CUSTOM_LOOKBACK = 24 * 3600


@dataclass(frozen=True)
class Window:
    """Closed time range in epoch seconds, with a human-readable label."""
    start: int
    end: int
    label: str

    @property
    def length(self) -> int:
        return self.end - self.start


def wall_clock(now: float, utc_offset_hours: Optional[float] = None) -> datetime:
    """
    Wall-clock time for ``now``.
    A configured offset pins the clock to that fixed zone; otherwise server local time.
    """
    if utc_offset_hours is None:
        return datetime.fromtimestamp(now)
    return datetime.fromtimestamp(now, timezone(timedelta(hours=utc_offset_hours)))


def parse_hhmm(value: str) -> int:
    """'HH:MM' -> minutes since midnight."""
    hours, minutes = value.strip().split(":")
    return int(hours) * 60 + int(minutes)


def in_active_window(
    now: float,
    start_time: Optional[str],
    end_time: Optional[str],
    utc_offset_hours: Optional[float] = None,
) -> bool:
    """
    True when the wall clock is inside [start_time, end_time], bounds inclusive.
    No window configured means always active.

    A window whose start is after its end (e.g. 22:00-06:00) never matches.
    """
    if not start_time or not end_time:
        return True

    start = parse_hhmm(start_time)
    end = parse_hhmm(end_time)
    if start > end:
        logger.warning(f"Active window {start_time}-{end_time} crosses midnight and never matches")

    clock = wall_clock(now, utc_offset_hours)
    current = clock.hour * 60 + clock.minute
    return start <= current <= end


def start_of_day(now: float, utc_offset_hours: Optional[float] = None) -> int:
    """Epoch seconds of the most recent wall-clock midnight."""
    clock = wall_clock(now, utc_offset_hours)
    midnight = clock.replace(hour=0, minute=0, second=0, microsecond=0)
    return int(midnight.timestamp())


def resolve_period(
    period,
    now: float,
    custom_range: Tuple[Optional[int], Optional[int]] = (None, None),
    utc_offset_hours: Optional[float] = None,
) -> Window:
    """
    Turn a rule period into a concrete window ending now (or at the custom end).

    - number of hours h: [now - h*3600, now]
    - "daily" / "today": [wall-clock midnight, now]
    - "custom": explicit bounds, defaulting to the last 24 hours
    """
    now_ts = int(now)

    if period == "custom":
        custom_start, custom_end = custom_range
        start = custom_start or now_ts - DEFAULT_CUSTOM_LOOKBACK
        end = custom_end or now_ts
        label = (
            f"Custom: {wall_clock(start, utc_offset_hours):%Y-%m-%d %H:%M} → "
            f"{wall_clock(end, utc_offset_hours):%Y-%m-%d %H:%M}"
        )
        return Window(start=start, end=end, label=label)

    if period in ("daily", "today"):
        return Window(start=start_of_day(now, utc_offset_hours), end=now_ts, label="Current day (00:00 - now)")

    hours = float(period)
    return Window(start=int(now_ts - hours * 3600), end=now_ts, label=f"Last {hours:g} hours")

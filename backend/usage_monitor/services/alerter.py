"""
Alert evaluation engine.

Every enabled rule is evaluated independently: active-window gate, period
resolution, metric computation, threshold check, cooldown, optional circuit
breaker action, notification and trigger bookkeeping. A failure in one rule
is logged and never stops the others.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..models.alert import Alert, AlertHistory, epoch_seconds
from ..models.stats import Stat
from ..schemas.alert import AlertType, TargetType, InvalidRuleError, AlertTypeInfo, parse_rule
from .breaker import CircuitBreaker
from .notifier import TelegramNotifier, escape_markdown
from .source import list_disabled_channels, list_low_quota_tokens
from .windows import Window, in_active_window, resolve_period

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 3600

# action_taken values recorded in alert_history
ACTION_NOTIFY = "notify"
ACTION_DISABLED = "disabled"
ACTION_DISABLE_FAILED = "disable_failed"
ACTION_DISABLE_SKIPPED = "disable_skipped"

ALERT_TYPES: List[AlertTypeInfo] = [
    AlertTypeInfo(
        type=AlertType.TOKEN_USAGE, name="Token usage", unit="tokens",
        description="Total prompt + completion tokens in the period exceeds the threshold",
        target_types=[TargetType.CHANNEL, TargetType.MODEL, TargetType.GLOBAL],
    ),
    AlertTypeInfo(
        type=AlertType.ERROR_RATE, name="Error rate", unit="%",
        description="Failed requests as a percentage of all requests exceeds the threshold",
        target_types=[TargetType.CHANNEL, TargetType.MODEL, TargetType.GLOBAL],
    ),
    AlertTypeInfo(
        type=AlertType.LATENCY, name="Latency", unit="ms",
        description="Request-weighted average latency exceeds the threshold",
        target_types=[TargetType.CHANNEL, TargetType.MODEL, TargetType.GLOBAL],
    ),
    AlertTypeInfo(
        type=AlertType.CHANNEL_DOWN, name="Channel down", unit="channels",
        description="One or more channels are disabled (manually or automatically)",
        target_types=[TargetType.CHANNEL, TargetType.GLOBAL],
    ),
    AlertTypeInfo(
        type=AlertType.QUOTA_LOW, name="Quota low", unit="tokens",
        description="One or more limited API tokens have less remaining quota than the threshold",
        target_types=[TargetType.GLOBAL],
    ),
    AlertTypeInfo(
        type=AlertType.REQUEST_SPIKE, name="Request spike", unit="%",
        description="Request count grew by more than the threshold percent versus the previous period",
        target_types=[TargetType.CHANNEL, TargetType.MODEL, TargetType.GLOBAL],
    ),
]

_TITLES = {
    AlertType.TOKEN_USAGE.value: "🚨 Token Alert Triggered",
    AlertType.ERROR_RATE.value: "🚨 Error Rate Alert Triggered",
    AlertType.LATENCY.value: "🐢 Latency Alert Triggered",
    AlertType.CHANNEL_DOWN.value: "🔌 Channel Down Alert Triggered",
    AlertType.QUOTA_LOW.value: "💸 Quota Low Alert Triggered",
    AlertType.REQUEST_SPIKE.value: "📈 Request Spike Alert Triggered",
}


@dataclass
class Metric:
    """
    Outcome of a metric computation.
    ``compare_to`` is what ``value`` must strictly exceed to trigger: the rule
    threshold for numeric metrics, zero for the count-based live lookups.
    """
    value: float
    detail: str
    compare_to: float
    targets: List[str] = field(default_factory=list)

    @property
    def breached(self) -> bool:
        return self.value > self.compare_to


def format_value(alert_type: str, value: float) -> str:
    if alert_type == AlertType.TOKEN_USAGE.value:
        return f"{value:,.0f} tokens"
    if alert_type == AlertType.ERROR_RATE.value:
        return f"{value:.2f}%"
    if alert_type == AlertType.LATENCY.value:
        return f"{value:,.0f} ms"
    if alert_type == AlertType.CHANNEL_DOWN.value:
        return f"{value:.0f} channels"
    if alert_type == AlertType.QUOTA_LOW.value:
        return f"{value:,.0f} quota"
    return f"{value:+.1f}%"


def describe_target(rule) -> str:
    if rule.target_type == TargetType.CHANNEL:
        return f"Channel {rule.target}"
    if rule.target_type == TargetType.MODEL:
        return f"Model {rule.target}"
    return "All traffic"


def format_message(alert: Alert, rule, metric: Metric, window: Window, action_note: str = "") -> str:
    """Markdown body for a triggered alert. Every interpolated value is escaped."""
    threshold = "n/a" if rule.alert_type == AlertType.CHANNEL_DOWN.value else format_value(rule.alert_type, rule.threshold)
    if rule.alert_type == AlertType.REQUEST_SPIKE.value:
        threshold = f"{rule.threshold:g}%"

    fields = [
        ("Name", alert.name),
        ("Type", rule.alert_type),
        ("Target", describe_target(rule)),
        ("Current", format_value(rule.alert_type, metric.value)),
        ("Threshold", threshold),
        ("Period", window.label),
        ("Details", metric.detail),
    ]
    lines = [f"*{label}:* {escape_markdown(value)}" for label, value in fields]
    return "\n".join(lines) + action_note


class AlertEngine:
    """Evaluates enabled alert rules against the aggregates and live gateway state."""

    def __init__(
        self,
        aggregate_sessions: async_sessionmaker,
        source_sessions: async_sessionmaker,
        breaker: CircuitBreaker,
        notifier: TelegramNotifier,
        cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS,
        utc_offset_hours: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.aggregate_sessions = aggregate_sessions
        self.source_sessions = source_sessions
        self.breaker = breaker
        self.notifier = notifier
        self.cooldown_seconds = cooldown_seconds
        self.utc_offset_hours = utc_offset_hours
        self.clock = clock

        self._evaluators = {
            AlertType.TOKEN_USAGE.value: self._token_usage,
            AlertType.ERROR_RATE.value: self._error_rate,
            AlertType.LATENCY.value: self._latency,
            AlertType.CHANNEL_DOWN.value: self._channel_down,
            AlertType.QUOTA_LOW.value: self._quota_low,
            AlertType.REQUEST_SPIKE.value: self._request_spike,
        }

    async def check_alerts(self) -> List[AlertHistory]:
        """Evaluate every enabled alert once. Returns the firings recorded this cycle."""
        now = self.clock()

        try:
            alerts = await self._load_enabled_alerts()
        except SQLAlchemyError as e:
            logger.error(f"[ALERT CHECK] Could not load alerts: {e}")
            return []

        logger.info(f"[ALERT CHECK] Found {len(alerts)} enabled alerts")

        fired = []
        for alert in alerts:
            try:
                firing = await self.evaluate_alert(alert, now)
            except InvalidRuleError as e:
                logger.error(f"[ALERT CHECK] Invalid rule for alert {alert.id} ({alert.name}), skipped: {e}")
                continue
            except Exception as e:
                logger.exception(f"[ALERT CHECK] Alert {alert.id} ({alert.name}) failed: {e}")
                continue
            if firing is not None:
                fired.append(firing)

        return fired

    async def evaluate_alert(self, alert: Alert, now: float) -> Optional[AlertHistory]:
        """Evaluate one alert; returns the firing record if it fired."""
        rule = parse_rule(alert.rule_json)

        if not in_active_window(now, alert.start_time, alert.end_time, self.utc_offset_hours):
            logger.info(f"[ALERT CHECK] {alert.name}: outside active window {alert.start_time}-{alert.end_time}, skipped")
            return None

        window = resolve_period(
            rule.period,
            now,
            (rule.custom_start_ts, rule.custom_end_ts),
            self.utc_offset_hours,
        )

        metric = await self._evaluators[rule.alert_type](rule, window)
        logger.info(
            f"[ALERT CHECK] {alert.name}: {rule.alert_type} = {metric.value:.4g} "
            f"(trigger above {metric.compare_to:g}, {window.label})"
        )

        if not metric.breached:
            return None

        last_triggered = epoch_seconds(alert.last_triggered)
        if now - last_triggered <= self.cooldown_seconds:
            logger.info(f"[ALERT] {alert.name} in cooldown, last triggered at {last_triggered}")
            return None

        action_taken, action_note = await self._run_action(alert, rule)
        message = format_message(alert, rule, metric, window, action_note)

        logger.info(f"[ALERT] {alert.name} triggered! {rule.alert_type} {metric.value:.4g} > {metric.compare_to:g}")

        if alert.notify_telegram:
            await self.notifier.notify(_TITLES[rule.alert_type], message)

        return await self._record_firing(alert, rule, metric, message, action_taken, now)

    # ===== Rule plumbing =====

    async def _load_enabled_alerts(self) -> List[Alert]:
        async with self.aggregate_sessions() as db:
            result = await db.execute(
                select(Alert).where(Alert.enabled == True).order_by(Alert.id.asc())  # noqa: E712
            )
            return list(result.scalars().all())

    async def _run_action(self, alert: Alert, rule) -> Tuple[str, str]:
        """Run the configured trigger action. Returns (action_taken, message suffix)."""
        if alert.trigger_action != "disable":
            return ACTION_NOTIFY, ""

        if rule.target_type != TargetType.CHANNEL:
            logger.warning(
                f"[CIRCUIT BREAKER] Skipped disable action for {alert.name}: "
                f"target type is '{rule.target_type.value}' (must be 'channel'), target {rule.target}"
            )
            return ACTION_DISABLE_SKIPPED, ""

        if await self.breaker.disable(rule.channel_id):
            return ACTION_DISABLED, "\n\n⚡ *CIRCUIT BREAKER ACTIVATED* ⚡\nChannel has been automatically DISABLED."
        return ACTION_DISABLE_FAILED, "\n\n⚠️ *CIRCUIT BREAKER FAILED* ⚠️\nFailed to disable channel. Check logs."

    async def _record_firing(
        self,
        alert: Alert,
        rule,
        metric: Metric,
        message: str,
        action_taken: str,
        now: float,
    ) -> AlertHistory:
        triggered_at = int(now)
        entry = AlertHistory(
            alert_id=alert.id,
            alert_name=alert.name,
            triggered_at=triggered_at,
            value=metric.value,
            threshold=rule.threshold,
            message=message,
            action_taken=action_taken,
        )

        async with self.aggregate_sessions() as db:
            async with db.begin():
                await db.execute(
                    update(Alert)
                    .where(Alert.id == alert.id)
                    .values(
                        last_triggered=triggered_at,
                        last_value=metric.value,
                        trigger_count=func.coalesce(Alert.trigger_count, 0) + 1,
                    )
                )
                db.add(entry)

        alert.last_triggered = triggered_at
        return entry

    # ===== Metrics over the hourly aggregates =====

    @staticmethod
    def _scoped(stmt, rule, start: int, end: int, end_inclusive: bool = True):
        stmt = stmt.where(Stat.hour >= start)
        stmt = stmt.where(Stat.hour <= end if end_inclusive else Stat.hour < end)
        if rule.target_type == TargetType.CHANNEL:
            stmt = stmt.where(Stat.channel_id == rule.channel_id)
        elif rule.target_type == TargetType.MODEL:
            stmt = stmt.where(Stat.model_name == rule.target)
        return stmt

    async def _token_usage(self, rule, window: Window) -> Metric:
        stmt = self._scoped(select(func.coalesce(func.sum(Stat.tokens), 0)), rule, window.start, window.end)
        async with self.aggregate_sessions() as db:
            total = (await db.execute(stmt)).scalar() or 0
        return Metric(value=float(total), detail=f"{total:,} tokens used", compare_to=rule.threshold)

    async def _error_rate(self, rule, window: Window) -> Metric:
        stmt = self._scoped(
            select(
                func.coalesce(func.sum(Stat.error_count), 0),
                func.coalesce(func.sum(Stat.request_count), 0),
            ),
            rule, window.start, window.end,
        )
        async with self.aggregate_sessions() as db:
            errors, requests = (await db.execute(stmt)).one()
        rate = errors / requests * 100 if requests else 0.0
        return Metric(value=rate, detail=f"{errors} errors / {requests} requests", compare_to=rule.threshold)

    async def _latency(self, rule, window: Window) -> Metric:
        stmt = self._scoped(
            select(
                func.coalesce(func.sum(Stat.avg_latency * Stat.request_count), 0),
                func.coalesce(func.sum(Stat.request_count), 0),
            ).where(Stat.request_count > 0),
            rule, window.start, window.end,
        )
        async with self.aggregate_sessions() as db:
            weighted, requests = (await db.execute(stmt)).one()
        avg = weighted / requests if requests else 0.0
        return Metric(value=avg, detail=f"avg over {requests} requests", compare_to=rule.threshold)

    async def _request_spike(self, rule, window: Window) -> Metric:
        length = window.length
        current_stmt = self._scoped(
            select(func.coalesce(func.sum(Stat.request_count), 0)), rule, window.start, window.end,
        )
        previous_stmt = self._scoped(
            select(func.coalesce(func.sum(Stat.request_count), 0)),
            rule, window.start - length, window.start, end_inclusive=False,
        )
        async with self.aggregate_sessions() as db:
            current = (await db.execute(current_stmt)).scalar() or 0
            previous = (await db.execute(previous_stmt)).scalar() or 0

        # An empty previous window counts as 1 request so a cold start reads as a large spike
        baseline = previous or 1
        change = (current - previous) / baseline * 100
        return Metric(
            value=change,
            detail=f"{current} requests vs {previous} in the previous period",
            compare_to=rule.threshold,
        )

    # ===== Metrics over live gateway state =====

    async def _channel_down(self, rule, window: Window) -> Metric:
        async with self.source_sessions() as source:
            channels = await list_disabled_channels(source)
        if rule.target_type == TargetType.CHANNEL:
            channels = [c for c in channels if c.id == rule.channel_id]
        names = [c.name or f"Channel {c.id}" for c in channels]
        return Metric(
            value=float(len(channels)),
            detail=", ".join(names) if names else "none",
            compare_to=0,
            targets=names,
        )

    async def _quota_low(self, rule, window: Window) -> Metric:
        async with self.source_sessions() as source:
            tokens = await list_low_quota_tokens(source, rule.threshold)
        names = [f"{t.name or t.id} ({t.remain_quota:,})" for t in tokens]
        return Metric(
            value=float(len(tokens)),
            detail=", ".join(names) if names else "none",
            compare_to=0,
            targets=names,
        )

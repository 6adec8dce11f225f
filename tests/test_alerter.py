"""Tests for alert evaluation, cooldown and the circuit breaker action."""

import json
import math
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from sqlalchemy import select

from usage_monitor.models import (
    Alert,
    AlertHistory,
    Channel,
    Token,
    CHANNEL_STATUS_ENABLED,
    CHANNEL_STATUS_MANUALLY_DISABLED,
    CHANNEL_STATUS_AUTO_DISABLED,
    epoch_seconds,
)
from usage_monitor.schemas.alert import AlertType
from usage_monitor.services.alerter import (
    ACTION_DISABLED,
    ACTION_DISABLE_FAILED,
    ACTION_DISABLE_SKIPPED,
    ACTION_NOTIFY,
    AlertEngine,
)
from usage_monitor.services.breaker import CircuitBreaker
from usage_monitor.services.notifier import TelegramNotifier
from tests.factories import NOW, HOUR, make_stat, seed


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def make_alert(rule, name="test alert", **kwargs):
    values = dict(
        name=name,
        rule_json=rule if isinstance(rule, str) else json.dumps(rule),
        enabled=True,
        start_time="00:00",
        end_time="23:59",
        notify_telegram=True,
        trigger_action="notify",
        last_triggered=0,
        trigger_count=0,
        created_at=NOW - 86400,
    )
    values.update(kwargs)
    return Alert(**values)


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def breaker():
    breaker = MagicMock(spec=CircuitBreaker)
    breaker.disable = AsyncMock(return_value=True)
    return breaker


@pytest.fixture
def notifier():
    notifier = MagicMock(spec=TelegramNotifier)
    notifier.notify = AsyncMock(return_value=True)
    return notifier


@pytest.fixture
def engine(aggregate_sessions, source_sessions, breaker, notifier, clock):
    return AlertEngine(
        aggregate_sessions,
        source_sessions,
        breaker=breaker,
        notifier=notifier,
        utc_offset_hours=0,
        clock=clock,
    )


async def _history(sessions):
    async with sessions() as db:
        result = await db.execute(select(AlertHistory).order_by(AlertHistory.id))
        return list(result.scalars().all())


async def _alert(sessions, alert_id):
    async with sessions() as db:
        return await db.get(Alert, alert_id)


class TestMetrics:

    @pytest.mark.asyncio
    async def test_token_usage_scoped_to_model(self, engine, aggregate_sessions):
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, model_name="gpt-4o", tokens=900),
            make_stat(NOW - HOUR, model_name="claude-3", tokens=5000),
            make_stat(NOW - 30 * HOUR, model_name="gpt-4o", tokens=5000),
            make_alert({"type": "model", "target": "gpt-4o", "threshold": 800, "period": 24}),
        ])

        [firing] = await engine.check_alerts()

        assert firing.value == 900
        assert firing.threshold == 800
        assert firing.action_taken == ACTION_NOTIFY

    @pytest.mark.asyncio
    async def test_error_rate(self, engine, aggregate_sessions):
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, request_count=100, error_count=5),
            make_alert({"alertType": "error_rate", "threshold": 4.9, "period": 24}),
        ])

        [firing] = await engine.check_alerts()

        assert firing.value == pytest.approx(5.0)
        assert "5.00%" in firing.message

    @pytest.mark.asyncio
    async def test_error_rate_without_requests_is_zero(self, engine, aggregate_sessions):
        await seed(aggregate_sessions, [make_alert({"alertType": "error_rate", "threshold": 0})])

        assert await engine.check_alerts() == []

    @pytest.mark.asyncio
    async def test_latency_is_request_weighted(self, engine, aggregate_sessions):
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, channel_id=1, request_count=2, avg_latency=100.0),
            make_stat(NOW - HOUR, channel_id=2, request_count=3, avg_latency=200.0),
            make_stat(NOW - 2 * HOUR, channel_id=3, request_count=0, avg_latency=9999.0),
            make_alert({"alertType": "latency", "threshold": 150, "period": 24}),
        ])

        [firing] = await engine.check_alerts()

        assert firing.value == pytest.approx(160.0)

    @pytest.mark.asyncio
    async def test_request_spike_against_previous_window(self, engine, aggregate_sessions):
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, request_count=300),
            make_stat(NOW - 2 * HOUR, request_count=100),
            make_alert({"alertType": "request_spike", "threshold": 150, "period": 1}),
        ])

        [firing] = await engine.check_alerts()

        assert firing.value == pytest.approx(200.0)

    @pytest.mark.asyncio
    async def test_request_spike_with_empty_previous_window_is_finite(self, engine, aggregate_sessions):
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, request_count=50),
            make_alert({"alertType": "request_spike", "threshold": 100, "period": 1}),
        ])

        [firing] = await engine.check_alerts()

        assert math.isfinite(firing.value)
        assert firing.value == pytest.approx(5000.0)

    @pytest.mark.asyncio
    async def test_channel_down_counts_disabled_channels(self, engine, aggregate_sessions, source_sessions):
        await seed(source_sessions, [
            Channel(id=1, name="primary", status=CHANNEL_STATUS_ENABLED),
            Channel(id=2, name="backup", status=CHANNEL_STATUS_MANUALLY_DISABLED),
            Channel(id=3, name="cheap", status=CHANNEL_STATUS_AUTO_DISABLED),
        ])
        await seed(aggregate_sessions, [make_alert({"alertType": "channel_down"})])

        [firing] = await engine.check_alerts()

        assert firing.value == 2
        assert "backup" in firing.message and "cheap" in firing.message

    @pytest.mark.asyncio
    async def test_channel_down_targeting_healthy_channel(self, engine, aggregate_sessions, source_sessions):
        await seed(source_sessions, [
            Channel(id=1, name="primary", status=CHANNEL_STATUS_ENABLED),
            Channel(id=2, name="backup", status=CHANNEL_STATUS_AUTO_DISABLED),
        ])
        await seed(aggregate_sessions, [
            make_alert({"alertType": "channel_down", "type": "channel", "target": "1"}),
        ])

        assert await engine.check_alerts() == []

    @pytest.mark.asyncio
    async def test_quota_low_counts_limited_enabled_tokens(self, engine, aggregate_sessions, source_sessions):
        await seed(source_sessions, [
            Token(id=1, name="team-a", status=1, remain_quota=100, unlimited_quota=False),
            Token(id=2, name="admin", status=1, remain_quota=100, unlimited_quota=True),
            Token(id=3, name="team-b", status=1, remain_quota=5000, unlimited_quota=False),
            Token(id=4, name="revoked", status=2, remain_quota=50, unlimited_quota=False),
        ])
        await seed(aggregate_sessions, [make_alert({"alertType": "quota_low", "threshold": 1000})])

        [firing] = await engine.check_alerts()

        assert firing.value == 1
        assert "team-a" in firing.message
        assert "admin" not in firing.message

    @pytest.mark.asyncio
    async def test_every_alert_type_has_an_evaluator(self, engine):
        assert set(engine._evaluators) == {t.value for t in AlertType}


class TestGatingAndCooldown:

    @pytest.mark.asyncio
    async def test_below_threshold_does_not_fire(self, engine, aggregate_sessions, notifier):
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, tokens=100),
            make_alert({"threshold": 100}),
        ])

        assert await engine.check_alerts() == []
        notifier.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_outside_active_window_is_skipped(self, engine, aggregate_sessions, clock):
        await seed(aggregate_sessions, [
            make_stat(NOW - 4 * HOUR, tokens=1000),
            make_alert({"threshold": 1}, start_time="09:00", end_time="18:00"),
        ])
        clock.now = NOW - 3 * HOUR - 60  # 08:59 UTC

        assert await engine.check_alerts() == []

        clock.now = NOW - 3 * HOUR  # 09:00 UTC
        assert len(await engine.check_alerts()) == 1

    @pytest.mark.asyncio
    async def test_cooldown_suppresses_repeat_firing(self, engine, aggregate_sessions, clock, notifier):
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, tokens=1000),
            make_alert({"threshold": 1}),
        ])

        assert len(await engine.check_alerts()) == 1

        clock.now = NOW + 30 * 60
        assert await engine.check_alerts() == []

        clock.now = NOW + 61 * 60
        assert len(await engine.check_alerts()) == 1

        assert len(await _history(aggregate_sessions)) == 2
        assert notifier.notify.await_count == 2

    @pytest.mark.asyncio
    async def test_firing_updates_bookkeeping(self, engine, aggregate_sessions):
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, tokens=1234),
            make_alert({"threshold": 1}, trigger_count=4),
        ])

        await engine.check_alerts()

        alert = await _alert(aggregate_sessions, 1)
        assert alert.last_triggered == NOW
        assert alert.last_value == 1234
        assert alert.trigger_count == 5

        [entry] = await _history(aggregate_sessions)
        assert entry.alert_id == 1
        assert entry.alert_name == "test alert"
        assert entry.triggered_at == NOW
        assert "*Name:* test alert" in entry.message

    @pytest.mark.asyncio
    async def test_disabled_alerts_are_not_evaluated(self, engine, aggregate_sessions):
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, tokens=1000),
            make_alert({"threshold": 1}, enabled=False),
        ])

        assert await engine.check_alerts() == []

    @pytest.mark.asyncio
    async def test_malformed_rule_does_not_block_others(self, engine, aggregate_sessions):
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, tokens=1000),
            make_alert("{this is not json", name="broken"),
            make_alert({"alertType": "bogus", "threshold": 1}, name="unknown type"),
            make_alert({"threshold": 1}, name="healthy"),
        ])

        fired = await engine.check_alerts()

        assert [f.alert_name for f in fired] == ["healthy"]

    @pytest.mark.asyncio
    async def test_notification_skipped_when_disabled(self, engine, aggregate_sessions, notifier):
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, tokens=1000),
            make_alert({"threshold": 1}, notify_telegram=False),
        ])

        assert len(await engine.check_alerts()) == 1
        notifier.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unconfigured_notifier_still_records_firing(
        self, aggregate_sessions, source_sessions, breaker, clock
    ):
        engine = AlertEngine(
            aggregate_sessions,
            source_sessions,
            breaker=breaker,
            notifier=TelegramNotifier(),
            utc_offset_hours=0,
            clock=clock,
        )
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, tokens=1000),
            make_alert({"threshold": 1}),
        ])

        assert len(await engine.check_alerts()) == 1
        assert len(await _history(aggregate_sessions)) == 1


class TestDisableAction:

    @pytest.mark.asyncio
    async def test_disables_target_channel(self, engine, aggregate_sessions, breaker, notifier):
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, channel_id=7, request_count=10, error_count=5),
            make_alert(
                {"alertType": "error_rate", "type": "channel", "target": "7", "threshold": 20},
                trigger_action="disable",
            ),
        ])

        [firing] = await engine.check_alerts()

        breaker.disable.assert_awaited_once_with(7)
        assert firing.action_taken == ACTION_DISABLED
        assert "CIRCUIT BREAKER ACTIVATED" in firing.message
        title, body = notifier.notify.await_args.args
        assert "Error Rate" in title
        assert "CIRCUIT BREAKER ACTIVATED" in body

    @pytest.mark.asyncio
    async def test_failed_disable_is_recorded(self, engine, aggregate_sessions, breaker):
        breaker.disable.return_value = False
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, channel_id=7, tokens=1000),
            make_alert(
                {"type": "channel", "target": "7", "threshold": 1},
                trigger_action="disable",
            ),
        ])

        [firing] = await engine.check_alerts()

        assert firing.action_taken == ACTION_DISABLE_FAILED
        assert "CIRCUIT BREAKER FAILED" in firing.message

    @pytest.mark.asyncio
    async def test_disable_skipped_for_non_channel_target(self, engine, aggregate_sessions, breaker):
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, tokens=1000),
            make_alert(
                {"type": "model", "target": "gpt-4o", "threshold": 1},
                trigger_action="disable",
            ),
        ])

        [firing] = await engine.check_alerts()

        breaker.disable.assert_not_awaited()
        assert firing.action_taken == ACTION_DISABLE_SKIPPED


class TestNotificationText:

    @pytest.mark.asyncio
    async def test_message_escapes_markdown_in_values(self, aggregate_sessions, source_sessions, breaker, clock):
        sent = []

        def handler(request):
            sent.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True})

        engine = AlertEngine(
            aggregate_sessions,
            source_sessions,
            breaker=breaker,
            notifier=TelegramNotifier(bot_token="1:x", chat_id="42", transport=httpx.MockTransport(handler)),
            utc_offset_hours=0,
            clock=clock,
        )
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, channel_id=7, request_count=10, error_count=5),
            make_alert(
                {"alertType": "error_rate", "type": "channel", "target": "7", "threshold": 20, "period": 1},
                name="db_errors [prod]",
            ),
        ])

        assert len(await engine.check_alerts()) == 1

        [payload] = sent
        assert payload["parse_mode"] == "Markdown"
        assert payload["text"] == (
            "*🚨 Error Rate Alert Triggered*\n\n"
            "*Name:* db\\_errors \\[prod]\n"
            "*Type:* error\\_rate\n"
            "*Target:* Channel 7\n"
            "*Current:* 50.00%\n"
            "*Threshold:* 20.00%\n"
            "*Period:* Last 1 hours\n"
            "*Details:* 5 errors / 10 requests"
        )

    @pytest.mark.asyncio
    async def test_gateway_names_are_escaped(self, engine, aggregate_sessions, source_sessions, notifier):
        await seed(source_sessions, [Channel(id=2, name="azure_east*", status=CHANNEL_STATUS_AUTO_DISABLED)])
        await seed(aggregate_sessions, [make_alert({"alertType": "channel_down"})])

        await engine.check_alerts()

        _, body = notifier.notify.await_args.args
        assert "*Details:* azure\\_east\\*" in body


class TestLegacyTriggerTimes:

    def test_epoch_seconds(self):
        assert epoch_seconds(None) == 0
        assert epoch_seconds(NOW) == NOW
        assert epoch_seconds(NOW * 1000 + 999) == NOW

    @pytest.mark.asyncio
    async def test_millisecond_trigger_past_cooldown_fires(self, engine, aggregate_sessions):
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, tokens=1000),
            make_alert({"threshold": 1}, last_triggered=(NOW - 2 * HOUR) * 1000),
        ])

        assert len(await engine.check_alerts()) == 1

        alert = await _alert(aggregate_sessions, 1)
        assert alert.last_triggered == NOW

    @pytest.mark.asyncio
    async def test_millisecond_trigger_within_cooldown_is_suppressed(self, engine, aggregate_sessions):
        await seed(aggregate_sessions, [
            make_stat(NOW - HOUR, tokens=1000),
            make_alert({"threshold": 1}, last_triggered=(NOW - 30 * 60) * 1000),
        ])

        assert await engine.check_alerts() == []

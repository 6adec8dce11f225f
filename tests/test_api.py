"""Tests for the HTTP API."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from usage_monitor.config import Settings
from usage_monitor.database import (
    SourceBase,
    create_engine,
    create_session_factory,
    init_aggregate_schema,
)
from usage_monitor.main import create_app
from usage_monitor.models import AlertHistory, Channel, ChannelSnapshot, Token, LOG_TYPE_ERROR
from usage_monitor.services.model_status import ModelStatusService
from tests.factories import NOW, HOUR, make_log, make_stat, seed

PASSWORD = "s3cret"
AUTH = {"Authorization": f"Bearer {PASSWORD}"}


async def _prepare(aggregate_url, source_url):
    aggregate = create_engine(aggregate_url)
    source = create_engine(source_url)
    try:
        await init_aggregate_schema(aggregate)
        async with source.begin() as conn:
            await conn.run_sync(SourceBase.metadata.create_all)

        await seed(create_session_factory(source), [
            Channel(id=1, name="primary", status=1, response_time=300),
            Channel(id=2, name="backup", status=2),
            Channel(id=3, name="cheap", status=3),
            Token(id=1, name="main", status=1, remain_quota=250, used_quota=750, expired_time=-1),
            Token(id=2, name="old", status=2, remain_quota=0, used_quota=10, expired_time=NOW - HOUR),
            make_log(1, created_at=NOW - 60, token_id=1, quota=250000, model_name="meta/llama-3"),
            make_log(2, created_at=NOW - 30, type=LOG_TYPE_ERROR, channel_id=2, content="rate limited"),
        ])
        await seed(create_session_factory(aggregate), [
            make_stat(NOW - HOUR, channel_id=1, model_name="gpt-4o", tokens=1000, request_count=10,
                      quota=500000, error_count=1, avg_latency=100.0),
            make_stat(NOW, channel_id=1, model_name="claude-3", tokens=3000, request_count=30,
                      quota=250000, error_count=0, avg_latency=200.0),
            make_stat(NOW, channel_id=2, model_name="gpt-4o", tokens=500, request_count=10,
                      quota=0, error_count=5, avg_latency=400.0),
            ChannelSnapshot(channel_id=1, status=1, response_time=300, snapshot_time=NOW - HOUR),
            ChannelSnapshot(channel_id=1, status=1, response_time=320, snapshot_time=NOW),
            AlertHistory(alert_id=9, alert_name="old", triggered_at=NOW, value=5.0, threshold=1.0,
                         message="*Name:* old", action_taken="notify"),
        ])
    finally:
        await aggregate.dispose()
        await source.dispose()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        aggregate_database_url=f"sqlite+aiosqlite:///{tmp_path / 'monitor.db'}",
        source_database_url=f"sqlite+aiosqlite:///{tmp_path / 'gateway.db'}",
        access_password=PASSWORD,
    )


@pytest.fixture
def client(settings):
    asyncio.run(_prepare(settings.aggregate_database_url, settings.source_database_url))
    app = create_app(settings, start_jobs=False)
    with TestClient(app) as client:
        yield client


def _alert_payload(**overrides):
    payload = {
        "name": "Channel 1 errors",
        "rule": {"alertType": "error_rate", "type": "channel", "target": "1", "threshold": 5, "period": 1},
        "start_time": "09:00",
        "end_time": "18:00",
        "notify_telegram": True,
        "trigger_action": "disable",
    }
    payload.update(overrides)
    return payload


class TestAuth:

    def test_health_is_public(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["jobs_running"] is False

    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": PASSWORD}])
    def test_rejects_missing_or_wrong_password(self, client, headers):
        assert client.get("/api/summary", headers=headers).status_code == 401

    def test_open_when_no_password(self, tmp_path):
        settings = Settings(
            aggregate_database_url=f"sqlite+aiosqlite:///{tmp_path / 'open.db'}",
            source_database_url=f"sqlite+aiosqlite:///{tmp_path / 'open-gateway.db'}",
            access_password="",
        )
        with TestClient(create_app(settings, start_jobs=False)) as client:
            assert client.get("/api/alerts").status_code == 200


class TestStatsApi:

    def test_stats_filters(self, client):
        rows = client.get("/api/stats", params={"model_name": "gpt-4o"}, headers=AUTH).json()
        assert {(r["channel_id"], r["hour"]) for r in rows} == {(1, NOW - HOUR), (2, NOW)}

        rows = client.get("/api/stats", params={"start_ts": NOW, "channel_id": 1}, headers=AUTH).json()
        assert [r["model_name"] for r in rows] == ["claude-3"]

    def test_summary(self, client):
        summary = client.get("/api/summary", headers=AUTH).json()

        assert summary["total_tokens"] == 4500
        assert summary["total_requests"] == 50
        assert summary["total_errors"] == 6
        assert summary["active_models"] == 2
        assert summary["total_cost"] == pytest.approx(1.5)

    def test_analysis_by_model(self, client):
        rows = client.get("/api/analysis", params={"type": "model"}, headers=AUTH).json()
        assert [(r["name"], r["value"]) for r in rows] == [("claude-3", 3000), ("gpt-4o", 1500)]

    def test_analysis_rejects_unknown_grouping(self, client):
        assert client.get("/api/analysis", params={"type": "token"}, headers=AUTH).status_code == 422

    def test_sync_status(self, client):
        status = client.get("/api/sync/status", headers=AUTH).json()
        assert status == {"last_synced_id": 0, "bucket_count": 3, "latest_hour": NOW}


class TestChannelsApi:

    def test_overview(self, client):
        overview = client.get("/api/channels/overview", headers=AUTH).json()

        assert overview["total"] == 3
        assert overview["status_count"] == {"enabled": 1, "disabled": 1, "auto_disabled": 1}

    def test_performance(self, client):
        rows = client.get(
            "/api/channels/performance",
            params={"start_ts": NOW - 24 * HOUR, "end_ts": NOW},
            headers=AUTH,
        ).json()

        by_id = {r["channel_id"]: r for r in rows}
        assert by_id[1]["channel_name"] == "primary"
        assert by_id[1]["requests"] == 40
        assert by_id[1]["avg_latency"] == 175
        assert by_id[2]["error_rate"] == 50.0

    def test_snapshots_newest_first(self, client):
        rows = client.get("/api/channels/1/snapshots", headers=AUTH).json()
        assert [r["response_time"] for r in rows] == [320, 300]


class TestAlertsApi:

    def test_create_and_list(self, client):
        response = client.post("/api/alerts", json=_alert_payload(), headers=AUTH)
        assert response.status_code == 200
        alert_id = response.json()["id"]

        [alert] = client.get("/api/alerts", headers=AUTH).json()
        assert alert["id"] == alert_id
        assert alert["enabled"] is True
        assert alert["trigger_action"] == "disable"
        assert alert["trigger_count"] == 0
        assert alert["rule"]["alertType"] == "error_rate"
        assert alert["rule"]["type"] == "channel"
        assert alert["rule"]["target"] == "1"

    def test_create_rejects_invalid_rule(self, client):
        bad = _alert_payload(rule={"alertType": "error_rate", "type": "channel", "target": "primary", "threshold": 5})
        assert client.post("/api/alerts", json=bad, headers=AUTH).status_code == 422

        bad = _alert_payload(rule={"alertType": "cpu", "threshold": 5})
        assert client.post("/api/alerts", json=bad, headers=AUTH).status_code == 422

    def test_create_rejects_bad_window(self, client):
        bad = _alert_payload(start_time="25:00")
        assert client.post("/api/alerts", json=bad, headers=AUTH).status_code == 422

    def test_update_toggle_delete(self, client):
        alert_id = client.post("/api/alerts", json=_alert_payload(), headers=AUTH).json()["id"]

        updated = client.put(
            f"/api/alerts/{alert_id}",
            json=_alert_payload(name="Tokens", rule={"threshold": 1000}, trigger_action="notify"),
            headers=AUTH,
        ).json()
        assert updated["name"] == "Tokens"
        assert updated["rule"]["alertType"] == "token_usage"

        toggled = client.patch(f"/api/alerts/{alert_id}/toggle", json={"enabled": False}, headers=AUTH).json()
        assert toggled["enabled"] is False

        assert client.delete(f"/api/alerts/{alert_id}", headers=AUTH).status_code == 200
        assert client.get("/api/alerts", headers=AUTH).json() == []

    def test_missing_alert_is_404(self, client):
        assert client.delete("/api/alerts/404", headers=AUTH).status_code == 404
        assert client.patch("/api/alerts/404/toggle", json={"enabled": True}, headers=AUTH).status_code == 404
        assert client.put("/api/alerts/404", json=_alert_payload(), headers=AUTH).status_code == 404

    def test_history(self, client):
        rows = client.get("/api/alerts/history", headers=AUTH).json()
        assert [(r["alert_id"], r["value"]) for r in rows] == [(9, 5.0)]

        assert client.get("/api/alerts/history", params={"alert_id": 1}, headers=AUTH).json() == []

    def test_types(self, client):
        types = client.get("/api/alerts/types", headers=AUTH).json()
        assert {t["type"] for t in types} == {
            "token_usage", "error_rate", "latency", "channel_down", "quota_low", "request_spike",
        }


class TestErrorsApi:

    def test_list(self, client):
        page = client.get("/api/errors", headers=AUTH).json()

        assert (page["total"], page["page"], page["page_size"]) == (1, 1, 50)
        assert page["logs"][0]["id"] == 2
        assert page["logs"][0]["content"] == "rate limited"

    def test_list_filters(self, client):
        page = client.get("/api/errors", params={"channel_id": 1}, headers=AUTH).json()
        assert page == {"logs": [], "total": 0, "page": 1, "page_size": 50}

    def test_summary(self, client):
        rows = client.get(
            "/api/errors/summary",
            params={"start_ts": NOW - HOUR, "end_ts": NOW},
            headers=AUTH,
        ).json()

        assert [(r["channel_id"], r["errors"], r["total"], r["error_rate"]) for r in rows] == [
            (2, 5, 10, 50.0),
            (1, 1, 10, 10.0),
        ]

    def test_summary_requires_range(self, client):
        assert client.get("/api/errors/summary", headers=AUTH).status_code == 422


class TestTokensApi:

    def test_overview(self, client):
        overview = client.get("/api/tokens/overview", headers=AUTH).json()

        assert overview["total"] == 2
        assert overview["status_count"] == {"enabled": 1, "disabled": 1, "expired": 1, "exhausted": 1}
        assert overview["tokens"][0]["usage_percent"] == 75.0

    def test_usage(self, client):
        rows = client.get(
            "/api/tokens/1/usage",
            params={"start_ts": NOW - HOUR, "end_ts": NOW},
            headers=AUTH,
        ).json()

        assert rows == [{"hour": NOW - HOUR, "quota": 250000, "cost": 0.5, "requests": 1, "tokens": 30}]


class TestLatencyApi:

    def test_latency_analysis(self, client):
        analysis = client.get(
            "/api/analysis/latency",
            params={"start_ts": NOW - HOUR, "end_ts": NOW},
            headers=AUTH,
        ).json()

        assert [r["id"] for r in analysis["slow_requests"]] == [1]
        assert analysis["latency_trend"] == [
            {"hour": NOW - HOUR, "requests": 10, "tokens": 1000, "avg_latency": 100},
            {"hour": NOW, "requests": 40, "tokens": 3500, "avg_latency": 250},
        ]


class TestModelStatusApi:

    @pytest.fixture
    def pinned_client(self, client):
        client.app.state.model_status = ModelStatusService(client.app.state.source_sessions, clock=lambda: NOW)
        return client

    def test_model_name_with_slash(self, pinned_client):
        status = pinned_client.get("/api/model-status/meta/llama-3", params={"window": "1h"}, headers=AUTH).json()

        assert status["model_name"] == "meta/llama-3"
        assert status["total_requests"] == 1
        assert status["current_status"] == "green"
        assert len(status["slot_data"]) == 12

    def test_overview(self, pinned_client):
        overview = pinned_client.get("/api/model-status/overview", headers=AUTH).json()

        assert overview["time_window"] == "24h"
        assert overview["summary"] == {"total": 2, "healthy": 1, "warning": 0, "critical": 1}

    def test_models(self, pinned_client):
        models = pinned_client.get("/api/model-status/models", headers=AUTH).json()
        assert {m["model_name"]: m["request_count_24h"] for m in models} == {"meta/llama-3": 1, "gpt-4o": 1}

    def test_rejects_unknown_window(self, pinned_client):
        response = pinned_client.get("/api/model-status/overview", params={"window": "3d"}, headers=AUTH)
        assert response.status_code == 422

    def test_requires_auth(self, pinned_client):
        assert pinned_client.get("/api/model-status/overview").status_code == 401

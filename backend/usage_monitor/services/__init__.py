"""Services package."""

from .cursor import get_meta, set_meta, get_last_synced_id, set_last_synced_id
from .source import fetch_logs_after, list_channels, list_disabled_channels, list_low_quota_tokens, list_tokens
from .syncer import SyncEngine, aggregate_logs, upsert_buckets, merge_average, hour_start
from .windows import Window, in_active_window, resolve_period, start_of_day
from .breaker import CircuitBreaker
from .notifier import TelegramNotifier
from .alerter import AlertEngine, ALERT_TYPES
from .snapshots import snapshot_channels
from .retention import clean_old_data
from .scheduler import Scheduler, Job
from .model_status import ModelStatusService, TIME_WINDOWS, bucket_slots, status_color
from .reports import (
    list_error_logs,
    error_summary,
    describe_token,
    token_overview,
    token_hourly_usage,
    latency_analysis,
)

__all__ = [
    "get_meta",
    "set_meta",
    "get_last_synced_id",
    "set_last_synced_id",
    "fetch_logs_after",
    "list_channels",
    "list_disabled_channels",
    "list_low_quota_tokens",
    "list_tokens",
    "SyncEngine",
    "aggregate_logs",
    "upsert_buckets",
    "merge_average",
    "hour_start",
    "Window",
    "in_active_window",
    "resolve_period",
    "start_of_day",
    "CircuitBreaker",
    "TelegramNotifier",
    "AlertEngine",
    "ALERT_TYPES",
    "snapshot_channels",
    "clean_old_data",
    "Scheduler",
    "Job",
    "ModelStatusService",
    "TIME_WINDOWS",
    "bucket_slots",
    "status_color",
    "list_error_logs",
    "error_summary",
    "describe_token",
    "token_overview",
    "token_hourly_usage",
    "latency_analysis",
]

"""Pydantic schemas for aggregate statistics."""

from typing import Optional
from pydantic import BaseModel


class StatRow(BaseModel):
    """One hourly bucket."""
    channel_id: int
    model_name: str
    hour: int
    tokens: int
    request_count: int
    quota: int
    error_count: int
    avg_latency: float

    class Config:
        from_attributes = True


class UsageSummary(BaseModel):
    """Totals over a time range."""
    total_tokens: int
    total_requests: int
    total_quota: int
    total_errors: int
    active_models: int
    total_cost: float


class AnalysisRow(BaseModel):
    """Usage grouped by channel or model."""
    name: str
    value: int
    quota: int
    requests: int
    errors: int


class ChannelPerformance(BaseModel):
    """Per-channel request, error and latency figures."""
    channel_id: int
    channel_name: str
    requests: int
    tokens: int
    quota: int
    cost: float
    errors: int
    error_rate: float
    avg_latency: int


class SyncStatus(BaseModel):
    """Where the sync watermark stands."""
    last_synced_id: int
    bucket_count: int
    latest_hour: Optional[int] = None

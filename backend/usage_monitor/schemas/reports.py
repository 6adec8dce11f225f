"""Pydantic schemas for error, token and latency reports."""

from typing import List, Optional
from pydantic import BaseModel


class ErrorLogRow(BaseModel):
    """A failed request as recorded by the gateway."""
    id: int
    created_at: int
    channel_id: Optional[int] = None
    model_name: Optional[str] = None
    content: Optional[str] = None
    other: Optional[str] = None
    use_time: Optional[int] = None

    class Config:
        from_attributes = True


class ErrorLogPage(BaseModel):
    """One page of error logs, newest first."""
    logs: List[ErrorLogRow]
    total: int
    page: int
    page_size: int


class ErrorSummaryRow(BaseModel):
    """Errors per channel and model over a time range."""
    channel_id: int
    model_name: str
    errors: int
    total: int
    error_rate: float


class TokenInfo(BaseModel):
    """A gateway credential with derived quota state."""
    id: int
    name: Optional[str] = None
    status: Optional[int] = None
    remain_quota: int = 0
    used_quota: int = 0
    unlimited_quota: bool = False
    expired_time: int = -1
    accessed_time: Optional[int] = None
    group: Optional[str] = None
    used_count: int = 0
    is_expired: bool = False
    is_exhausted: bool = False
    usage_percent: Optional[float] = None


class TokenStatusCount(BaseModel):
    """Credentials per state."""
    enabled: int = 0
    disabled: int = 0
    expired: int = 0
    exhausted: int = 0


class TokenOverview(BaseModel):
    """All credentials with a state breakdown."""
    tokens: List[TokenInfo]
    status_count: TokenStatusCount
    total: int


class TokenUsageRow(BaseModel):
    """One hour of successful usage by a credential."""
    hour: int
    quota: int
    cost: float
    requests: int
    tokens: int


class SlowRequest(BaseModel):
    """One of the slowest successful requests in a range."""
    id: int
    use_time: int
    model_name: Optional[str] = None
    channel_id: Optional[int] = None
    created_at: int

    class Config:
        from_attributes = True


class LatencyPoint(BaseModel):
    """Hourly traffic and request-weighted latency."""
    hour: int
    requests: int
    tokens: int
    avg_latency: int


class LatencyAnalysis(BaseModel):
    """Slowest requests plus the hourly latency trend."""
    slow_requests: List[SlowRequest]
    latency_trend: List[LatencyPoint]

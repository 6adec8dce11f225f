"""Pydantic schemas for per-model health."""

from typing import List
from pydantic import BaseModel


class StatusSlot(BaseModel):
    """One fixed-width slice of a status window."""
    slot: int
    start_time: int
    end_time: int
    total_requests: int = 0
    success_count: int = 0
    success_rate: float = 100.0
    status: str = "green"


class ModelStatus(BaseModel):
    """Success rate of one model over a window, overall and per slot."""
    model_name: str
    display_name: str
    time_window: str
    total_requests: int
    success_count: int
    success_rate: float
    current_status: str
    slot_data: List[StatusSlot]


class ModelStatusSummary(BaseModel):
    """Models per status colour."""
    total: int = 0
    healthy: int = 0
    warning: int = 0
    critical: int = 0


class ModelStatusOverview(BaseModel):
    """Status of the most active models."""
    models: List[ModelStatus]
    summary: ModelStatusSummary
    time_window: str
    generated_at: int


class ActiveModel(BaseModel):
    """A model seen in the gateway logs during the last day."""
    model_name: str
    request_count_24h: int

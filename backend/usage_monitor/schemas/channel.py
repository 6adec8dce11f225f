"""Pydantic schemas for gateway channels."""

from typing import List, Optional
from pydantic import BaseModel


class ChannelInfo(BaseModel):
    """A gateway channel as read from the source store."""
    id: int
    name: Optional[str] = None
    type: Optional[int] = None
    status: Optional[int] = None
    response_time: Optional[int] = None
    balance: Optional[float] = None
    used_quota: Optional[int] = None

    class Config:
        from_attributes = True


class ChannelStatusCount(BaseModel):
    """Channels per status."""
    enabled: int = 0
    disabled: int = 0
    auto_disabled: int = 0


class ChannelOverview(BaseModel):
    """All channels with a status breakdown."""
    channels: List[ChannelInfo]
    status_count: ChannelStatusCount
    total: int


class SnapshotRow(BaseModel):
    """One channel snapshot."""
    channel_id: int
    status: Optional[int] = None
    response_time: Optional[int] = None
    balance: Optional[float] = None
    snapshot_time: int

    class Config:
        from_attributes = True

"""Aggregate store tables: sync metadata, hourly rollups and channel snapshots."""

from sqlalchemy import Column, String, Text, Integer, BigInteger, Float, text
from ..database import AggregateBase


class Meta(AggregateBase):
    """
    Generic key/value metadata.
    Holds the sync watermark under ``last_synced_id``.
    """
    __tablename__ = "meta"

    key = Column(String, primary_key=True)
    value = Column(Text)

    def __repr__(self) -> str:
        return f"<Meta {self.key}={self.value}>"


class Stat(AggregateBase):
    """
    Hourly usage bucket.
    One row per channel, model and hour (hour = floor(created_at / 3600) * 3600).
    """
    __tablename__ = "stats"

    channel_id = Column(Integer, primary_key=True)
    model_name = Column(String, primary_key=True)
    hour = Column(Integer, primary_key=True)

    tokens = Column(BigInteger, nullable=False, default=0, server_default=text("0"))
    request_count = Column(Integer, nullable=False, default=0, server_default=text("0"))
    quota = Column(BigInteger, nullable=False, default=0, server_default=text("0"))
    error_count = Column(Integer, nullable=False, default=0, server_default=text("0"))

    # Request-weighted mean of use_time (ms), merged on every upsert
    avg_latency = Column(Float, nullable=False, default=0.0, server_default=text("0"))

    def __repr__(self) -> str:
        return f"<Stat {self.channel_id}/{self.model_name} @ {self.hour}>"


class ChannelSnapshot(AggregateBase):
    """Point-in-time capture of a gateway channel's health."""
    __tablename__ = "channel_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_id = Column(Integer, nullable=False, index=True)
    status = Column(Integer)
    response_time = Column(Integer)
    balance = Column(Float)
    snapshot_time = Column(Integer, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<ChannelSnapshot {self.channel_id} @ {self.snapshot_time}>"

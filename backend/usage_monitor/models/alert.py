"""Alert definitions and firing history."""

from sqlalchemy import Column, String, Text, Integer, Float, Boolean, text
from ..database import AggregateBase

# Older databases stored last_triggered in epoch milliseconds; no seconds value gets this large
MILLISECONDS_CUTOFF = 100_000_000_000


def epoch_seconds(value) -> int:
    """Trigger timestamp in epoch seconds, accepting legacy millisecond values."""
    value = int(value or 0)
    if value > MILLISECONDS_CUTOFF:
        return value // 1000
    return value


class Alert(AggregateBase):
    """
    Alert definition.

    The rule itself is a JSON document (see ``schemas.alert``); the remaining
    columns carry scheduling, delivery and trigger bookkeeping.
    """
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String)
    rule_json = Column("rule", Text)
    enabled = Column(Boolean, default=True, server_default=text("1"))

    # Daily active window, local wall clock HH:MM
    start_time = Column(String, default="00:00", server_default="00:00")
    end_time = Column(String, default="23:59", server_default="23:59")

    # Delivery
    notify_telegram = Column(Boolean, default=False, server_default=text("0"))
    trigger_action = Column(String, default="notify", server_default="notify")

    # Trigger bookkeeping (last_triggered is epoch seconds)
    last_triggered = Column(Integer, default=0, server_default=text("0"))
    last_value = Column(Float)
    trigger_count = Column(Integer, default=0, server_default=text("0"))

    created_at = Column(Integer)

    def __repr__(self) -> str:
        return f"<Alert {self.id}: {self.name}>"


class AlertHistory(AggregateBase):
    """Append-only record of alert firings."""
    __tablename__ = "alert_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    alert_id = Column(Integer, nullable=False, index=True)
    alert_name = Column(String)
    triggered_at = Column(Integer, nullable=False, index=True)
    value = Column(Float)
    threshold = Column(Float)
    message = Column(Text)
    action_taken = Column(String)

    def __repr__(self) -> str:
        return f"<AlertHistory {self.alert_id} @ {self.triggered_at}>"

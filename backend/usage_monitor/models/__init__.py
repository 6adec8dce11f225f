"""Models package."""

from .stats import Meta, Stat, ChannelSnapshot
from .alert import Alert, AlertHistory, MILLISECONDS_CUTOFF, epoch_seconds
from .gateway import (
    Log,
    Channel,
    Token,
    LOG_TYPE_CONSUME,
    LOG_TYPE_ERROR,
    CHANNEL_STATUS_ENABLED,
    CHANNEL_STATUS_MANUALLY_DISABLED,
    CHANNEL_STATUS_AUTO_DISABLED,
    TOKEN_STATUS_ENABLED,
)

__all__ = [
    "Meta",
    "Stat",
    "ChannelSnapshot",
    "Alert",
    "AlertHistory",
    "MILLISECONDS_CUTOFF",
    "epoch_seconds",
    "Log",
    "Channel",
    "Token",
    "LOG_TYPE_CONSUME",
    "LOG_TYPE_ERROR",
    "CHANNEL_STATUS_ENABLED",
    "CHANNEL_STATUS_MANUALLY_DISABLED",
    "CHANNEL_STATUS_AUTO_DISABLED",
    "TOKEN_STATUS_ENABLED",
]

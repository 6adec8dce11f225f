"""Schemas package."""

from .alert import (
    AlertType,
    TargetType,
    AlertRule,
    InvalidRuleError,
    parse_rule,
    AlertCreate,
    AlertToggle,
    AlertResponse,
    AlertCreateResponse,
    AlertHistoryResponse,
    AlertTypeInfo,
)
from .stats import (
    StatRow,
    UsageSummary,
    AnalysisRow,
    ChannelPerformance,
    SyncStatus,
)
from .channel import (
    ChannelInfo,
    ChannelStatusCount,
    ChannelOverview,
    SnapshotRow,
)

from .model_status import (
    StatusSlot,
    ModelStatus,
    ModelStatusSummary,
    ModelStatusOverview,
    ActiveModel,
)
from .reports import (
    ErrorLogRow,
    ErrorLogPage,
    ErrorSummaryRow,
    TokenInfo,
    TokenStatusCount,
    TokenOverview,
    TokenUsageRow,
    SlowRequest,
    LatencyPoint,
    LatencyAnalysis,
)

__all__ = [
    "AlertType",
    "TargetType",
    "AlertRule",
    "InvalidRuleError",
    "parse_rule",
    "AlertCreate",
    "AlertToggle",
    "AlertResponse",
    "AlertCreateResponse",
    "AlertHistoryResponse",
    "AlertTypeInfo",
    "StatRow",
    "UsageSummary",
    "AnalysisRow",
    "ChannelPerformance",
    "SyncStatus",
    "ChannelInfo",
    "ChannelStatusCount",
    "ChannelOverview",
    "SnapshotRow",
    "StatusSlot",
    "ModelStatus",
    "ModelStatusSummary",
    "ModelStatusOverview",
    "ActiveModel",
    "ErrorLogRow",
    "ErrorLogPage",
    "ErrorSummaryRow",
    "TokenInfo",
    "TokenStatusCount",
    "TokenOverview",
    "TokenUsageRow",
    "SlowRequest",
    "LatencyPoint",
    "LatencyAnalysis",
]

"""Alert rule documents and alert API schemas."""

import json
from enum import Enum
from typing import Annotated, Optional, List, Dict, Any, Literal, Union
from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator, model_validator


class InvalidRuleError(ValueError):
    """Raised when a stored or submitted rule document cannot be parsed."""
    pass


class AlertType(str, Enum):
    """Metric an alert rule watches."""
    TOKEN_USAGE = "token_usage"
    ERROR_RATE = "error_rate"
    LATENCY = "latency"
    CHANNEL_DOWN = "channel_down"
    QUOTA_LOW = "quota_low"
    REQUEST_SPIKE = "request_spike"


class TargetType(str, Enum):
    """What slice of the aggregates a rule looks at."""
    CHANNEL = "channel"
    MODEL = "model"
    GLOBAL = "global"


PERIOD_KEYWORDS = ("daily", "today", "custom")
DEFAULT_PERIOD_HOURS = 24.0


# ===== Rule documents =====

class _RuleBase(BaseModel):
    """Fields shared by every rule kind. Keys follow the stored JSON document."""
    target_type: TargetType = Field(TargetType.GLOBAL, alias="type")
    target: Optional[str] = None
    threshold: float
    period: Union[float, Literal["daily", "today", "custom"]] = DEFAULT_PERIOD_HOURS
    custom_start_ts: Optional[int] = Field(None, alias="customStartTs")
    custom_end_ts: Optional[int] = Field(None, alias="customEndTs")

    class Config:
        populate_by_name = True
        extra = "ignore"

    @field_validator("target", mode="before")
    @classmethod
    def _coerce_target(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("period", mode="before")
    @classmethod
    def _parse_period(cls, value: Any) -> Union[float, str]:
        if value is None or value == "":
            return DEFAULT_PERIOD_HOURS
        if isinstance(value, bool):
            raise ValueError("period must be a number of hours or one of daily/today/custom")
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in PERIOD_KEYWORDS:
                return lowered
            try:
                value = float(lowered[:-1] if lowered.endswith("h") else lowered)
            except ValueError:
                raise ValueError(f"unsupported period {value!r}")
        if isinstance(value, (int, float)):
            if value <= 0:
                raise ValueError("period hours must be positive")
            return float(value)
        raise ValueError("period must be a number of hours or one of daily/today/custom")

    @model_validator(mode="after")
    def _check_target(self):
        if self.target_type != TargetType.GLOBAL and not self.target:
            raise ValueError(f"target is required for {self.target_type.value} rules")
        if self.target_type == TargetType.CHANNEL:
            try:
                int(self.target)
            except ValueError:
                raise ValueError(f"channel target must be a channel id, got {self.target!r}")
        return self

    @property
    def channel_id(self) -> Optional[int]:
        if self.target_type == TargetType.CHANNEL:
            return int(self.target)
        return None

    def to_document(self) -> Dict[str, Any]:
        """Serialize back to the stored JSON shape."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class TokenUsageRule(_RuleBase):
    """Total tokens over the period."""
    alert_type: Literal["token_usage"] = Field("token_usage", alias="alertType")


class ErrorRateRule(_RuleBase):
    """Failed requests as a percentage of all requests."""
    alert_type: Literal["error_rate"] = Field("error_rate", alias="alertType")


class LatencyRule(_RuleBase):
    """Request-weighted mean latency in milliseconds."""
    alert_type: Literal["latency"] = Field("latency", alias="alertType")


class ChannelDownRule(_RuleBase):
    """Channels currently disabled in the gateway. The threshold is not used."""
    alert_type: Literal["channel_down"] = Field("channel_down", alias="alertType")
    threshold: float = 0


class QuotaLowRule(_RuleBase):
    """Limited credentials whose remaining quota is below ``threshold``."""
    alert_type: Literal["quota_low"] = Field("quota_low", alias="alertType")


class RequestSpikeRule(_RuleBase):
    """Percent change in requests against the preceding window of equal length."""
    alert_type: Literal["request_spike"] = Field("request_spike", alias="alertType")


AlertRule = Annotated[
    Union[TokenUsageRule, ErrorRateRule, LatencyRule, ChannelDownRule, QuotaLowRule, RequestSpikeRule],
    Field(discriminator="alert_type"),
]

_rule_adapter = TypeAdapter(AlertRule)


def normalize_rule_document(data: Any) -> Any:
    """
    Bring a rule document into canonical key form.
    Rules written before alert types existed carry no ``alertType`` and are token rules.
    """
    if not isinstance(data, dict):
        return data
    data = dict(data)
    if "alertType" not in data and "alert_type" in data:
        data["alertType"] = data.pop("alert_type")
    data.setdefault("alertType", AlertType.TOKEN_USAGE.value)
    return data


def parse_rule(raw: Union[str, bytes, Dict[str, Any], None]):
    """Parse a stored rule (JSON text or dict) into its typed variant."""
    if raw is None:
        raise InvalidRuleError("rule is empty")
    data = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise InvalidRuleError(f"rule is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidRuleError("rule must be a JSON object")

    try:
        return _rule_adapter.validate_python(normalize_rule_document(data))
    except ValidationError as e:
        raise InvalidRuleError(str(e)) from e


# ===== API Schemas =====

HHMM_PATTERN = r"^([01]?\d|2[0-3]):[0-5]\d$"


class AlertCreate(BaseModel):
    """Schema for creating or replacing an alert."""
    name: str = Field(..., min_length=1, max_length=255)
    rule: AlertRule
    enabled: bool = True
    start_time: str = Field(default="00:00", pattern=HHMM_PATTERN)
    end_time: str = Field(default="23:59", pattern=HHMM_PATTERN)
    notify_telegram: bool = False
    trigger_action: Literal["notify", "disable"] = "notify"

    @field_validator("rule", mode="before")
    @classmethod
    def _normalize_rule(cls, value: Any) -> Any:
        return normalize_rule_document(value)


class AlertToggle(BaseModel):
    """Enable or disable an alert."""
    enabled: bool


class AlertResponse(BaseModel):
    """Schema for alert in responses."""
    id: int
    name: Optional[str] = None
    rule: Any = None
    enabled: bool
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    notify_telegram: bool = False
    trigger_action: Optional[str] = None
    last_triggered: Optional[int] = None
    last_value: Optional[float] = None
    trigger_count: int = 0
    created_at: Optional[int] = None


class AlertCreateResponse(BaseModel):
    """Response when creating a new alert."""
    id: int


class AlertHistoryResponse(BaseModel):
    """A single alert firing."""
    id: int
    alert_id: int
    alert_name: Optional[str] = None
    triggered_at: int
    value: Optional[float] = None
    threshold: Optional[float] = None
    message: Optional[str] = None
    action_taken: Optional[str] = None

    class Config:
        from_attributes = True


class AlertTypeInfo(BaseModel):
    """Describes a supported alert type for rule editors."""
    type: AlertType
    name: str
    unit: str
    description: str
    target_types: List[TargetType]

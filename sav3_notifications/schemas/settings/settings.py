# sav3_notifications/schemas/settings/settings.py
from enum import Enum
from pydantic import Field, field_validator, model_validator
from typing import Any, Dict, List, Optional
import re
import uuid
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..common.common import CamelModel
from ..notifications.notification import NotificationPriority

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class ChannelConfig(CamelModel):
    enabled: bool = True
    # missing keys mean "allowed"
    types: Dict[str, bool] = Field(default_factory=dict)
    categories: Dict[str, bool] = Field(default_factory=dict)
    priority_threshold: NotificationPriority = NotificationPriority.LOW
    custom_sound: Optional[str] = None
    vibration: Optional[bool] = None


class ChannelSettings(CamelModel):
    push: ChannelConfig = Field(default_factory=ChannelConfig)
    email: ChannelConfig = Field(default_factory=ChannelConfig)
    sms: ChannelConfig = Field(default_factory=ChannelConfig)
    in_app: ChannelConfig = Field(default_factory=ChannelConfig)


class QuietHours(CamelModel):
    enabled: bool = False
    start_time: str = "22:00"
    end_time: str = "07:00"
    timezone: str = "UTC"
    days: List[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4, 5, 6])  # Sunday = 0
    emergency_override: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        if not _HHMM.match(value):
            raise ValueError("Time must use HH:MM format")
        return value

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone '{value}'")
        return value

    @field_validator("days")
    @classmethod
    def _check_days(cls, value: List[int]) -> List[int]:
        if any(d < 0 or d > 6 for d in value):
            raise ValueError("Days must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(value))


class FrequencyLimit(CamelModel):
    # 0 disables the corresponding limit
    max_per_hour: int = Field(default=0, ge=0)
    max_per_day: int = Field(default=0, ge=0)
    max_per_week: int = Field(default=0, ge=0)
    cooldown_minutes: int = Field(default=0, ge=0)


class BurstAction(str, Enum):
    DELAY = "delay"
    GROUP = "group"
    SUPPRESS = "suppress"


class BurstProtection(CamelModel):
    enabled: bool = False
    threshold: int = Field(default=5, ge=1)
    window_minutes: int = Field(default=10, ge=1)
    action: BurstAction = BurstAction.GROUP


class FrequencySettings(CamelModel):
    global_limit: FrequencyLimit = Field(default_factory=FrequencyLimit, alias="global")
    per_type: Dict[str, FrequencyLimit] = Field(default_factory=dict)
    burst_protection: BurstProtection = Field(default_factory=BurstProtection)


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN = "in"
    NOT_IN = "not_in"


class RuleCondition(CamelModel):
    type: str = "notification"
    field: str
    operator: ConditionOperator
    value: Any = None
    logical_operator: str = "AND"
    nested: List["RuleCondition"] = Field(default_factory=list)

    @field_validator("logical_operator")
    @classmethod
    def _check_logical(cls, value: str) -> str:
        value = value.upper()
        if value not in ("AND", "OR"):
            raise ValueError("logicalOperator must be AND or OR")
        return value


class RuleActionType(str, Enum):
    ALLOW = "allow"
    SUPPRESS = "suppress"
    DELAY = "delay"
    GROUP = "group"
    SET_PRIORITY = "set_priority"
    SET_CHANNELS = "set_channels"


class RuleAction(CamelModel):
    type: RuleActionType
    parameters: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_parameters(self):
        if self.type == RuleActionType.SET_PRIORITY:
            NotificationPriority(self.parameters.get("priority"))
        if self.type == RuleActionType.SET_CHANNELS and not isinstance(self.parameters.get("channels"), list):
            raise ValueError("set_channels requires a 'channels' list parameter")
        if self.type == RuleActionType.DELAY:
            minutes = self.parameters.get("minutes", 60)
            if not isinstance(minutes, (int, float)) or minutes <= 0:
                raise ValueError("delay requires a positive 'minutes' parameter")
        return self


class NotificationRule(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(min_length=1, max_length=100)
    condition: RuleCondition
    action: RuleAction
    priority: int = 0
    is_active: bool = True


RuleCondition.model_rebuild()


class NotificationSettings(CamelModel):
    global_enabled: bool = True
    channels: ChannelSettings = Field(default_factory=ChannelSettings)
    quiet_hours: QuietHours = Field(default_factory=QuietHours)
    frequency: FrequencySettings = Field(default_factory=FrequencySettings)
    rules: List[NotificationRule] = Field(default_factory=list)

    def channel(self, name: str) -> Optional[ChannelConfig]:
        return getattr(self.channels, name, None)


class PushSettingsUpdate(CamelModel):
    enabled: bool
    types: Optional[List[str]] = None

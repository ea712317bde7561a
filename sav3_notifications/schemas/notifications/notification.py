# sav3_notifications/schemas/notifications/notification.py
from enum import Enum
from pydantic import ConfigDict, Field, field_validator
from typing import List, Optional, Dict, Any
from datetime import datetime

from ..common.common import CamelModel


class NotificationType(str, Enum):
    MATCH = "match"
    MESSAGE = "message"
    LIKE = "like"
    COMMENT = "comment"
    MENTION = "mention"
    FOLLOW = "follow"
    EVENT = "event"
    SYSTEM = "system"
    MARKETING = "marketing"
    REMINDER = "reminder"
    ALERT = "alert"
    UPDATE = "update"
    ACHIEVEMENT = "achievement"


class NotificationCategory(str, Enum):
    DATING = "dating"
    SOCIAL = "social"
    COMMUNITY = "community"
    CONTENT = "content"
    ACCOUNT = "account"
    SECURITY = "security"
    PROMOTION = "promotion"
    NEWS = "news"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self.value]


PRIORITY_RANK = {"low": 0, "normal": 1, "high": 2, "urgent": 3}


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DeliveryChannel(str, Enum):
    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"
    IN_APP = "in_app"
    WEBHOOK = "webhook"


class NotificationTracking(CamelModel):
    campaign_id: Optional[str] = None
    segment_id: Optional[str] = None
    source: str
    medium: str
    content: Optional[str] = None
    term: Optional[str] = None


class NotificationData(CamelModel):
    """Structured payload; unknown keys are kept as-is."""
    model_config = ConfigDict(extra="allow")

    entity_id: Optional[str] = None
    entity_type: Optional[str] = None
    image_url: Optional[str] = None
    deep_link: Optional[str] = None
    custom_fields: Optional[Dict[str, Any]] = None
    tracking: Optional[NotificationTracking] = None


class NotificationAction(CamelModel):
    id: str
    label: str
    action: str = "open"
    deep_link: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    requires_auth: bool = False
    destructive: bool = False


class DeviceInfo(CamelModel):
    device_id: str
    platform: str
    os_version: Optional[str] = None
    app_version: Optional[str] = None


class NotificationMetadata(CamelModel):
    model_config = ConfigDict(extra="allow")

    source: str = "api"
    batch_id: Optional[str] = None
    template_id: Optional[str] = None
    version: str = "1.0"
    locale: str = "en"
    timezone: str = "UTC"
    device_info: Optional[DeviceInfo] = None


class NotificationCreate(CamelModel):
    user_id: str = Field(min_length=1)
    type: str = Field(min_length=1, max_length=50)
    title: str = Field(min_length=1, max_length=100)
    body: str = Field(min_length=1, max_length=500)
    # stored as given; NotificationData only checks the known keys
    data: Optional[Dict[str, Any]] = None
    category: NotificationCategory = NotificationCategory.SOCIAL
    priority: NotificationPriority = NotificationPriority.NORMAL
    channels: List[DeliveryChannel] = Field(default_factory=lambda: [DeliveryChannel.IN_APP, DeliveryChannel.PUSH])
    actions: List[NotificationAction] = Field(default_factory=list)
    metadata: NotificationMetadata = Field(default_factory=NotificationMetadata)
    scheduled_for: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @field_validator("data")
    @classmethod
    def _check_data(cls, value: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if value is not None:
            NotificationData.model_validate(value)
        return value

    @field_validator("channels")
    @classmethod
    def _dedupe_channels(cls, value: List[DeliveryChannel]) -> List[DeliveryChannel]:
        seen = []
        for ch in value:
            if ch not in seen:
                seen.append(ch)
        return seen


class BulkNotificationCreate(CamelModel):
    notifications: List[NotificationCreate] = Field(min_length=1, max_length=500)


class NotificationResponse(CamelModel):
    id: str
    user_id: str
    type: str
    category: str
    title: str
    body: str
    data: Optional[Dict[str, Any]] = None
    priority: str
    status: str
    channels: List[str]
    actions: List[Dict[str, Any]] = []
    metadata: Dict[str, Any] = {}
    is_read: bool
    scheduled_for: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class MarkReadRequest(CamelModel):
    ids: List[str] = Field(max_length=500)


class DispatchResultResponse(CamelModel):
    notification_id: str
    action: str
    status: str
    reason: Optional[str] = None
    channels_sent: List[str] = []
    channels_failed: List[str] = []
    deliver_at: Optional[datetime] = None


class TopicMessage(CamelModel):
    title: str = Field(min_length=1, max_length=100)
    body: str = Field(min_length=1, max_length=500)
    data: Optional[Dict[str, Any]] = None
    image_url: Optional[str] = None


class SocialEvent(str, Enum):
    MATCH = "match"
    MESSAGE = "message"
    LIKE = "like"


class SocialEventRequest(CamelModel):
    user_id: str = Field(min_length=1)
    actor_name: str = Field(min_length=1, max_length=100)
    message: Optional[str] = Field(default=None, max_length=500)
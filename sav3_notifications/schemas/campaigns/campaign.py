# sav3_notifications/schemas/campaigns/campaign.py
from pydantic import Field, model_validator
from typing import Any, Dict, List, Optional
from datetime import datetime
import uuid

from ..common.common import CamelModel
from ..notifications.notification import (
    DeliveryChannel,
    NotificationCategory,
    NotificationPriority,
)


class NotificationTemplate(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    type: str = Field(min_length=1, max_length=50)
    category: NotificationCategory = NotificationCategory.PROMOTION
    priority: NotificationPriority = NotificationPriority.NORMAL
    channels: List[DeliveryChannel] = Field(default_factory=lambda: [DeliveryChannel.IN_APP, DeliveryChannel.PUSH])
    # {placeholder} fields are filled from the per-user context
    title: str = Field(min_length=1)
    body: str = Field(min_length=1)
    is_active: bool = True


class ABTestVariant(CamelModel):
    id: str
    name: str = ""
    template_id: str


class ABTestConfig(CamelModel):
    variants: List[ABTestVariant] = Field(min_length=1)
    traffic_split: List[int] = Field(min_length=1)  # percentages

    @model_validator(mode="after")
    def _check_split(self):
        if len(self.traffic_split) != len(self.variants):
            raise ValueError("trafficSplit needs one percentage per variant")
        if any(p < 0 for p in self.traffic_split) or sum(self.traffic_split) != 100:
            raise ValueError("trafficSplit percentages must be non-negative and sum to 100")
        return self


class NotificationCampaign(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(min_length=1, max_length=100)
    template_id: str
    ab_test: Optional[ABTestConfig] = None
    scheduled_for: Optional[datetime] = None


class CampaignLaunchRequest(NotificationCampaign):
    user_ids: List[str] = Field(min_length=1, max_length=10000)
    # per-user placeholder values, keyed by user id
    contexts: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class CampaignLaunchResponse(CamelModel):
    campaign_id: str
    created: int
    ids: List[str]

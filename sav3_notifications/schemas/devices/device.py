# sav3_notifications/schemas/devices/device.py
from enum import Enum
from pydantic import Field
from typing import Optional
from datetime import datetime

from ..common.common import CamelModel


class DevicePlatform(str, Enum):
    IOS = "ios"
    ANDROID = "android"
    WEB = "web"


class DeviceRegisterRequest(CamelModel):
    device_id: str = Field(min_length=1, max_length=255)
    fcm_token: str = Field(min_length=1, max_length=512)
    platform: DevicePlatform


class DeviceResponse(CamelModel):
    device_id: str
    platform: str
    is_active: bool
    last_used_at: datetime
    fcm_token: Optional[str] = None

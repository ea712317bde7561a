from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol


@dataclass
class DeviceDto:
    user_id: str
    device_id: str
    fcm_token: Optional[str]
    platform: str
    is_active: bool
    last_used_at: datetime


class DeviceRepository(Protocol):
    def upsert(self, user_id: str, device_id: str, fcm_token: str, platform: str) -> DeviceDto:
        ...

    def deactivate(self, user_id: str, device_id: str) -> bool:
        ...

    def active_tokens(self, user_id: str) -> List[str]:
        ...

    def deactivate_tokens(self, tokens: List[str]) -> int:
        ...

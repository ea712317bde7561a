# sav3_notifications/db/models/notifications/device.py
from typing import Optional
from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime

from ....utils import utcnow

class Device(SQLModel, table=True):
    __tablename__ = "devices"
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    device_id: str = Field(max_length=255, unique=True, index=True)
    fcm_token: Optional[str] = Field(default=None, max_length=512)
    platform: str = Field(max_length=20)
    is_active: bool = Field(default=True)
    last_used_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)

    # Relationships
    user: Optional["User"] = Relationship(back_populates="devices")

# sav3_notifications/db/models/notifications/settings.py
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON
from datetime import datetime
from typing import Optional, Dict, Any, List

from ....utils import utcnow

class NotificationSettingsRecord(SQLModel, table=True):
    __tablename__ = "notification_settings"
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", ondelete="CASCADE", unique=True)
    global_enabled: bool = Field(default=True)
    channels: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    quiet_hours: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    frequency: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    rules: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

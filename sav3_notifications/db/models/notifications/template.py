# sav3_notifications/db/models/notifications/template.py
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON
from datetime import datetime
from typing import List

from ....utils import utcnow

class NotificationTemplateRecord(SQLModel, table=True):
    __tablename__ = "notification_templates"
    id: str = Field(primary_key=True, max_length=64)
    name: str = Field(default="", max_length=100)
    type: str = Field(max_length=50)
    category: str = Field(default="promotion", max_length=50)
    priority: str = Field(default="normal", max_length=10)
    channels: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    title: str
    body: str
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

# sav3_notifications/db/models/notifications/notification.py
from typing import Optional, List, Dict, Any
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON, Index
from datetime import datetime
import uuid

from ....utils import utcnow

class Notification(SQLModel, table=True):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    user_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    type: str = Field(max_length=50, index=True)
    category: str = Field(default="social", max_length=50)
    title: str = Field(max_length=100)
    body: str = Field(max_length=500)
    data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    priority: str = Field(default="normal", max_length=10)
    status: str = Field(default="pending", max_length=10, index=True)
    channels: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    actions: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    # "metadata" is reserved on declarative classes
    meta: Dict[str, Any] = Field(default_factory=dict, sa_column=Column("metadata", JSON))
    is_read: bool = Field(default=False)
    scheduled_for: Optional[datetime] = Field(default=None, index=True)
    sent_at: Optional[datetime] = Field(default=None)
    read_at: Optional[datetime] = Field(default=None)
    expires_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Relationships
    user: Optional["User"] = Relationship(back_populates="notifications")

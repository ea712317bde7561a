# sav3_notifications/db/models/users/user.py
from typing import Optional, List
from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime
import uuid

from ....utils import utcnow

class User(SQLModel, table=True):
    __tablename__ = "users"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: Optional[str] = Field(max_length=100, default=None)
    email: Optional[str] = Field(max_length=100, default=None)
    phone: Optional[str] = Field(max_length=20, default=None)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)

    # Relationships
    notifications: List["Notification"] = Relationship(
        back_populates="user", sa_relationship_kwargs={"passive_deletes": True}
    )
    devices: List["Device"] = Relationship(
        back_populates="user", sa_relationship_kwargs={"passive_deletes": True}
    )

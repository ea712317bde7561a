from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple


@dataclass
class NewNotification:
    user_id: str
    type: str
    title: str
    body: str
    data: Optional[Dict[str, Any]] = None
    category: str = "social"
    priority: str = "normal"
    channels: List[str] = field(default_factory=list)
    actions: List[Dict[str, Any]] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)
    scheduled_for: Optional[datetime] = None
    expires_at: Optional[datetime] = None


@dataclass
class NotificationDto:
    id: str
    user_id: str
    type: str
    category: str
    title: str
    body: str
    data: Optional[Dict[str, Any]]
    priority: str
    status: str
    channels: List[str]
    actions: List[Dict[str, Any]]
    meta: Dict[str, Any]
    is_read: bool
    scheduled_for: Optional[datetime]
    sent_at: Optional[datetime]
    read_at: Optional[datetime]
    expires_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


@dataclass
class NotificationPage:
    items: List[NotificationDto]
    next_cursor: Optional[str] = None


class NotificationRepository(Protocol):
    def create(self, item: NewNotification) -> NotificationDto:
        ...

    def create_many(self, items: List[NewNotification]) -> List[NotificationDto]:
        """Insert all rows in one transaction; nothing is kept if any insert fails."""
        ...

    def get(self, notification_id: str) -> Optional[NotificationDto]:
        ...

    def get_for_user(self, notification_id: str, user_id: str) -> Optional[NotificationDto]:
        ...

    def list_page(self, user_id: str, limit: int, cursor: Optional[str]) -> List[NotificationDto]:
        """Rows starting at `cursor` (inclusive), newest first, at most `limit`."""
        ...

    def search(self, user_id: str, limit: int, offset: int, unread_only: bool, type: Optional[str]) -> Tuple[List[NotificationDto], int]:
        ...

    def mark_read(self, user_id: str, ids: List[str], at: datetime) -> int:
        ...

    def mark_all_read(self, user_id: str, at: datetime) -> int:
        ...

    def delete(self, notification_id: str, user_id: str) -> bool:
        ...

    def counts(self, user_id: str) -> Tuple[int, int]:
        """(total, unread)"""
        ...

    def update(self, notification_id: str, **fields: Any) -> Optional[NotificationDto]:
        ...

    def list_due(self, now: datetime, limit: int) -> List[NotificationDto]:
        ...

    def list_grouped(self, user_id: str) -> List[NotificationDto]:
        ...

    def delete_expired(self, now: datetime) -> int:
        ...


class DeliveryHistory(Protocol):
    """Read model over already-sent notifications used for frequency checks."""

    def count_since(self, user_id: str, since: datetime, type: Optional[str] = None) -> int:
        ...

    def last_sent_at(self, user_id: str, type: Optional[str] = None) -> Optional[datetime]:
        ...

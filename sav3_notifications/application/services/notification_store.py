import copy
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ..ports.notification_repo import NewNotification, NotificationDto, NotificationPage, NotificationRepository
from ...core.config import settings
from ...exceptions import InvalidTransitionError, NotFoundError, ValidationError
from ...schemas.notifications.notification import NotificationCreate
from ...utils import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

# failed rows stay readable in-app; cancelled rows are hidden from the owner
STATUS_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "pending": ("sent", "failed", "cancelled", "read"),
    "sent": ("delivered", "failed", "cancelled", "read"),
    "delivered": ("read", "failed", "cancelled"),
    "failed": ("read",),
    "read": (),
    "cancelled": (),
}


def can_transition(current: str, target: str) -> bool:
    return target in STATUS_TRANSITIONS.get(current, ())


def to_new_notification(payload: NotificationCreate) -> NewNotification:
    return NewNotification(
        user_id=payload.user_id,
        type=payload.type,
        title=payload.title,
        body=payload.body,
        data=copy.deepcopy(payload.data),
        category=payload.category.value,
        priority=payload.priority.value,
        channels=[c.value for c in payload.channels],
        actions=[a.model_dump(mode="json", by_alias=True, exclude_none=True) for a in payload.actions],
        meta=payload.metadata.model_dump(mode="json", by_alias=True, exclude_none=True),
        scheduled_for=to_naive_utc(payload.scheduled_for),
        expires_at=to_naive_utc(payload.expires_at),
    )


@dataclass
class NotificationStore:
    repo: NotificationRepository

    def create(self, payload: NotificationCreate) -> NotificationDto:
        item = self.repo.create(to_new_notification(payload))
        logger.info(f"Created notification {item.id} ({item.type}) for user {item.user_id}")
        return item

    def bulk_create(self, payloads: List[NotificationCreate]) -> List[NotificationDto]:
        if not payloads:
            return []
        items = self.repo.create_many([to_new_notification(p) for p in payloads])
        logger.info(f"Bulk created {len(items)} notifications")
        return items

    def list(self, user_id: str, limit: Optional[int] = None, cursor: Optional[str] = None) -> NotificationPage:
        limit = self._clamp(limit)
        if cursor and not self.repo.get_for_user(cursor, user_id):
            raise NotFoundError("Cursor")
        # one extra row tells us whether another page exists
        rows = self.repo.list_page(user_id, limit + 1, cursor)
        next_cursor = None
        if len(rows) > limit:
            next_cursor = rows[limit].id
            rows = rows[:limit]
        return NotificationPage(items=rows, next_cursor=next_cursor)

    def search(self, user_id: str, limit: Optional[int] = None, offset: int = 0, unread_only: bool = False, type: Optional[str] = None) -> Tuple[List[NotificationDto], int]:
        if offset < 0:
            raise ValidationError("offset must be >= 0", {"offset": offset})
        return self.repo.search(user_id, self._clamp(limit), offset, unread_only, type)

    def get(self, user_id: str, notification_id: str) -> NotificationDto:
        item = self.repo.get_for_user(notification_id, user_id)
        if not item:
            raise NotFoundError("Notification")
        return item

    def delete(self, user_id: str, notification_id: str) -> None:
        if not self.repo.delete(notification_id, user_id):
            raise NotFoundError("Notification")

    def unread_count(self, user_id: str) -> Dict[str, int]:
        total, unread = self.repo.counts(user_id)
        return {"total": total, "unread": unread}

    def mark_read(self, user_id: str, ids: List[str]) -> Dict[str, bool]:
        # ids owned by someone else, or missing, are ignored on purpose
        updated = self.repo.mark_read(user_id, list(ids), utcnow())
        logger.debug(f"mark_read user={user_id} requested={len(ids)} updated={updated}")
        return {"success": True}

    def mark_one_read(self, user_id: str, notification_id: str) -> NotificationDto:
        item = self.get(user_id, notification_id)
        if item.is_read:
            return item
        return self.transition(item.id, "read")

    def mark_all_read(self, user_id: str) -> Dict[str, bool]:
        updated = self.repo.mark_all_read(user_id, utcnow())
        logger.debug(f"mark_all_read user={user_id} updated={updated}")
        return {"success": True}

    def transition(self, notification_id: str, target: str, at: Optional[datetime] = None) -> NotificationDto:
        item = self.repo.get(notification_id)
        if not item:
            raise NotFoundError("Notification")
        if item.status == target:
            return item
        if not can_transition(item.status, target):
            raise InvalidTransitionError(item.status, target)
        at = at or utcnow()
        fields = {"status": target}
        if target == "sent":
            fields["sent_at"] = at
        elif target == "read":
            fields["is_read"] = True
            fields["read_at"] = at
        return self.repo.update(notification_id, **fields)

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        removed = self.repo.delete_expired(now or utcnow())
        if removed:
            logger.info(f"Purged {removed} expired notifications")
        return removed

    def _clamp(self, limit: Optional[int]) -> int:
        if limit is None:
            return settings.DEFAULT_PAGE_SIZE
        return max(1, min(int(limit), settings.MAX_PAGE_SIZE))

import logging
from datetime import datetime
from typing import Any, List, Optional, Tuple

from sqlalchemy import and_, delete, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .....db.models import Notification
from .....application.ports.notification_repo import (
    DeliveryHistory,
    NewNotification,
    NotificationDto,
    NotificationRepository,
)
from .....exceptions import BadRequestError, BulkCreateError
from .....utils import utcnow

logger = logging.getLogger(__name__)

# suppressed / superseded rows are never shown to the owner
HIDDEN_STATUSES = ("cancelled",)


class SqlNotificationRepository(NotificationRepository, DeliveryHistory):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, n: Notification) -> NotificationDto:
        return NotificationDto(
            id=n.id,
            user_id=n.user_id,
            type=n.type,
            category=n.category,
            title=n.title,
            body=n.body,
            data=dict(n.data) if n.data is not None else None,
            priority=n.priority,
            status=n.status,
            channels=list(n.channels or []),
            actions=list(n.actions or []),
            meta=dict(n.meta or {}),
            is_read=n.is_read,
            scheduled_for=n.scheduled_for,
            sent_at=n.sent_at,
            read_at=n.read_at,
            expires_at=n.expires_at,
            created_at=n.created_at,
            updated_at=n.updated_at,
        )

    def _to_row(self, item: NewNotification) -> Notification:
        now = utcnow()
        return Notification(
            user_id=item.user_id,
            type=item.type,
            category=item.category,
            title=item.title,
            body=item.body,
            data=item.data,
            priority=item.priority,
            channels=list(item.channels),
            actions=list(item.actions),
            meta=dict(item.meta),
            scheduled_for=item.scheduled_for,
            expires_at=item.expires_at,
            created_at=now,
            updated_at=now,
        )

    def _visible(self, user_id: str):
        return select(Notification).where(
            Notification.user_id == user_id,
            Notification.status.not_in(HIDDEN_STATUSES),
        )

    def create(self, item: NewNotification) -> NotificationDto:
        row = self._to_row(item)
        self.session.add(row)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            logger.warning(f"Rejected notification for user {item.user_id}: {e.orig}")
            raise BadRequestError("Notification references an unknown user", {"userId": item.user_id})
        self.session.refresh(row)
        return self._to_dto(row)

    def create_many(self, items: List[NewNotification]) -> List[NotificationDto]:
        rows = []
        index = 0
        try:
            for index, item in enumerate(items):
                row = self._to_row(item)
                self.session.add(row)
                # flush per row so a failure can be reported by position
                self.session.flush()
                rows.append(row)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            logger.warning(f"Bulk create rolled back at index {index}: {e.orig}")
            raise BulkCreateError(f"Notification at index {index} could not be stored; no notifications were created", index)
        except Exception:
            self.session.rollback()
            raise
        for row in rows:
            self.session.refresh(row)
        return [self._to_dto(r) for r in rows]

    def get(self, notification_id: str) -> Optional[NotificationDto]:
        n = self.session.get(Notification, notification_id)
        return self._to_dto(n) if n else None

    def get_for_user(self, notification_id: str, user_id: str) -> Optional[NotificationDto]:
        n = self.session.exec(
            self._visible(user_id).where(Notification.id == notification_id)
        ).first()
        return self._to_dto(n) if n else None

    def list_page(self, user_id: str, limit: int, cursor: Optional[str]) -> List[NotificationDto]:
        query = self._visible(user_id)
        if cursor:
            anchor = self.session.get(Notification, cursor)
            if anchor is not None:
                # keyset on (created_at, id), both descending; the cursor row opens the page
                query = query.where(
                    or_(
                        Notification.created_at < anchor.created_at,
                        and_(Notification.created_at == anchor.created_at, Notification.id <= anchor.id),
                    )
                )
        rows = self.session.exec(
            query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        ).all()
        return [self._to_dto(r) for r in rows]

    def search(self, user_id: str, limit: int, offset: int, unread_only: bool, type: Optional[str]) -> Tuple[List[NotificationDto], int]:
        conditions = [Notification.user_id == user_id, Notification.status.not_in(HIDDEN_STATUSES)]
        if unread_only:
            conditions.append(Notification.is_read == False)  # noqa: E712
        if type:
            conditions.append(Notification.type == type)
        total = self.session.exec(select(func.count()).select_from(Notification).where(*conditions)).one()
        rows = self.session.exec(
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
        ).all()
        return [self._to_dto(r) for r in rows], int(total)

    def mark_read(self, user_id: str, ids: List[str], at: datetime) -> int:
        if not ids:
            return 0
        result = self.session.exec(
            update(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.id.in_(ids),
                Notification.is_read == False,  # noqa: E712
                Notification.status.not_in(HIDDEN_STATUSES),
            )
            .values(is_read=True, status="read", read_at=at, updated_at=at)
        )
        self.session.commit()
        return result.rowcount or 0

    def mark_all_read(self, user_id: str, at: datetime) -> int:
        result = self.session.exec(
            update(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.is_read == False,  # noqa: E712
                Notification.status.not_in(HIDDEN_STATUSES),
            )
            .values(is_read=True, status="read", read_at=at, updated_at=at)
        )
        self.session.commit()
        return result.rowcount or 0

    def delete(self, notification_id: str, user_id: str) -> bool:
        n = self.session.exec(
            select(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
        ).first()
        if not n:
            return False
        self.session.delete(n)
        self.session.commit()
        return True

    def counts(self, user_id: str) -> Tuple[int, int]:
        base = [Notification.user_id == user_id, Notification.status.not_in(HIDDEN_STATUSES)]
        total = self.session.exec(select(func.count()).select_from(Notification).where(*base)).one()
        unread = self.session.exec(
            select(func.count()).select_from(Notification).where(*base, Notification.is_read == False)  # noqa: E712
        ).one()
        return int(total), int(unread)

    def update(self, notification_id: str, **fields: Any) -> Optional[NotificationDto]:
        n = self.session.get(Notification, notification_id)
        if not n:
            return None
        for key, value in fields.items():
            setattr(n, key, value)
        n.updated_at = utcnow()
        self.session.add(n)
        self.session.commit()
        self.session.refresh(n)
        return self._to_dto(n)

    def list_due(self, now: datetime, limit: int) -> List[NotificationDto]:
        rows = self.session.exec(
            select(Notification)
            .where(
                Notification.status == "pending",
                Notification.scheduled_for != None,  # noqa: E711
                Notification.scheduled_for <= now,
                or_(Notification.expires_at == None, Notification.expires_at > now),  # noqa: E711
            )
            .order_by(Notification.scheduled_for)
            .limit(limit)
        ).all()
        return [self._to_dto(r) for r in rows]

    def list_grouped(self, user_id: str) -> List[NotificationDto]:
        rows = self.session.exec(
            select(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.status == "pending",
                Notification.scheduled_for == None,  # noqa: E711
            )
            .order_by(Notification.created_at)
        ).all()
        return [self._to_dto(r) for r in rows if (r.meta or {}).get("grouped")]

    def delete_expired(self, now: datetime) -> int:
        result = self.session.exec(
            delete(Notification).where(Notification.expires_at != None, Notification.expires_at <= now)  # noqa: E711
        )
        self.session.commit()
        return result.rowcount or 0

    # DeliveryHistory

    def count_since(self, user_id: str, since: datetime, type: Optional[str] = None) -> int:
        conditions = [Notification.user_id == user_id, Notification.sent_at != None, Notification.sent_at >= since]  # noqa: E711
        if type:
            conditions.append(Notification.type == type)
        return int(self.session.exec(select(func.count()).select_from(Notification).where(*conditions)).one())

    def last_sent_at(self, user_id: str, type: Optional[str] = None) -> Optional[datetime]:
        conditions = [Notification.user_id == user_id, Notification.sent_at != None]  # noqa: E711
        if type:
            conditions.append(Notification.type == type)
        return self.session.exec(select(func.max(Notification.sent_at)).where(*conditions)).one()

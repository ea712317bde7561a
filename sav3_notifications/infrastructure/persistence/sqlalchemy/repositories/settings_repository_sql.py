import logging
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .....db.models import NotificationSettingsRecord
from .....application.ports.settings_repo import SettingsRepository
from .....schemas.settings.settings import NotificationSettings
from .....exceptions import BadRequestError
from .....utils import utcnow

logger = logging.getLogger(__name__)


class SqlSettingsRepository(SettingsRepository):
    def __init__(self, session: Session):
        self.session = session

    def _find(self, user_id: str) -> Optional[NotificationSettingsRecord]:
        return self.session.exec(
            select(NotificationSettingsRecord).where(NotificationSettingsRecord.user_id == user_id)
        ).first()

    def _to_model(self, rec: NotificationSettingsRecord) -> NotificationSettings:
        return NotificationSettings.model_validate({
            "global_enabled": rec.global_enabled,
            "channels": rec.channels or {},
            "quiet_hours": rec.quiet_hours or {},
            "frequency": rec.frequency or {},
            "rules": rec.rules or [],
        })

    def get(self, user_id: str) -> Optional[NotificationSettings]:
        rec = self._find(user_id)
        return self._to_model(rec) if rec else None

    def save(self, user_id: str, value: NotificationSettings) -> NotificationSettings:
        rec = self._find(user_id)
        if not rec:
            rec = NotificationSettingsRecord(user_id=user_id)
        dumped = value.model_dump(mode="json")
        rec.global_enabled = value.global_enabled
        rec.channels = dumped["channels"]
        rec.quiet_hours = dumped["quiet_hours"]
        rec.frequency = dumped["frequency"]
        rec.rules = dumped["rules"]
        rec.updated_at = utcnow()
        self.session.add(rec)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            logger.warning(f"Rejected settings for user {user_id}: {e.orig}")
            raise BadRequestError("Settings reference an unknown user", {"userId": user_id})
        self.session.refresh(rec)
        return self._to_model(rec)

    def delete(self, user_id: str) -> None:
        rec = self._find(user_id)
        if not rec:
            return
        self.session.delete(rec)
        self.session.commit()

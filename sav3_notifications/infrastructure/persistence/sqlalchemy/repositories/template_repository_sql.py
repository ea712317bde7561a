import logging
from typing import List, Optional
from sqlmodel import Session, select

from .....db.models import NotificationTemplateRecord
from .....application.ports.template_repo import TemplateRepository
from .....schemas.campaigns.campaign import NotificationTemplate
from .....utils import utcnow

logger = logging.getLogger(__name__)


class SqlTemplateRepository(TemplateRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_model(self, rec: NotificationTemplateRecord) -> NotificationTemplate:
        return NotificationTemplate(
            id=rec.id,
            name=rec.name,
            type=rec.type,
            category=rec.category,
            priority=rec.priority,
            channels=rec.channels or [],
            title=rec.title,
            body=rec.body,
            is_active=rec.is_active,
        )

    def get(self, template_id: str) -> Optional[NotificationTemplate]:
        rec = self.session.get(NotificationTemplateRecord, template_id)
        return self._to_model(rec) if rec else None

    def save(self, template: NotificationTemplate) -> NotificationTemplate:
        rec = self.session.get(NotificationTemplateRecord, template.id)
        if not rec:
            rec = NotificationTemplateRecord(id=template.id, type=template.type, title=template.title, body=template.body)
        dumped = template.model_dump(mode="json")
        rec.name = dumped["name"]
        rec.type = dumped["type"]
        rec.category = dumped["category"]
        rec.priority = dumped["priority"]
        rec.channels = dumped["channels"]
        rec.title = dumped["title"]
        rec.body = dumped["body"]
        rec.is_active = dumped["is_active"]
        rec.updated_at = utcnow()
        self.session.add(rec)
        self.session.commit()
        self.session.refresh(rec)
        logger.info(f"Saved notification template {rec.id}")
        return self._to_model(rec)

    def list(self, active_only: bool = False) -> List[NotificationTemplate]:
        query = select(NotificationTemplateRecord)
        if active_only:
            query = query.where(NotificationTemplateRecord.is_active == True)  # noqa: E712
        rows = self.session.exec(query.order_by(NotificationTemplateRecord.created_at, NotificationTemplateRecord.id)).all()
        return [self._to_model(r) for r in rows]

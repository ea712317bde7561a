import logging
from typing import List
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .....db.models import Device
from .....application.ports.device_repo import DeviceRepository, DeviceDto
from .....exceptions import BadRequestError
from .....utils import utcnow

logger = logging.getLogger(__name__)


class SqlDeviceRepository(DeviceRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, d: Device) -> DeviceDto:
        return DeviceDto(
            user_id=d.user_id,
            device_id=d.device_id,
            fcm_token=d.fcm_token,
            platform=d.platform,
            is_active=d.is_active,
            last_used_at=d.last_used_at,
        )

    def upsert(self, user_id: str, device_id: str, fcm_token: str, platform: str) -> DeviceDto:
        d = self.session.exec(select(Device).where(Device.device_id == device_id)).first()
        if d:
            d.user_id = user_id
            d.fcm_token = fcm_token
            d.platform = platform
            d.is_active = True
            d.last_used_at = utcnow()
        else:
            d = Device(user_id=user_id, device_id=device_id, fcm_token=fcm_token, platform=platform, is_active=True)
        self.session.add(d)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            logger.warning(f"Rejected device {device_id} for user {user_id}: {e.orig}")
            raise BadRequestError("Device references an unknown user", {"userId": user_id})
        self.session.refresh(d)
        return self._to_dto(d)

    def deactivate(self, user_id: str, device_id: str) -> bool:
        d = self.session.exec(
            select(Device).where(Device.device_id == device_id, Device.user_id == user_id)
        ).first()
        if not d:
            return False
        d.is_active = False
        self.session.add(d)
        self.session.commit()
        return True

    def active_tokens(self, user_id: str) -> List[str]:
        rows = self.session.exec(
            select(Device.fcm_token).where(
                Device.user_id == user_id,
                Device.is_active == True,  # noqa: E712
                Device.fcm_token != None,  # noqa: E711
            )
        ).all()
        return [t for t in rows if t]

    def deactivate_tokens(self, tokens: List[str]) -> int:
        if not tokens:
            return 0
        result = self.session.exec(
            update(Device).where(Device.fcm_token.in_(tokens)).values(is_active=False)
        )
        self.session.commit()
        logger.info(f"Deactivated {result.rowcount or 0} invalid FCM tokens")
        return result.rowcount or 0

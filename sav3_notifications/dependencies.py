import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from .application.services.campaign_service import CampaignService
from .application.services.dispatch_router import DispatchRouter
from .application.services.notification_store import NotificationStore
from .application.services.retry_policy import RetryPolicy
from .application.services.settings_service import SettingsService
from .core.config import settings
from .database import get_session
from .exceptions import ForbiddenError, UnauthorizedError
from .infrastructure.channels.firebase_push import FirebasePushSender
from .infrastructure.channels.in_app import InAppSender
from .infrastructure.channels.smtp_email import SmtpEmailSender
from .infrastructure.channels.twilio_sms import TwilioSmsSender
from .infrastructure.persistence.sqlalchemy.repositories.device_repository_sql import SqlDeviceRepository
from .infrastructure.persistence.sqlalchemy.repositories.notification_repository_sql import SqlNotificationRepository
from .infrastructure.persistence.sqlalchemy.repositories.settings_repository_sql import SqlSettingsRepository
from .infrastructure.persistence.sqlalchemy.repositories.template_repository_sql import SqlTemplateRepository
from .infrastructure.persistence.sqlalchemy.repositories.user_repository_sql import SqlRecipientDirectory
from .utils import decode_jwt_token

logger = logging.getLogger(__name__)

oauth2_scheme = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    id: str
    role: Optional[str] = None

    @property
    def is_privileged(self) -> bool:
        return self.role in settings.privileged_roles_list


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(oauth2_scheme)) -> CurrentUser:
    if not credentials or not credentials.credentials:
        raise UnauthorizedError("Authentication required")
    payload = decode_jwt_token(credentials.credentials)
    if not payload:
        logger.warning("JWT token decode failed - invalid or expired token")
        raise UnauthorizedError("Invalid or expired token")
    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token: missing user ID")
    return CurrentUser(id=str(user_id), role=payload.get("role"))


def require_privileged(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not current_user.is_privileged:
        logger.warning(f"User {current_user.id} attempted a privileged operation")
        raise ForbiddenError("This operation requires an admin or service token")
    return current_user


def get_notification_store(session: Session = Depends(get_session)) -> NotificationStore:
    return NotificationStore(SqlNotificationRepository(session))


def get_settings_service(session: Session = Depends(get_session)) -> SettingsService:
    return SettingsService(SqlSettingsRepository(session))


def get_campaign_service(session: Session = Depends(get_session)) -> CampaignService:
    return CampaignService(NotificationStore(SqlNotificationRepository(session)), SqlTemplateRepository(session))


def get_push_sender(session: Session = Depends(get_session)) -> FirebasePushSender:
    return FirebasePushSender(SqlDeviceRepository(session))


def get_device_repository(session: Session = Depends(get_session)) -> SqlDeviceRepository:
    return SqlDeviceRepository(session)


def get_dispatch_router(request: Request, session: Session = Depends(get_session)) -> DispatchRouter:
    repo = SqlNotificationRepository(session)
    router = DispatchRouter(
        store=NotificationStore(repo),
        repo=repo,
        history=repo,
        settings=SettingsService(SqlSettingsRepository(session)),
        recipients=SqlRecipientDirectory(session),
        retry=RetryPolicy.from_settings(),
    )
    router.register(InAppSender())
    router.register(FirebasePushSender(SqlDeviceRepository(session)))
    router.register(SmtpEmailSender())
    router.register(TwilioSmsSender())
    # extra senders (webhook, test doubles) can be attached to the app
    for sender in getattr(request.app.state, "extra_senders", []):
        router.register(sender)
    return router

import logging
import smtplib
from email.message import EmailMessage
from typing import Callable, Optional

from ...core.config import settings
from ...application.ports.channel_sender import ChannelSender, Recipient, SendResult
from ...application.ports.notification_repo import NotificationDto

logger = logging.getLogger(__name__)


class SmtpEmailSender(ChannelSender):
    channel = "email"

    def __init__(self, smtp_factory: Optional[Callable[..., smtplib.SMTP]] = None):
        self.smtp_factory = smtp_factory or smtplib.SMTP

    def _build(self, notification: NotificationDto, recipient: Recipient) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = notification.title
        msg["From"] = settings.EMAIL_FROM
        msg["To"] = recipient.email
        msg["X-Notification-Id"] = notification.id
        body = notification.body
        deep_link = (notification.data or {}).get("deepLink")
        if deep_link:
            body = f"{body}\n\n{deep_link}"
        msg.set_content(body)
        return msg

    def send(self, notification: NotificationDto, recipient: Recipient) -> SendResult:
        if not recipient.email:
            return SendResult(success=False, error="Recipient has no email address", retryable=False)
        if not settings.SMTP_HOST:
            return SendResult(success=False, error="SMTP is not configured", retryable=False)
        message = self._build(notification, recipient)
        try:
            with self.smtp_factory(settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT_SECONDS) as smtp:
                if settings.SMTP_USE_TLS:
                    smtp.starttls()
                if settings.SMTP_USERNAME:
                    smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
                smtp.send_message(message)
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed: {e}")
            return SendResult(success=False, error="SMTP authentication failed", retryable=False)
        except smtplib.SMTPRecipientsRefused as e:
            return SendResult(success=False, error=f"Recipient refused: {e.recipients}", retryable=False)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"Email delivery failed for notification {notification.id}: {e}")
            return SendResult(success=False, error=str(e))
        logger.info(f"Email sent for notification {notification.id} to user {recipient.user_id}")
        return SendResult(success=True, provider_id=notification.id)

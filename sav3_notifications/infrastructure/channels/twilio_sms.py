import logging
from typing import Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from ...core.config import settings
from ...application.ports.channel_sender import ChannelSender, Recipient, SendResult
from ...application.ports.notification_repo import NotificationDto

logger = logging.getLogger(__name__)

SMS_MAX_LENGTH = 320


class TwilioSmsSender(ChannelSender):
    channel = "sms"

    def __init__(self, client: Optional[Client] = None):
        self.client = client
        self.from_number = settings.TWILIO_PHONE_NUMBER

    def _client(self) -> Optional[Client]:
        if self.client is None and settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN:
            self.client = Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
        return self.client

    def send(self, notification: NotificationDto, recipient: Recipient) -> SendResult:
        if not recipient.phone:
            return SendResult(success=False, error="Recipient has no phone number", retryable=False)
        client = self._client()
        if client is None or not self.from_number:
            return SendResult(success=False, error="Twilio is not configured", retryable=False)
        text = f"{notification.title}: {notification.body}"[:SMS_MAX_LENGTH]
        try:
            message = client.messages.create(to=recipient.phone, from_=self.from_number, body=text)
        except TwilioRestException as e:
            logger.warning(f"SMS delivery failed for notification {notification.id}: {e.msg}")
            # 4xx from Twilio means the request itself is wrong
            return SendResult(success=False, error=e.msg, retryable=e.status >= 500 or e.status == 429)
        logger.info(f"SMS sent for notification {notification.id}: {message.sid}")
        return SendResult(success=True, provider_id=message.sid)

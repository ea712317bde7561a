from ...application.ports.channel_sender import ChannelSender, Recipient, SendResult
from ...application.ports.notification_repo import NotificationDto


class InAppSender(ChannelSender):
    """The stored row is the in-app notification, so delivery is immediate."""

    channel = "in_app"

    def send(self, notification: NotificationDto, recipient: Recipient) -> SendResult:
        return SendResult(success=True, provider_id=notification.id)

from dataclasses import dataclass
from typing import Optional, Protocol

from .notification_repo import NotificationDto


@dataclass
class Recipient:
    user_id: str
    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None


@dataclass
class SendResult:
    success: bool
    provider_id: Optional[str] = None
    error: Optional[str] = None
    # False when retrying cannot help (no device, no address, bad credentials)
    retryable: bool = True


class ChannelSender(Protocol):
    channel: str

    def send(self, notification: NotificationDto, recipient: Recipient) -> SendResult:
        ...


class RecipientDirectory(Protocol):
    def get(self, user_id: str) -> Optional[Recipient]:
        ...

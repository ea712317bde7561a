# Models package (re-export feature modules for stable imports)
from .users.user import User
from .notifications.notification import Notification
from .notifications.settings import NotificationSettingsRecord
from .notifications.device import Device
from .notifications.template import NotificationTemplateRecord

__all__ = [
    "User",
    "Notification",
    "NotificationSettingsRecord",
    "Device",
    "NotificationTemplateRecord",
]

from typing import Optional, Protocol

from ...schemas.settings.settings import NotificationSettings


class SettingsRepository(Protocol):
    def get(self, user_id: str) -> Optional[NotificationSettings]:
        ...

    def save(self, user_id: str, value: NotificationSettings) -> NotificationSettings:
        ...

    def delete(self, user_id: str) -> None:
        ...

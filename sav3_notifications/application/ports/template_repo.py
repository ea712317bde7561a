from typing import List, Optional, Protocol

from ...schemas.campaigns.campaign import NotificationTemplate


class TemplateRepository(Protocol):
    def get(self, template_id: str) -> Optional[NotificationTemplate]:
        ...

    def save(self, template: NotificationTemplate) -> NotificationTemplate:
        ...

    def list(self, active_only: bool = False) -> List[NotificationTemplate]:
        ...

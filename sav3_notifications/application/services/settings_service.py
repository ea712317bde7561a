import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..ports.settings_repo import SettingsRepository
from ...exceptions import ValidationError
from ...schemas.notifications.notification import NotificationType
from ...schemas.settings.settings import NotificationSettings

logger = logging.getLogger(__name__)


def _field_for(model_cls: Type[BaseModel], key: str) -> Tuple[Optional[str], Any]:
    for name, info in model_cls.model_fields.items():
        if key == name or key == info.alias:
            return name, info
    return None, None


def deep_merge(model_cls: Type[BaseModel], current: Dict[str, Any], partial: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``partial`` (camelCase or snake_case keys) into a field-name dump of ``model_cls``.

    Nested models merge recursively, plain dicts merge one level deep and
    everything else (lists included) is replaced.
    """
    merged = dict(current)
    for key, value in partial.items():
        name, info = _field_for(model_cls, key)
        if name is None:
            raise ValidationError(f"Unknown settings field '{key}'", {"field": key})
        existing = merged.get(name)
        if isinstance(value, dict) and isinstance(existing, dict):
            annotation = info.annotation
            if isinstance(annotation, type) and issubclass(annotation, BaseModel):
                merged[name] = deep_merge(annotation, existing, value)
            else:
                merged[name] = {**existing, **value}
        else:
            merged[name] = value
    return merged


@dataclass
class SettingsService:
    repo: SettingsRepository

    def get(self, user_id: str) -> NotificationSettings:
        return self.repo.get(user_id) or NotificationSettings()

    def update(self, user_id: str, partial: Dict[str, Any]) -> NotificationSettings:
        if not isinstance(partial, dict):
            raise ValidationError("Settings update must be an object")
        current = self.get(user_id).model_dump(mode="json")
        merged = deep_merge(NotificationSettings, current, partial)
        try:
            value = NotificationSettings.model_validate(merged)
        except PydanticValidationError as e:
            raise ValidationError("Invalid notification settings", e.errors(include_url=False, include_context=False, include_input=False))
        saved = self.repo.save(user_id, value)
        logger.info(f"Updated notification settings for user {user_id}")
        return saved

    def reset(self, user_id: str) -> NotificationSettings:
        self.repo.delete(user_id)
        logger.info(f"Reset notification settings for user {user_id}")
        return NotificationSettings()

    def update_push_settings(self, user_id: str, enabled: bool, types: Optional[List[str]] = None) -> NotificationSettings:
        push: Dict[str, Any] = {"enabled": enabled}
        if types is not None:
            # listed types are the only ones pushed; the rest of the known types are switched off
            allowed = {t: True for t in types}
            for known in NotificationType:
                allowed.setdefault(known.value, False)
            push["types"] = allowed
        current = self.get(user_id)
        merged = deep_merge(NotificationSettings, current.model_dump(mode="json"), {"channels": {"push": push}})
        if types is not None:
            merged["channels"]["push"]["types"] = push["types"]
        saved = self.repo.save(user_id, NotificationSettings.model_validate(merged))
        logger.info(f"Updated push settings for user {user_id}: enabled={enabled}")
        return saved

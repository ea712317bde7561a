import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from .notification_store import NotificationStore
from ..ports.template_repo import TemplateRepository
from ...exceptions import NotFoundError, ValidationError
from ...schemas.campaigns.campaign import (
    ABTestConfig,
    ABTestVariant,
    NotificationCampaign,
    NotificationTemplate,
)
from ...schemas.notifications.notification import NotificationCreate

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def _fill(text: str, context: Mapping[str, Any], missing: List[str]) -> str:
    def replace(match: re.Match) -> str:
        key = match.group(1)
        if key not in context or context[key] is None:
            missing.append(key)
            return match.group(0)
        return str(context[key])
    return _PLACEHOLDER.sub(replace, text)


def render(template: NotificationTemplate, context: Mapping[str, Any]) -> Tuple[str, str]:
    """Fill ``{placeholder}`` fields of the template title and body."""
    missing: List[str] = []
    title = _fill(template.title, context, missing)
    body = _fill(template.body, context, missing)
    if missing:
        raise ValidationError(
            f"Template '{template.id}' is missing values for: {', '.join(sorted(set(missing)))}",
            {"templateId": template.id, "missing": sorted(set(missing))},
        )
    return title, body


def bucket_for(campaign_id: str, user_id: str) -> int:
    digest = hashlib.sha256(f"{campaign_id}:{user_id}".encode("utf-8")).hexdigest()
    return int(digest, 16) % 100


def assign_variant(campaign_id: str, user_id: str, ab_test: ABTestConfig) -> ABTestVariant:
    """The same user always lands in the same variant of a campaign."""
    bucket = bucket_for(campaign_id, user_id)
    upper = 0
    for variant, share in zip(ab_test.variants, ab_test.traffic_split):
        upper += share
        if bucket < upper:
            return variant
    return ab_test.variants[-1]


@dataclass
class CampaignService:
    store: NotificationStore
    templates: TemplateRepository

    def add_template(self, template: NotificationTemplate) -> NotificationTemplate:
        return self.templates.save(template)

    def list_templates(self, active_only: bool = False) -> List[NotificationTemplate]:
        return self.templates.list(active_only)

    def get_template(self, template_id: str) -> NotificationTemplate:
        template = self.templates.get(template_id)
        if not template or not template.is_active:
            raise NotFoundError("Template")
        return template

    def launch(
        self,
        campaign: NotificationCampaign,
        user_ids: List[str],
        contexts: Optional[Dict[str, Dict[str, Any]]] = None,
        scheduled_for: Optional[datetime] = None,
    ) -> List[str]:
        """Render and store one notification per user; returns the created ids."""
        contexts = contexts or {}
        scheduled_for = scheduled_for or campaign.scheduled_for
        payloads = []
        for user_id in dict.fromkeys(user_ids):
            variant = assign_variant(campaign.id, user_id, campaign.ab_test) if campaign.ab_test else None
            template = self.get_template(variant.template_id if variant else campaign.template_id)
            title, body = render(template, {"userId": user_id, **contexts.get(user_id, {})})
            metadata = {"source": "campaign", "batchId": campaign.id, "templateId": template.id}
            if variant:
                metadata["variant"] = variant.id
            try:
                payloads.append(NotificationCreate(
                    user_id=user_id,
                    type=template.type,
                    title=title,
                    body=body,
                    category=template.category,
                    priority=template.priority,
                    channels=template.channels,
                    metadata=metadata,
                    scheduled_for=scheduled_for,
                ))
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Rendered notification for user {user_id} is invalid",
                    e.errors(include_url=False, include_context=False, include_input=False),
                )
        created = self.store.bulk_create(payloads)
        logger.info(f"Launched campaign {campaign.id} ({campaign.name}) to {len(created)} users")
        return [n.id for n in created]

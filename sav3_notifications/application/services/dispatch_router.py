import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Callable, Dict, List, Optional

from ..ports.channel_sender import ChannelSender, Recipient, RecipientDirectory, SendResult
from ..ports.notification_repo import DeliveryHistory, NotificationDto, NotificationRepository
from .notification_store import NotificationStore
from .preference_resolver import ALLOW, DELAY, GROUP, SUPPRESS, PreferenceResolver
from .retry_policy import RetryPolicy
from .settings_service import SettingsService
from ...exceptions import NotFoundError
from ...schemas.notifications.notification import PRIORITY_RANK, NotificationCreate
from ...utils import utcnow

logger = logging.getLogger(__name__)

DUE_BATCH_SIZE = 100
DIGEST_BODY_MAX = 500


@dataclass
class DispatchResult:
    notification_id: str
    action: str
    status: str
    reason: Optional[str] = None
    channels_sent: List[str] = field(default_factory=list)
    channels_failed: List[str] = field(default_factory=list)
    deliver_at: Optional[datetime] = None


@dataclass
class DispatchRouter:
    store: NotificationStore
    repo: NotificationRepository
    history: DeliveryHistory
    settings: SettingsService
    recipients: RecipientDirectory
    senders: Dict[str, ChannelSender] = field(default_factory=dict)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    resolver: PreferenceResolver = field(default_factory=PreferenceResolver)
    sleep: Callable[[float], None] = time.sleep

    def register(self, sender: ChannelSender) -> None:
        self.senders[sender.channel] = sender

    def dispatch(self, notification_id: str, now: Optional[datetime] = None) -> DispatchResult:
        now = now or utcnow()
        item = self.repo.get(notification_id)
        if not item:
            raise NotFoundError("Notification")
        if item.status != "pending":
            return DispatchResult(item.id, "skipped", item.status, reason="not_pending")
        if item.expires_at is not None and item.expires_at <= now:
            self.store.transition(item.id, "cancelled", now)
            return DispatchResult(item.id, SUPPRESS, "cancelled", reason="expired")
        if item.scheduled_for is not None and item.scheduled_for > now:
            return DispatchResult(item.id, DELAY, item.status, reason="scheduled", deliver_at=item.scheduled_for)

        decision = self.resolver.evaluate(item, self.settings.get(item.user_id), now, self.history)
        logger.debug(f"Notification {item.id}: {decision.action} ({decision.reason})")

        if decision.action == SUPPRESS:
            self.store.transition(item.id, "cancelled", now)
            return DispatchResult(item.id, SUPPRESS, "cancelled", reason=decision.reason)
        if decision.action == DELAY:
            self.repo.update(item.id, scheduled_for=decision.deliver_at)
            return DispatchResult(item.id, DELAY, "pending", reason=decision.reason, deliver_at=decision.deliver_at)
        if decision.action == GROUP:
            self.repo.update(item.id, meta={**item.meta, "grouped": True}, scheduled_for=None)
            return DispatchResult(item.id, GROUP, "pending", reason=decision.reason)

        if decision.priority != item.priority:
            item = self.repo.update(item.id, priority=decision.priority)
        return self._deliver(item, decision.channels, now, decision.reason)

    def process_due(self, now: Optional[datetime] = None) -> int:
        """Dispatch pending notifications whose scheduled time has come."""
        now = now or utcnow()
        processed = 0
        for item in self.repo.list_due(now, DUE_BATCH_SIZE):
            try:
                self.dispatch(item.id, now)
                processed += 1
            except Exception as e:
                logger.error(f"Failed to dispatch due notification {item.id}: {e}")
        if processed:
            logger.info(f"Processed {processed} due notifications")
        return processed

    def flush_groups(self, user_id: str, now: Optional[datetime] = None) -> Optional[NotificationDto]:
        """Collapse grouped pending notifications into one in-app digest."""
        now = now or utcnow()
        grouped = self.repo.list_grouped(user_id)
        if not grouped:
            return None

        types = Counter(n.type for n in grouped)
        digest_type = grouped[0].type if len(types) == 1 else "system"
        priority = max((n.priority for n in grouped), key=lambda p: PRIORITY_RANK.get(p, 1))
        titles = "; ".join(n.title for n in grouped)
        if len(titles) > DIGEST_BODY_MAX:
            titles = titles[: DIGEST_BODY_MAX - 3] + "..."
        digest = self.store.create(NotificationCreate(
            user_id=user_id,
            type=digest_type,
            title=f"You have {len(grouped)} new notifications",
            body=titles,
            category=Counter(n.category for n in grouped).most_common(1)[0][0],
            priority=priority,
            channels=["in_app"],
            metadata={"source": "digest", "groupedIds": [n.id for n in grouped]},
        ))
        for n in grouped:
            self.store.transition(n.id, "cancelled", now)
        self._deliver(digest, ["in_app"], now, "digest")
        logger.info(f"Flushed {len(grouped)} grouped notifications for user {user_id} into {digest.id}")
        return self.repo.get(digest.id)

    def _send(self, sender: ChannelSender, item: NotificationDto, recipient: Recipient) -> SendResult:
        try:
            return sender.send(item, recipient)
        except Exception as e:
            logger.error(f"{sender.channel} sender raised for notification {item.id}: {e}")
            return SendResult(success=False, error=str(e))

    def _deliver(self, item: NotificationDto, channels: List[str], now: datetime, reason: str) -> DispatchResult:
        recipient = self.recipients.get(item.user_id) or Recipient(user_id=item.user_id)
        sent, failed = [], []
        for channel in channels:
            sender = self.senders.get(channel)
            if sender is None:
                logger.warning(f"No sender registered for channel '{channel}'; skipping notification {item.id}")
                continue
            result, attempts = self.retry.run(partial(self._send, sender, item, recipient), self.sleep, f"{channel}:{item.id}")
            if result.success:
                sent.append(channel)
            else:
                failed.append(channel)
                logger.warning(f"Delivery of {item.id} over {channel} failed after {attempts} attempt(s): {result.error}")

        if sent:
            status = self.store.transition(item.id, "sent", now).status
            if "in_app" in sent:
                status = self.store.transition(item.id, "delivered", now).status
            return DispatchResult(item.id, ALLOW, status, reason, sent, failed)
        self.store.transition(item.id, "failed", now)
        return DispatchResult(item.id, ALLOW, "failed", "all_channels_failed" if failed else "no_sender", sent, failed)

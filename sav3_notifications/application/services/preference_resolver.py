"""Decide whether a notification may go out now, later, grouped, or not at all.

The resolver is pure apart from the ``DeliveryHistory`` reads it needs for
frequency and burst checks. It never writes; ``DispatchRouter`` acts on the
returned ``DeliveryDecision``.

Frequency limits use sliding windows (last hour, last 24 hours, last 7 days)
counted over notifications that were actually sent.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from ..ports.notification_repo import DeliveryHistory, NotificationDto
from .rules import active_rules, build_context, matches
from ...schemas.notifications.notification import PRIORITY_RANK
from ...schemas.settings.settings import (
    BurstAction,
    FrequencyLimit,
    NotificationSettings,
    QuietHours,
    RuleActionType,
)
from ...utils import to_naive_utc

logger = logging.getLogger(__name__)

ALLOW = "allow"
SUPPRESS = "suppress"
DELAY = "delay"
GROUP = "group"

WINDOWS = (
    ("max_per_hour", timedelta(hours=1)),
    ("max_per_day", timedelta(days=1)),
    ("max_per_week", timedelta(weeks=1)),
)


@dataclass
class DeliveryDecision:
    action: str
    channels: List[str] = field(default_factory=list)
    priority: str = "normal"
    deliver_at: Optional[datetime] = None
    reason: str = "allowed"

    @property
    def allowed(self) -> bool:
        return self.action == ALLOW


def _local(now: datetime, tz_name: str) -> datetime:
    return to_naive_utc(now).replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name))


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def _sunday_zero(day: datetime) -> int:
    return (day.weekday() + 1) % 7


def quiet_window_end(quiet: QuietHours, now: datetime) -> Optional[datetime]:
    """Naive-UTC end of the quiet window containing ``now``, or None when outside one.

    A window belongs to the day it starts on, so 22:00-07:00 configured for
    Friday still covers early Saturday morning.
    """
    if not quiet.enabled:
        return None
    start, end = _parse_hhmm(quiet.start_time), _parse_hhmm(quiet.end_time)
    if start == end:
        return None
    zone = ZoneInfo(quiet.timezone)
    local_now = _local(now, quiet.timezone)
    today = local_now.date()
    current = local_now.time().replace(second=0, microsecond=0)

    if start < end:
        if not (start <= current < end) or _sunday_zero(local_now) not in quiet.days:
            return None
        end_local = datetime.combine(today, end, tzinfo=zone)
    elif current >= start:
        if _sunday_zero(local_now) not in quiet.days:
            return None
        end_local = datetime.combine(today + timedelta(days=1), end, tzinfo=zone)
    elif current < end:
        started = local_now - timedelta(days=1)
        if _sunday_zero(started) not in quiet.days:
            return None
        end_local = datetime.combine(today, end, tzinfo=zone)
    else:
        return None
    return end_local.astimezone(timezone.utc).replace(tzinfo=None)


def channel_allows(settings: NotificationSettings, channel: str, notification: NotificationDto, priority: str) -> bool:
    config = settings.channel(channel)
    if config is None:
        # channels without user-facing settings (webhook) are not gated
        return True
    if not config.enabled:
        return False
    if not config.types.get(notification.type, True):
        return False
    if not config.categories.get(notification.category, True):
        return False
    return PRIORITY_RANK.get(priority, 1) >= PRIORITY_RANK[config.priority_threshold.value]


@dataclass
class PreferenceResolver:
    history: Optional[DeliveryHistory] = None

    def evaluate(self, notification: NotificationDto, settings: NotificationSettings, now: datetime, history: Optional[DeliveryHistory] = None) -> DeliveryDecision:
        now = to_naive_utc(now)
        history = history or self.history
        priority = notification.priority
        channels = list(notification.channels)

        if not settings.global_enabled:
            return DeliveryDecision(SUPPRESS, [], priority, reason="globally_disabled")

        bypass_limits = False
        local_now = _local(now, settings.quiet_hours.timezone)
        for rule in active_rules(settings.rules):
            context = build_context(notification, local_now, priority, channels)
            if not matches(rule.condition, context):
                continue
            action = rule.action
            if action.type == RuleActionType.SET_PRIORITY:
                priority = action.parameters["priority"]
                continue
            if action.type == RuleActionType.SET_CHANNELS:
                channels = [c for c in action.parameters["channels"] if isinstance(c, str)]
                continue
            logger.debug(f"Rule '{rule.name}' matched notification {notification.id}: {action.type.value}")
            if action.type == RuleActionType.SUPPRESS:
                return DeliveryDecision(SUPPRESS, [], priority, reason=f"rule:{rule.id}")
            if action.type == RuleActionType.GROUP:
                return DeliveryDecision(GROUP, channels, priority, reason=f"rule:{rule.id}")
            if action.type == RuleActionType.DELAY:
                minutes = action.parameters.get("minutes", 60)
                return DeliveryDecision(DELAY, channels, priority, now + timedelta(minutes=minutes), f"rule:{rule.id}")
            bypass_limits = True
            break

        channels = [c for c in channels if channel_allows(settings, c, notification, priority)]
        if not channels:
            return DeliveryDecision(SUPPRESS, [], priority, reason="no_channels")

        if bypass_limits:
            return DeliveryDecision(ALLOW, channels, priority, reason="rule_allow")

        urgent = priority == "urgent"

        quiet_end = quiet_window_end(settings.quiet_hours, now)
        if quiet_end is not None and not (urgent and settings.quiet_hours.emergency_override):
            return DeliveryDecision(DELAY, channels, priority, quiet_end, "quiet_hours")

        if urgent:
            return DeliveryDecision(ALLOW, channels, priority)

        limited = self._check_frequency(notification, settings, now, history)
        if limited is not None:
            action, deliver_at, reason = limited
            return DeliveryDecision(action, channels if action != SUPPRESS else [], priority, deliver_at, reason)

        burst = settings.frequency.burst_protection
        if burst.enabled:
            window = timedelta(minutes=burst.window_minutes)
            recent = history.count_since(notification.user_id, now - window)
            if recent >= burst.threshold:
                if burst.action == BurstAction.SUPPRESS:
                    return DeliveryDecision(SUPPRESS, [], priority, reason="burst")
                if burst.action == BurstAction.DELAY:
                    return DeliveryDecision(DELAY, channels, priority, now + window, "burst")
                return DeliveryDecision(GROUP, channels, priority, reason="burst")

        return DeliveryDecision(ALLOW, channels, priority)

    def _check_frequency(self, notification: NotificationDto, settings: NotificationSettings, now: datetime, history: DeliveryHistory) -> Optional[Tuple[str, Optional[datetime], str]]:
        limits = [(settings.frequency.global_limit, None, "global")]
        per_type = settings.frequency.per_type.get(notification.type)
        if per_type is not None:
            limits.append((per_type, notification.type, "type"))

        for limit, type_filter, scope in limits:
            exceeded = self._exceeded_window(history, notification.user_id, limit, type_filter, now)
            if exceeded:
                return SUPPRESS, None, f"frequency_limited:{scope}:{exceeded}"

        for limit, type_filter, scope in limits:
            if not limit.cooldown_minutes:
                continue
            last = history.last_sent_at(notification.user_id, type_filter)
            if last is None:
                continue
            ready_at = last + timedelta(minutes=limit.cooldown_minutes)
            if ready_at > now:
                return DELAY, ready_at, f"cooldown:{scope}"
        return None

    def _exceeded_window(self, history: DeliveryHistory, user_id: str, limit: FrequencyLimit, type_filter: Optional[str], now: datetime) -> Optional[str]:
        for attr, span in WINDOWS:
            maximum = getattr(limit, attr)
            if maximum and history.count_since(user_id, now - span, type_filter) >= maximum:
                return attr
        return None

from datetime import datetime
from typing import Any, Dict, List, Optional

from ..ports.notification_repo import NotificationDto
from ...schemas.notifications.notification import PRIORITY_RANK
from ...schemas.settings.settings import ConditionOperator, NotificationRule, RuleCondition


def build_context(notification: NotificationDto, local_now: datetime, priority: Optional[str] = None, channels: Optional[List[str]] = None) -> Dict[str, Dict[str, Any]]:
    """Values a rule condition can look at, grouped by condition type."""
    return {
        "notification": {
            "id": notification.id,
            "type": notification.type,
            "category": notification.category,
            "priority": priority or notification.priority,
            "title": notification.title,
            "body": notification.body,
            "channels": channels if channels is not None else list(notification.channels),
            "data": notification.data or {},
        },
        "time": {
            "hour": local_now.hour,
            "minute": local_now.minute,
            "weekday": (local_now.weekday() + 1) % 7,  # Sunday = 0
            "time": local_now.strftime("%H:%M"),
        },
        "device": dict((notification.meta or {}).get("deviceInfo") or {}),
        "user": {"id": notification.user_id},
        "custom": dict(notification.data or {}),
    }


def _lookup(context: Dict[str, Dict[str, Any]], condition: RuleCondition) -> Any:
    current: Any = context.get(condition.type, {})
    for part in condition.field.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        else:
            return None
    return current


def _ordered(left: Any, right: Any):
    # priorities compare by rank, not alphabetically
    if isinstance(left, str) and isinstance(right, str) and left in PRIORITY_RANK and right in PRIORITY_RANK:
        return PRIORITY_RANK[left], PRIORITY_RANK[right]
    return left, right


def _compare(actual: Any, operator: ConditionOperator, expected: Any) -> bool:
    try:
        if operator == ConditionOperator.EQUALS:
            return actual == expected
        if operator == ConditionOperator.NOT_EQUALS:
            return actual != expected
        if operator == ConditionOperator.CONTAINS:
            return actual is not None and expected in actual
        if operator == ConditionOperator.NOT_CONTAINS:
            return actual is None or expected not in actual
        if operator == ConditionOperator.GREATER_THAN:
            left, right = _ordered(actual, expected)
            return left is not None and left > right
        if operator == ConditionOperator.LESS_THAN:
            left, right = _ordered(actual, expected)
            return left is not None and left < right
        if operator == ConditionOperator.IN:
            return actual in (expected or [])
        if operator == ConditionOperator.NOT_IN:
            return actual not in (expected or [])
    except TypeError:
        return False
    return False


def matches(condition: RuleCondition, context: Dict[str, Dict[str, Any]]) -> bool:
    result = _compare(_lookup(context, condition), condition.operator, condition.value)
    if not condition.nested:
        return result
    nested = [matches(child, context) for child in condition.nested]
    if condition.logical_operator == "OR":
        return result or any(nested)
    return result and all(nested)


def active_rules(rules: List[NotificationRule]) -> List[NotificationRule]:
    return sorted((r for r in rules if r.is_active), key=lambda r: r.priority, reverse=True)

from datetime import datetime, timedelta, timezone

from sav3_notifications.application.services.preference_resolver import (
    ALLOW,
    DELAY,
    GROUP,
    SUPPRESS,
    PreferenceResolver,
    quiet_window_end,
)
from sav3_notifications.schemas.settings.settings import NotificationSettings, QuietHours

# Monday 2026-10-19, 12:00 UTC
NOON = datetime(2026, 10, 19, 12, 0)


class FakeHistory:
    def __init__(self, sends=None):
        # (user_id, type, sent_at)
        self.sends = list(sends or [])

    def count_since(self, user_id, since, type=None):
        return sum(1 for u, t, at in self.sends if u == user_id and at >= since and (type is None or t == type))

    def last_sent_at(self, user_id, type=None):
        stamps = [at for u, t, at in self.sends if u == user_id and (type is None or t == type)]
        return max(stamps) if stamps else None


def _settings(**values):
    return NotificationSettings.model_validate(values)


def _resolver(sends=None):
    return PreferenceResolver(history=FakeHistory(sends))


def test_default_settings_allow_all_requested_channels(make_dto):
    decision = _resolver().evaluate(make_dto(channels=["in_app", "push", "email"]), NotificationSettings(), NOON)
    assert decision.action == ALLOW
    assert decision.allowed
    assert decision.channels == ["in_app", "push", "email"]
    assert decision.reason == "allowed"


def test_globally_disabled_suppresses(make_dto):
    decision = _resolver().evaluate(make_dto(), _settings(globalEnabled=False), NOON)
    assert decision.action == SUPPRESS
    assert decision.reason == "globally_disabled"


def test_channel_gating_by_enabled_type_category_and_threshold(make_dto):
    settings = _settings(channels={
        "push": {"enabled": False},
        "email": {"types": {"message": False}},
        "sms": {"categories": {"social": False}},
        "inApp": {"priorityThreshold": "high"},
    })
    decision = _resolver().evaluate(make_dto(channels=["push", "email", "sms", "in_app", "webhook"]), settings, NOON)
    assert decision.action == ALLOW
    assert decision.channels == ["webhook"]


def test_priority_threshold_admits_higher_priorities(make_dto):
    settings = _settings(channels={"push": {"priorityThreshold": "high"}})
    low = _resolver().evaluate(make_dto(channels=["push"], priority="normal"), settings, NOON)
    high = _resolver().evaluate(make_dto(channels=["push"], priority="urgent"), settings, NOON)
    assert low.action == SUPPRESS
    assert low.reason == "no_channels"
    assert high.channels == ["push"]


def test_quiet_hours_delay_until_window_end(make_dto):
    settings = _settings(quietHours={"enabled": True, "startTime": "22:00", "endTime": "07:00"})
    late = datetime(2026, 10, 19, 23, 30)
    decision = _resolver().evaluate(make_dto(), settings, late)
    assert decision.action == DELAY
    assert decision.reason == "quiet_hours"
    assert decision.deliver_at == datetime(2026, 10, 20, 7, 0)
    assert decision.channels == ["in_app", "push"]


def test_aware_timestamps_are_read_in_their_own_offset(make_dto):
    settings = _settings(quietHours={"enabled": True, "startTime": "22:00", "endTime": "07:00"})
    plus_two = timezone(timedelta(hours=2))
    # 23:30 at +02:00 is 21:30 UTC, before the window opens
    before = _resolver().evaluate(make_dto(), settings, datetime(2026, 10, 19, 23, 30, tzinfo=plus_two))
    assert before.action == ALLOW

    inside = _resolver().evaluate(make_dto(), settings, datetime(2026, 10, 20, 1, 30, tzinfo=plus_two))
    assert inside.action == DELAY
    assert inside.deliver_at == datetime(2026, 10, 20, 7, 0)


def test_quiet_hours_urgent_override(make_dto):
    late = datetime(2026, 10, 19, 23, 30)
    overridable = _settings(quietHours={"enabled": True})
    strict = _settings(quietHours={"enabled": True, "emergencyOverride": False})

    assert _resolver().evaluate(make_dto(priority="urgent"), overridable, late).action == ALLOW
    assert _resolver().evaluate(make_dto(priority="urgent"), strict, late).action == DELAY
    assert _resolver().evaluate(make_dto(priority="high"), overridable, late).action == DELAY


def test_quiet_window_belongs_to_its_start_day():
    # Friday only
    quiet = QuietHours(enabled=True, start_time="22:00", end_time="07:00", days=[5])
    saturday_early = datetime(2026, 10, 17, 3, 0)
    saturday_late = datetime(2026, 10, 17, 23, 0)
    friday_late = datetime(2026, 10, 16, 22, 0)

    assert quiet_window_end(quiet, saturday_early) == datetime(2026, 10, 17, 7, 0)
    assert quiet_window_end(quiet, friday_late) == datetime(2026, 10, 17, 7, 0)
    assert quiet_window_end(quiet, saturday_late) is None


def test_quiet_window_in_user_timezone():
    quiet = QuietHours(enabled=True, start_time="22:00", end_time="07:00", timezone="America/New_York")
    # 03:00 UTC is 23:00 the previous evening in New York (EDT, UTC-4)
    now = datetime(2026, 10, 19, 3, 0)
    assert quiet_window_end(quiet, now) == datetime(2026, 10, 19, 11, 0)
    assert quiet_window_end(quiet, datetime(2026, 10, 19, 12, 0)) is None


def test_same_day_window_and_empty_window():
    daytime = QuietHours(enabled=True, start_time="09:00", end_time="17:00")
    assert quiet_window_end(daytime, NOON) == datetime(2026, 10, 19, 17, 0)
    assert quiet_window_end(daytime, datetime(2026, 10, 19, 17, 0)) is None
    assert quiet_window_end(QuietHours(enabled=True, start_time="08:00", end_time="08:00"), NOON) is None
    assert quiet_window_end(QuietHours(enabled=False, start_time="09:00", end_time="17:00"), NOON) is None


def test_suppress_rule_wins_by_priority(make_dto):
    settings = _settings(rules=[
        {
            "id": "low",
            "name": "allow marketing",
            "priority": 1,
            "condition": {"field": "type", "operator": "equals", "value": "marketing"},
            "action": {"type": "allow"},
        },
        {
            "id": "mute-marketing",
            "name": "mute marketing",
            "priority": 10,
            "condition": {"field": "type", "operator": "equals", "value": "marketing"},
            "action": {"type": "suppress"},
        },
    ])
    decision = _resolver().evaluate(make_dto(type="marketing"), settings, NOON)
    assert decision.action == SUPPRESS
    assert decision.reason == "rule:mute-marketing"
    assert _resolver().evaluate(make_dto(type="message"), settings, NOON).action == ALLOW


def test_inactive_rules_are_ignored(make_dto):
    settings = _settings(rules=[{
        "name": "mute all",
        "isActive": False,
        "condition": {"field": "type", "operator": "equals", "value": "message"},
        "action": {"type": "suppress"},
    }])
    assert _resolver().evaluate(make_dto(), settings, NOON).action == ALLOW


def test_delay_and_group_rules(make_dto):
    delay = _settings(rules=[{
        "id": "later",
        "name": "later",
        "condition": {"field": "category", "operator": "equals", "value": "social"},
        "action": {"type": "delay", "parameters": {"minutes": 30}},
    }])
    group = _settings(rules=[{
        "id": "bundle",
        "name": "bundle",
        "condition": {"field": "type", "operator": "in", "value": ["like", "message"]},
        "action": {"type": "group"},
    }])

    delayed = _resolver().evaluate(make_dto(), delay, NOON)
    assert delayed.action == DELAY
    assert delayed.deliver_at == NOON + timedelta(minutes=30)
    assert delayed.reason == "rule:later"

    grouped = _resolver().evaluate(make_dto(), group, NOON)
    assert grouped.action == GROUP
    assert grouped.reason == "rule:bundle"


def test_set_priority_rule_feeds_quiet_hours_override(make_dto):
    settings = _settings(
        quietHours={"enabled": True, "startTime": "09:00", "endTime": "17:00"},
        rules=[{
            "name": "matches are urgent",
            "condition": {"field": "type", "operator": "equals", "value": "match"},
            "action": {"type": "set_priority", "parameters": {"priority": "urgent"}},
        }],
    )
    decision = _resolver().evaluate(make_dto(type="match"), settings, NOON)
    assert decision.action == ALLOW
    assert decision.priority == "urgent"
    assert _resolver().evaluate(make_dto(type="like"), settings, NOON).action == DELAY


def test_set_channels_rule_then_gating(make_dto):
    settings = _settings(
        channels={"sms": {"enabled": False}},
        rules=[{
            "name": "security by sms and email",
            "condition": {"field": "category", "operator": "equals", "value": "security"},
            "action": {"type": "set_channels", "parameters": {"channels": ["sms", "email"]}},
        }],
    )
    decision = _resolver().evaluate(make_dto(category="security"), settings, NOON)
    assert decision.channels == ["email"]


def test_allow_rule_bypasses_quiet_hours_and_limits(make_dto):
    sends = [("u1", "message", NOON - timedelta(minutes=5))]
    settings = _settings(
        quietHours={"enabled": True, "startTime": "09:00", "endTime": "17:00"},
        frequency={"global": {"maxPerHour": 1}},
        rules=[{
            "name": "always messages",
            "condition": {"field": "type", "operator": "equals", "value": "message"},
            "action": {"type": "allow"},
        }],
    )
    decision = _resolver(sends).evaluate(make_dto(), settings, NOON)
    assert decision.action == ALLOW
    assert decision.reason == "rule_allow"


def test_global_hourly_limit_suppresses(make_dto):
    sends = [("u1", "like", NOON - timedelta(minutes=10)), ("u1", "message", NOON - timedelta(minutes=50))]
    settings = _settings(frequency={"global": {"maxPerHour": 2}})
    decision = _resolver(sends).evaluate(make_dto(), settings, NOON)
    assert decision.action == SUPPRESS
    assert decision.reason == "frequency_limited:global:max_per_hour"
    assert decision.channels == []


def test_sliding_window_forgets_old_sends(make_dto):
    sends = [("u1", "like", NOON - timedelta(minutes=61)), ("u1", "like", NOON - timedelta(minutes=70))]
    settings = _settings(frequency={"global": {"maxPerHour": 2}})
    assert _resolver(sends).evaluate(make_dto(), settings, NOON).action == ALLOW


def test_per_type_daily_limit_only_counts_that_type(make_dto):
    sends = [("u1", "message", NOON - timedelta(hours=5)), ("u2", "like", NOON - timedelta(hours=1))]
    settings = _settings(frequency={"perType": {"message": {"maxPerDay": 1}, "like": {"maxPerDay": 1}}})

    blocked = _resolver(sends).evaluate(make_dto(type="message"), settings, NOON)
    assert blocked.reason == "frequency_limited:type:max_per_day"
    assert _resolver(sends).evaluate(make_dto(type="like"), settings, NOON).action == ALLOW


def test_cooldown_delays_until_ready(make_dto):
    last = NOON - timedelta(minutes=5)
    settings = _settings(frequency={"global": {"cooldownMinutes": 15}})
    decision = _resolver([("u1", "like", last)]).evaluate(make_dto(), settings, NOON)
    assert decision.action == DELAY
    assert decision.deliver_at == last + timedelta(minutes=15)
    assert decision.reason == "cooldown:global"


def test_urgent_skips_frequency_limits(make_dto):
    sends = [("u1", "message", NOON - timedelta(minutes=1))]
    settings = _settings(frequency={"global": {"maxPerHour": 1, "cooldownMinutes": 30}})
    assert _resolver(sends).evaluate(make_dto(priority="urgent"), settings, NOON).action == ALLOW


def test_burst_protection_actions(make_dto):
    sends = [("u1", "like", NOON - timedelta(minutes=m)) for m in (1, 2, 3)]

    def burst(action):
        return _settings(frequency={"burstProtection": {"enabled": True, "threshold": 3, "windowMinutes": 10, "action": action}})

    grouped = _resolver(sends).evaluate(make_dto(), burst("group"), NOON)
    assert grouped.action == GROUP
    assert grouped.reason == "burst"

    delayed = _resolver(sends).evaluate(make_dto(), burst("delay"), NOON)
    assert delayed.action == DELAY
    assert delayed.deliver_at == NOON + timedelta(minutes=10)

    assert _resolver(sends).evaluate(make_dto(), burst("suppress"), NOON).action == SUPPRESS
    assert _resolver(sends[:2]).evaluate(make_dto(), burst("suppress"), NOON).action == ALLOW


def test_history_can_be_passed_per_call(make_dto):
    settings = _settings(frequency={"global": {"maxPerHour": 1}})
    history = FakeHistory([("u1", "like", NOON - timedelta(minutes=1))])
    decision = PreferenceResolver().evaluate(make_dto(), settings, NOON, history)
    assert decision.action == SUPPRESS

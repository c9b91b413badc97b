"""Tests for schedule evaluation."""

from datetime import datetime, timedelta, timezone

from signal_engine.signals.factory import parse_schedule
from signal_engine.signals.models import NotificationPolicyType, SchedulePolicy
from signal_engine.signals.schedule import is_due, truncate_to_minute

SCHEDULED = NotificationPolicyType.SCHEDULED

# 2024-03-18 is a Monday
MONDAY_0900 = datetime(2024, 3, 18, 9, 0, tzinfo=timezone.utc)

MONDAY_NINE = parse_schedule({"intervals": [{"hour": 9, "minute": 0, "days": ["MONDAY"]}]})


class TestIsDue:
    def test_matching_minute(self):
        assert is_due(MONDAY_NINE, SCHEDULED, MONDAY_0900) is True

    def test_other_minute(self):
        assert is_due(MONDAY_NINE, SCHEDULED, MONDAY_0900 + timedelta(minutes=1)) is False

    def test_other_day(self):
        assert is_due(MONDAY_NINE, SCHEDULED, MONDAY_0900 + timedelta(days=1)) is False

    def test_seconds_within_the_minute_count(self):
        assert is_due(MONDAY_NINE, SCHEDULED, MONDAY_0900 + timedelta(seconds=42)) is True

    def test_fires_once_across_three_polls_in_the_minute(self):
        last_fired = None
        fired = 0

        for seconds in (0, 20, 40):
            now = MONDAY_0900 + timedelta(seconds=seconds)
            if is_due(MONDAY_NINE, SCHEDULED, now, last_fired):
                fired += 1
                last_fired = truncate_to_minute(now)

        assert fired == 1

    def test_fires_again_next_week(self):
        last_fired = MONDAY_0900

        assert is_due(MONDAY_NINE, SCHEDULED, MONDAY_0900 + timedelta(days=7), last_fired) is True

    def test_naive_times_are_utc(self):
        assert is_due(MONDAY_NINE, SCHEDULED, datetime(2024, 3, 18, 9, 0)) is True

    def test_policy_timezone(self):
        policy = parse_schedule(
            {
                "timezone": "America/New_York",
                "intervals": [{"hour": 9, "minute": 0, "days": ["MONDAY"]}],
            }
        )

        # 09:00 EDT is 13:00 UTC
        assert is_due(policy, SCHEDULED, datetime(2024, 3, 18, 13, 0, tzinfo=timezone.utc)) is True
        assert is_due(policy, SCHEDULED, MONDAY_0900) is False

    def test_empty_schedule_never_due(self):
        assert is_due(SchedulePolicy(), SCHEDULED, MONDAY_0900) is False

    def test_immediate_always_due(self):
        assert is_due(SchedulePolicy(), NotificationPolicyType.IMMEDIATE, MONDAY_0900) is True

"""Schedule evaluation for signals.

A SCHEDULED policy is due when the current minute, in the policy timezone,
matches one of its intervals. A guard against polling more than once in a
minute compares the truncated minute with the last firing time. IMMEDIATE
policies are always due; callers only invoke them on content-change events.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from signal_engine.signals.models import NotificationPolicyType, SchedulePolicy, Weekday


def truncate_to_minute(value: datetime) -> datetime:
    """Drop seconds and microseconds."""
    return value.replace(second=0, microsecond=0)


def is_due(
    policy: SchedulePolicy,
    notification_policy_type: NotificationPolicyType,
    now: datetime,
    last_fired: datetime | None = None,
) -> bool:
    """Return True if a signal should be evaluated at `now`.

    Args:
        policy: Schedule intervals and timezone
        notification_policy_type: SCHEDULED or IMMEDIATE
        now: Current time (timezone-aware; naive values are taken as UTC)
        last_fired: Minute of the last successful scheduled evaluation

    Returns:
        True if due and not already fired within this minute
    """
    if notification_policy_type == NotificationPolicyType.IMMEDIATE:
        return True

    minute = truncate_to_minute(_as_utc(now))

    if last_fired is not None and truncate_to_minute(_as_utc(last_fired)) == minute:
        return False

    local = minute.astimezone(ZoneInfo(policy.timezone))
    weekday = Weekday.from_datetime(local)

    return any(
        weekday in interval.days and interval.hour == local.hour and interval.minute == local.minute
        for interval in policy.intervals
    )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

"""Signal factory module for parsing and validating signal definitions.

This module provides functions for:
- Parsing filter trees, volume comparisons and schedules from their JSON form
- Validating signal invariants at save time (ConfigurationError)
- Building SignalDefinition instances from persisted rows
- Checking lifecycle status transitions

Usage:
    from signal_engine.signals.factory import parse_query, validate_signal_config

    query = parse_query(payload["query"])
    validate_signal_config(signal_type, query, schedule, notification_policy_type)
"""

from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from signal_engine.signals.errors import ConfigurationError, InvalidStatusTransitionError
from signal_engine.signals.filters import include_field_for, is_known_field
from signal_engine.signals.models import (
    ALLOWED_TRANSITIONS,
    ComparisonOperator,
    FieldConstraint,
    FilterExpression,
    FilterGroup,
    FilterLeaf,
    LogicalOperator,
    NotificationPolicyType,
    Operand,
    OperandType,
    Period,
    ScheduleInterval,
    SchedulePolicy,
    SelectionPolicyType,
    SignalDefinition,
    SignalQuery,
    SignalStatus,
    SignalType,
    VolumeComparison,
    Weekday,
    normalize_values,
)

# Nesting limit for saved filter trees
MAX_FILTER_DEPTH = 32

_LOGICAL_KEYS = {op.value for op in LogicalOperator}


# ---------------------------------------------------------------------------
# Filter trees
# ---------------------------------------------------------------------------


def parse_filter(data: Any, *, strict: bool = True) -> FilterExpression:
    """Parse a saved filter query into a FilterExpression tree.

    Args:
        data: JSON object. Composite nodes use a single "AND", "OR" or "NOT"
            key; any other object is a leaf mapping field names to a value or
            a list of values.
        strict: Reject field names the schema does not know. Disabled when
            loading stored signals so evaluation can fail closed instead.

    Raises:
        ConfigurationError: If the tree is malformed
    """
    return _parse_node(data, strict=strict, depth=0)


def _parse_node(data: Any, *, strict: bool, depth: int) -> FilterExpression:
    if depth > MAX_FILTER_DEPTH:
        raise ConfigurationError(f"Filter nesting exceeds {MAX_FILTER_DEPTH} levels")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Filter node must be an object, got {type(data).__name__}")

    logical = _LOGICAL_KEYS & data.keys()
    if not logical:
        return _parse_leaf(data, strict=strict)

    if len(data) != 1:
        raise ConfigurationError(
            f"Logical node must have exactly one key, got {sorted(data.keys())}"
        )

    operator = LogicalOperator(logical.pop())
    raw_children = data[operator.value]

    if operator == LogicalOperator.NOT and isinstance(raw_children, dict):
        raw_children = [raw_children]

    if not isinstance(raw_children, list):
        raise ConfigurationError(f"{operator.value} expects a list of filter nodes")

    children = tuple(_parse_node(child, strict=strict, depth=depth + 1) for child in raw_children)
    return FilterGroup(operator=operator, children=children)


def _parse_leaf(data: dict[str, Any], *, strict: bool) -> FilterLeaf:
    if not data:
        raise ConfigurationError("Filter leaf must constrain at least one field")

    includes: dict[str, frozenset[str]] = {}
    excludes: dict[str, frozenset[str]] = {}

    for name, raw in data.items():
        if strict and not is_known_field(name):
            raise ConfigurationError(f"Unknown filter field '{name}'")

        values = _leaf_values(name, raw)
        field_name = include_field_for(name)
        if field_name != name:
            excludes[field_name] = excludes.get(field_name, frozenset()) | values
        else:
            includes[field_name] = includes.get(field_name, frozenset()) | values

    constraints = tuple(
        (name, FieldConstraint(include=includes.get(name, frozenset()), exclude=excludes.get(name, frozenset())))
        for name in sorted(includes.keys() | excludes.keys())
    )
    return FilterLeaf(constraints=constraints)


def _leaf_values(name: str, raw: Any) -> frozenset[str]:
    if isinstance(raw, (str, int)) and not isinstance(raw, bool):
        raw = [raw]
    if not isinstance(raw, list) or not all(
        isinstance(v, (str, int)) and not isinstance(v, bool) for v in raw
    ):
        raise ConfigurationError(f"Field '{name}' expects a string or list of strings")

    values = normalize_values(raw)
    if not values or "" in values:
        raise ConfigurationError(f"Field '{name}' must not be empty")
    return values


# ---------------------------------------------------------------------------
# Volume comparisons and queries
# ---------------------------------------------------------------------------


def parse_operand(data: Any) -> Operand:
    """Parse one side of a volume comparison."""
    if not isinstance(data, dict):
        raise ConfigurationError("Operand must be an object")

    operand_type = _enum(OperandType, data.get("type"), "operand type")
    period = _enum(Period, data.get("period", Period.DAY.value), "period")

    trailing_days = data.get("trailingDays", 7)
    if not isinstance(trailing_days, int) or isinstance(trailing_days, bool) or trailing_days < 1:
        raise ConfigurationError("trailingDays must be a positive integer")

    multiplier = _number(data.get("multiplier", 1.0), "multiplier")

    value = data.get("value")
    if operand_type == OperandType.THRESHOLD:
        if value is None:
            raise ConfigurationError("THRESHOLD operand requires a value")
        value = _number(value, "value")
    elif value is not None:
        raise ConfigurationError(f"{operand_type.value} operand does not take a value")

    return Operand(
        type=operand_type,
        value=value,
        period=period,
        trailing_days=trailing_days,
        multiplier=multiplier,
    )


def parse_volume(data: Any) -> VolumeComparison:
    """Parse a volume comparison expression."""
    if not isinstance(data, dict):
        raise ConfigurationError("Volume comparison must be an object")

    for key in ("left", "right", "operator"):
        if key not in data:
            raise ConfigurationError(f"Volume comparison requires '{key}'")

    return VolumeComparison(
        left=parse_operand(data["left"]),
        right=parse_operand(data["right"]),
        operator=_enum(ComparisonOperator, data["operator"], "operator"),
    )


def parse_query(data: Any, *, strict: bool = True) -> SignalQuery:
    """Parse a signal query holding an optional filter and volume expression."""
    if not isinstance(data, dict):
        raise ConfigurationError("Query must be an object")

    raw_filter = data.get("filter")
    raw_volume = data.get("volume")

    return SignalQuery(
        filter=parse_filter(raw_filter, strict=strict) if raw_filter is not None else None,
        volume=parse_volume(raw_volume) if raw_volume is not None else None,
    )


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------


def parse_schedule(data: Any) -> SchedulePolicy:
    """Parse a schedule policy.

    Example:
        {"timezone": "Europe/Berlin",
         "intervals": [{"hour": 9, "minute": 0, "days": ["MONDAY"]}]}
    """
    if data is None:
        return SchedulePolicy()
    if not isinstance(data, dict):
        raise ConfigurationError("Schedule must be an object")

    tz_name = data.get("timezone", "UTC")
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError, TypeError) as e:
        raise ConfigurationError(f"Unknown timezone '{tz_name}'") from e

    raw_intervals = data.get("intervals", [])
    if not isinstance(raw_intervals, list):
        raise ConfigurationError("Schedule intervals must be a list")

    return SchedulePolicy(
        intervals=tuple(_parse_interval(raw) for raw in raw_intervals),
        timezone=tz_name,
    )


def _parse_interval(data: Any) -> ScheduleInterval:
    if not isinstance(data, dict):
        raise ConfigurationError("Schedule interval must be an object")

    hour = data.get("hour")
    minute = data.get("minute")
    if not isinstance(hour, int) or isinstance(hour, bool) or not 0 <= hour <= 23:
        raise ConfigurationError("Schedule hour must be an integer in 0-23")
    if not isinstance(minute, int) or isinstance(minute, bool) or not 0 <= minute <= 59:
        raise ConfigurationError("Schedule minute must be an integer in 0-59")

    raw_days = data.get("days")
    if not isinstance(raw_days, list) or not raw_days:
        raise ConfigurationError("Schedule interval requires a non-empty list of days")

    days = frozenset(
        _enum(Weekday, day.upper() if isinstance(day, str) else day, "weekday") for day in raw_days
    )
    return ScheduleInterval(hour=hour, minute=minute, days=days)


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------


def validate_signal_config(
    signal_type: SignalType,
    query: SignalQuery,
    schedule: SchedulePolicy,
    notification_policy_type: NotificationPolicyType,
) -> None:
    """Validate cross-field invariants of a signal.

    Raises:
        ConfigurationError: If signal_type and query do not agree, or a
            SCHEDULED signal has no intervals
    """
    if signal_type == SignalType.ARTICLES and query.filter is None:
        raise ConfigurationError("ARTICLES signals require a content filter")

    if signal_type == SignalType.ARTICLES_VOLUME and query.volume is None:
        raise ConfigurationError("ARTICLES_VOLUME signals require a volume comparison")

    if notification_policy_type == NotificationPolicyType.SCHEDULED and not schedule.intervals:
        raise ConfigurationError("SCHEDULED signals require at least one schedule interval")


def build_definition(record: Any, *, strict: bool = False) -> SignalDefinition:
    """Build a SignalDefinition from a persisted SignalRecord.

    Stored rows were validated at save time; parsing is lenient about filter
    field names so a schema change degrades to fail-closed evaluation.

    Raises:
        ConfigurationError: If the stored definition no longer parses
    """
    signal_type = _enum(SignalType, record.signal_type, "signal type")
    notification_policy_type = _enum(
        NotificationPolicyType, record.notification_policy_type, "notification policy"
    )
    query = parse_query(record.query, strict=strict)
    schedule = parse_schedule(record.schedule)

    validate_signal_config(signal_type, query, schedule, notification_policy_type)

    return SignalDefinition(
        id=record.id,
        name=record.name,
        status=_enum(SignalStatus, record.status, "status"),
        signal_type=signal_type,
        schedule=schedule,
        notification_policy_type=notification_policy_type,
        selection_policy_type=_enum(
            SelectionPolicyType, record.selection_policy_type, "selection policy"
        ),
        query=query,
        contact_point_ids=tuple(record.contact_point_ids or ()),
        watermark=normalize_timestamp(record.watermark),
        last_fired_at=normalize_timestamp(record.last_fired_at),
        last_evaluated_at=normalize_timestamp(record.last_evaluated_at),
    )


def check_transition(current: SignalStatus, requested: SignalStatus) -> None:
    """Raise InvalidStatusTransitionError unless current -> requested is allowed."""
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransitionError(current.value, requested.value)


def normalize_timestamp(timestamp: datetime | None) -> datetime | None:
    """Normalize a timestamp to UTC.

    - If None: None
    - If naive: assume UTC (SQLite drops tzinfo)
    - If other tz: convert to UTC
    """
    if timestamp is None:
        return None

    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)

    return timestamp.astimezone(timezone.utc)


def _enum(enum_cls, value: Any, label: str):
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ConfigurationError(f"Invalid {label}: {value!r}") from e


def _number(value: Any, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{label} must be a number")
    return float(value)

"""Domain types for signals.

Everything here is an immutable value object. Persistence rows live in
signal_engine.models; conversion between the two happens in
signal_engine.signals.factory.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Union


class SignalStatus(str, Enum):
    """Lifecycle status of a signal."""

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    STOPPED = "STOPPED"
    ARCHIVED = "ARCHIVED"


# DRAFT -> ACTIVE -> STOPPED -> ARCHIVED, with STOPPED -> ACTIVE for resume.
# ACTIVE -> ARCHIVED is not allowed so in-flight dispatch settles first.
ALLOWED_TRANSITIONS: dict[SignalStatus, frozenset[SignalStatus]] = {
    SignalStatus.DRAFT: frozenset({SignalStatus.ACTIVE}),
    SignalStatus.ACTIVE: frozenset({SignalStatus.STOPPED}),
    SignalStatus.STOPPED: frozenset({SignalStatus.ACTIVE, SignalStatus.ARCHIVED}),
    SignalStatus.ARCHIVED: frozenset(),
}


class SignalType(str, Enum):
    """What a signal watches."""

    ARTICLES = "ARTICLES"
    ARTICLES_VOLUME = "ARTICLES_VOLUME"


class NotificationPolicyType(str, Enum):
    """When a signal is evaluated."""

    SCHEDULED = "SCHEDULED"
    IMMEDIATE = "IMMEDIATE"


class SelectionPolicyType(str, Enum):
    """How content is picked for a notification."""

    LATEST = "LATEST"
    MOST_RELEVANT = "MOST_RELEVANT"
    AI_NEWSLETTER_SUMMARY = "AI_NEWSLETTER_SUMMARY"


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"
    NOT = "NOT"


class OperandType(str, Enum):
    """Kinds of volume comparison operands."""

    THRESHOLD = "THRESHOLD"
    VOLUME = "VOLUME"
    MA_VAL = "MA_VAL"
    EMA_VAL = "EMA_VAL"
    MA_PCT = "MA_PCT"
    EMA_PCT = "EMA_PCT"


class ComparisonOperator(str, Enum):
    GT = "GT"
    GTE = "GTE"
    LT = "LT"
    LTE = "LTE"
    EQ = "EQ"


class Period(str, Enum):
    """Counting window for volume operands."""

    HOUR = "HOUR"
    DAY = "DAY"
    WEEK = "WEEK"
    MONTH = "MONTH"

    @property
    def delta(self) -> timedelta:
        return _PERIOD_DELTAS[self]


_PERIOD_DELTAS = {
    Period.HOUR: timedelta(hours=1),
    Period.DAY: timedelta(days=1),
    Period.WEEK: timedelta(days=7),
    Period.MONTH: timedelta(days=30),
}


class Weekday(str, Enum):
    """Days of week, in datetime.weekday() order."""

    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @classmethod
    def from_datetime(cls, value: datetime) -> "Weekday":
        return list(cls)[value.weekday()]


class DeliveryStatus(str, Enum):
    """Delivery status of one contact point for one notification."""

    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


# ---------------------------------------------------------------------------
# Filter expressions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldConstraint:
    """Include/exclude value sets for one content field.

    An empty include set means any value is accepted.
    """

    include: frozenset[str] = frozenset()
    exclude: frozenset[str] = frozenset()


@dataclass(frozen=True)
class FilterLeaf:
    """Field-scoped match criteria. All constraints must hold."""

    constraints: tuple[tuple[str, FieldConstraint], ...] = ()


@dataclass(frozen=True)
class FilterGroup:
    """AND / OR / NOT over child expressions."""

    operator: LogicalOperator
    children: tuple["FilterExpression", ...] = ()


FilterExpression = Union[FilterLeaf, FilterGroup]


@dataclass(frozen=True)
class ContentItem:
    """One article as seen by the engine.

    Attributes mirror the filterable fields. Multi-valued attributes are
    frozensets; relevance is supplied by the content source when available.
    """

    id: str
    published_at: datetime
    title: str = ""
    source: str | None = None
    country: str | None = None
    category: str | None = None
    language: str | None = None
    company_ids: frozenset[str] = frozenset()
    labels: frozenset[str] = frozenset()
    topics: frozenset[str] = frozenset()
    person_ids: frozenset[str] = frozenset()
    relevance: float | None = None

    def values_for(self, attribute: str) -> frozenset[str]:
        """Normalized value set of an attribute, for set intersection."""
        raw = getattr(self, attribute)
        if raw is None:
            return frozenset()
        if isinstance(raw, str):
            raw = (raw,)
        return normalize_values(raw)


def normalize_values(values: Iterable[Any]) -> frozenset[str]:
    return frozenset(str(v).strip().casefold() for v in values if v is not None)


# ---------------------------------------------------------------------------
# Volume comparisons
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Operand:
    """One side of a volume comparison."""

    type: OperandType
    value: float | None = None
    period: Period = Period.DAY
    trailing_days: int = 7
    multiplier: float = 1.0


@dataclass(frozen=True)
class VolumeComparison:
    left: Operand
    right: Operand
    operator: ComparisonOperator


@dataclass(frozen=True)
class SignalQuery:
    filter: FilterExpression | None = None
    volume: VolumeComparison | None = None


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScheduleInterval:
    hour: int
    minute: int
    days: frozenset[Weekday]


@dataclass(frozen=True)
class SchedulePolicy:
    intervals: tuple[ScheduleInterval, ...] = ()
    timezone: str = "UTC"


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SignalDefinition:
    """Validated, evaluable view of a persisted signal."""

    id: str
    name: str
    status: SignalStatus
    signal_type: SignalType
    schedule: SchedulePolicy
    notification_policy_type: NotificationPolicyType
    selection_policy_type: SelectionPolicyType
    query: SignalQuery
    contact_point_ids: tuple[str, ...] = ()
    watermark: datetime | None = None
    last_fired_at: datetime | None = None
    last_evaluated_at: datetime | None = None


@dataclass(frozen=True)
class SelectionResult:
    """Content attached to a notification."""

    items: tuple[ContentItem, ...] = ()
    digest: str | None = None
    summary_unavailable: bool = False

    @property
    def article_ids(self) -> list[str]:
        return [item.id for item in self.items]


@dataclass
class FilterStats:
    """Counters collected while evaluating filter trees."""

    unknown_fields: int = 0
    unknown_field_names: set[str] = field(default_factory=set)

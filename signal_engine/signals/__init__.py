"""Signal definitions and evaluation.

This package provides:
- Domain types for signals, filter trees and volume comparisons
- Parsing and validation of saved signal definitions
- FilterExpression evaluation, metric sampling and threshold comparison
- Schedule evaluation and content selection

The SignalOrchestrator lives in signal_engine.signals.orchestrator and is
imported from there directly.
"""

from signal_engine.signals.comparator import ComparisonResult, compare, evaluate_volume
from signal_engine.signals.errors import (
    ConfigurationError,
    DeliveryError,
    InvalidStatusTransitionError,
    LeaseConflictError,
    SignalEngineError,
    StaleEvaluationError,
    TransientDataError,
    UndefinedMetricError,
)
from signal_engine.signals.factory import (
    build_definition,
    check_transition,
    parse_filter,
    parse_query,
    parse_schedule,
    validate_signal_config,
)
from signal_engine.signals.filters import FilterResult, evaluate_batch, matches
from signal_engine.signals.metrics import MetricSampler
from signal_engine.signals.models import (
    ContentItem,
    FilterExpression,
    NotificationPolicyType,
    SelectionPolicyType,
    SignalDefinition,
    SignalStatus,
    SignalType,
)
from signal_engine.signals.schedule import is_due
from signal_engine.signals.selection import SelectionPolicyResolver

__all__ = [
    # Models
    "ContentItem",
    "FilterExpression",
    "NotificationPolicyType",
    "SelectionPolicyType",
    "SignalDefinition",
    "SignalStatus",
    "SignalType",
    # Errors
    "ConfigurationError",
    "DeliveryError",
    "InvalidStatusTransitionError",
    "LeaseConflictError",
    "SignalEngineError",
    "StaleEvaluationError",
    "TransientDataError",
    "UndefinedMetricError",
    # Factory
    "build_definition",
    "check_transition",
    "parse_filter",
    "parse_query",
    "parse_schedule",
    "validate_signal_config",
    # Evaluation
    "ComparisonResult",
    "FilterResult",
    "MetricSampler",
    "SelectionPolicyResolver",
    "compare",
    "evaluate_batch",
    "evaluate_volume",
    "is_due",
    "matches",
]

"""Exception hierarchy for the signal engine.

ConfigurationError is raised at save time and never reaches evaluation.
TransientDataError abandons a tick for one signal. The remaining errors are
operational: they are logged and handled inside the engine.
"""


class SignalEngineError(Exception):
    """Base class for all signal engine errors."""


class ConfigurationError(SignalEngineError):
    """Malformed signal definition (filter tree, schedule, query, policies)."""


class InvalidStatusTransitionError(SignalEngineError):
    """Requested lifecycle transition is not allowed."""

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot transition signal from {current} to {requested}")
        self.current = current
        self.requested = requested


class TransientDataError(SignalEngineError):
    """Content or metric source unavailable."""


class UndefinedMetricError(SignalEngineError):
    """Percentage metric over a zero baseline with non-zero current volume."""


class DeliveryError(SignalEngineError):
    """Transport failure while delivering to a contact point."""


class LeaseConflictError(SignalEngineError):
    """Another worker holds the dispatch lease for a notification."""

    def __init__(self, notification_id: str):
        super().__init__(f"Dispatch lease for notification {notification_id} is held elsewhere")
        self.notification_id = notification_id


class StaleEvaluationError(SignalEngineError):
    """The signal's watermark moved while it was being evaluated."""

    def __init__(self, signal_id: str):
        super().__init__(f"Signal {signal_id} was evaluated concurrently, watermark has moved")
        self.signal_id = signal_id

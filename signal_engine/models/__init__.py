from signal_engine.models.contact_point import ContactPoint
from signal_engine.models.notification import ContactPointNotification, SignalNotification
from signal_engine.models.signal import SignalRecord

__all__ = [
    "ContactPoint",
    "ContactPointNotification",
    "SignalNotification",
    "SignalRecord",
]

"""Request and response models for the HTTP API."""

from signal_engine.schemas.contact_point import ContactPointCreateRequest, ContactPointResponse
from signal_engine.schemas.notification import (
    DeliveryResponse,
    NotificationListResponse,
    NotificationResponse,
)
from signal_engine.schemas.signal import (
    SignalCreateRequest,
    SignalResponse,
    SignalUpdateRequest,
)

__all__ = [
    "ContactPointCreateRequest",
    "ContactPointResponse",
    "DeliveryResponse",
    "NotificationListResponse",
    "NotificationResponse",
    "SignalCreateRequest",
    "SignalResponse",
    "SignalUpdateRequest",
]

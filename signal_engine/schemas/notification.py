"""Schemas for the notifications API."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class DeliveryResponse(BaseModel):
    """Delivery state of one notification for one contact point."""

    model_config = ConfigDict(from_attributes=True)

    contact_point_id: str
    channel: str
    status: str
    retryable: bool
    attempts: int
    response_code: int | None
    error_message: str | None
    delivered_at: datetime | None


class NotificationResponse(BaseModel):
    """Response model for a single notification."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    signal_id: str
    signal_name: str
    signal_status: str
    issued_at: datetime
    article_ids: list[str]
    digest: str | None
    summary_unavailable: bool
    current_processed_at: datetime | None
    last_processed_at: datetime | None
    contact_points: list[DeliveryResponse]


class NotificationListResponse(BaseModel):
    """Response model for paginated notification list."""

    notifications: list[NotificationResponse]
    total: int
    offset: int
    limit: int

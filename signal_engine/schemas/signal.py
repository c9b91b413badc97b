"""Schemas for the signals API.

query and schedule are passed through as JSON documents and validated by
signal_engine.signals.factory, which raises ConfigurationError (HTTP 422).
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from signal_engine.signals.models import (
    NotificationPolicyType,
    SelectionPolicyType,
    SignalStatus,
    SignalType,
)


class SignalCreateRequest(BaseModel):
    """Request to create a signal. New signals start in DRAFT."""

    name: str = Field(min_length=1, max_length=255)
    signal_type: SignalType
    notification_policy_type: NotificationPolicyType = NotificationPolicyType.SCHEDULED
    selection_policy_type: SelectionPolicyType = SelectionPolicyType.LATEST
    query: dict[str, Any]
    schedule: dict[str, Any] | None = None
    contact_point_ids: list[str] = []


class SignalUpdateRequest(BaseModel):
    """Partial update of a signal. Omitted fields are left unchanged.

    signal_type is accepted only to reject changes to it.
    """

    name: str | None = Field(default=None, min_length=1, max_length=255)
    signal_type: SignalType | None = None
    notification_policy_type: NotificationPolicyType | None = None
    selection_policy_type: SelectionPolicyType | None = None
    query: dict[str, Any] | None = None
    schedule: dict[str, Any] | None = None
    contact_point_ids: list[str] | None = None


class SignalResponse(BaseModel):
    """Response model for a single signal."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    status: SignalStatus
    signal_type: SignalType
    notification_policy_type: NotificationPolicyType
    selection_policy_type: SelectionPolicyType
    query: dict[str, Any]
    schedule: dict[str, Any]
    contact_point_ids: list[str]
    watermark: datetime | None
    last_fired_at: datetime | None
    last_evaluated_at: datetime | None
    created_at: datetime
    updated_at: datetime

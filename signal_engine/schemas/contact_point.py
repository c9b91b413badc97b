"""Schemas for the contact points API."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ContactPointCreateRequest(BaseModel):
    """Request to register a contact point.

    destination may be a literal address or "env:NAME" to read it from the
    environment at delivery time.
    """

    name: str = Field(min_length=1, max_length=255)
    channel: str
    destination: str = Field(min_length=1, max_length=1024)


class ContactPointResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    channel: str
    destination: str
    enabled: bool
    created_at: datetime

"""Source-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from briefdeck.models import SourceType


class SourceCreate(BaseModel):
    type: SourceType
    url: str | None = None
    name: str | None = Field(default=None, max_length=255)
    refresh_interval_minutes: int | None = Field(default=None, ge=1)
    extraction_prompt: str | None = None


class SourceDetail(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    brief_id: int
    name: str
    type: str
    status: str
    fetch_status: str
    url: str
    refresh_interval_minutes: int
    last_fetched_at: datetime | None = None
    last_error: str | None = None
    email_address: str | None = None
    inbound_address: str | None = None
    created_at: datetime

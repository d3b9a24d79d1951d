"""Inbound email event schema (webhook body and queue job payload)."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class InboundEmail(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recipient: str
    from_address: str | None = Field(default=None, alias="from")
    subject: str = ""
    content: str = ""
    received_at: datetime
    message_id: str = Field(min_length=1, max_length=512)

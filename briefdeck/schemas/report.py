"""Report-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel


class ReportEntry(BaseModel):
    position: int
    score: int
    item_id: int
    title: str | None = None
    link: str | None = None
    summary: str | None = None
    published_at: datetime | None = None


class ReportDetail(BaseModel):
    id: int
    brief_id: int
    status: str
    generated_at: datetime
    items: list[ReportEntry]


class ExecuteBriefResponse(BaseModel):
    brief_id: int
    status: str

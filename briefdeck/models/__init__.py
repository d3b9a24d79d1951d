"""SQLAlchemy models for Briefdeck (PostgreSQL / SQLite)."""

from .base import Base
from .brief import Brief
from .enums import (
    BriefFrequency,
    BriefStatus,
    FetchStatus,
    ItemStatus,
    ReportStatus,
    SourceStatus,
    SourceType,
)
from .item import Item
from .raw_email import RawEmail
from .report import Report, ReportItem
from .source import Source

__all__ = [
    "Base",
    "Brief",
    "Source",
    "Item",
    "RawEmail",
    "Report",
    "ReportItem",
    "BriefFrequency",
    "BriefStatus",
    "FetchStatus",
    "ItemStatus",
    "ReportStatus",
    "SourceStatus",
    "SourceType",
]

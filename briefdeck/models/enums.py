"""Status and type enumerations stored as plain strings."""

import enum


class SourceType(enum.StrEnum):
    FEED = "FEED"
    SOCIAL_LINK = "SOCIAL_LINK"
    EMAIL = "EMAIL"
    WEB = "WEB"


class SourceStatus(enum.StrEnum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ERROR = "ERROR"


class FetchStatus(enum.StrEnum):
    IDLE = "IDLE"
    QUEUED = "QUEUED"
    FETCHING = "FETCHING"


class ItemStatus(enum.StrEnum):
    NEW = "NEW"
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    ERROR = "ERROR"


class BriefFrequency(enum.StrEnum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"


class BriefStatus(enum.StrEnum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"


class ReportStatus(enum.StrEnum):
    GENERATED = "GENERATED"

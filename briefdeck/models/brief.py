"""Brief model: a user's recurring briefing configuration."""

from datetime import datetime, time

from sqlalchemy import DateTime, Integer, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column

from briefdeck.utils import now_utc
from .base import Base
from .enums import BriefFrequency, BriefStatus


class Brief(Base):
    __tablename__ = "briefs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    criteria: Mapped[str] = mapped_column(Text, nullable=False, default="")
    frequency: Mapped[str] = mapped_column(String(16), nullable=False, default=BriefFrequency.DAILY)
    schedule_time: Mapped[time] = mapped_column(Time, nullable=False, default=time(8, 0))
    # 0=Monday .. 6=Sunday; NULL means any day
    schedule_day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=BriefStatus.ACTIVE, index=True)
    queued_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processing_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_executed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

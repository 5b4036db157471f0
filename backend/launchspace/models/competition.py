from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import DateTime, Integer, String, Text, CheckConstraint, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from launchspace.db import Base

class Competition(Base):
    __tablename__ = "competitions"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    competition_id: Mapped[str] = mapped_column(String(16), index=True, nullable=False)  # e.g. 2025-W03
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="weekly")
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="PST")
    status: Mapped[str] = mapped_column(String(16), index=True, nullable=False, default="upcoming")

    total_submissions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    standard_submissions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    premium_submissions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_standard_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=15)
    max_premium_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=10)  # on top of the shared 15

    total_votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    winner_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False))
    runner_up_ids: Mapped[list[str]] = mapped_column(ARRAY(UUID(as_uuid=False)), nullable=False, default=list)
    top_three_ids: Mapped[list[str]] = mapped_column(ARRAY(UUID(as_uuid=False)), nullable=False, default=list)

    theme: Mapped[str | None] = mapped_column(String(160))
    description: Mapped[str | None] = mapped_column(Text())
    prize_description: Mapped[str | None] = mapped_column(Text())

    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    awarded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("type", "competition_id", name="uq_competition_code_per_type"),
        CheckConstraint("start_date < end_date", name="ck_competition_window"),
        CheckConstraint("total_submissions >= 0", name="ck_competition_total_nonneg"),
    )

from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, CheckConstraint, func
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from launchspace.db import Base

def _uuid() -> str:
    return str(uuid.uuid4())

class App(Base):
    """A submitted AI project ("apps" collection)."""
    __tablename__ = "apps"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_uuid)
    slug: Mapped[str] = mapped_column(String(160), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    short_description: Mapped[str] = mapped_column(String(300), nullable=False)
    full_description: Mapped[str | None] = mapped_column(Text())
    website_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    website_key: Mapped[str] = mapped_column(String(2048), index=True, nullable=False)  # normalized host+path
    logo_url: Mapped[str | None] = mapped_column(String(2048))
    video_url: Mapped[str | None] = mapped_column(String(2048))
    screenshots: Mapped[list[str]] = mapped_column(ARRAY(Text()), nullable=False, default=list)
    categories: Mapped[list[str]] = mapped_column(ARRAY(String(64)), nullable=False, default=list)
    tags: Mapped[list[str]] = mapped_column(ARRAY(String(64)), nullable=False, default=list)
    pricing: Mapped[str] = mapped_column(String(16), nullable=False, default="Free")  # Free|Freemium|Paid
    maker_name: Mapped[str | None] = mapped_column(String(120))
    maker_twitter: Mapped[str | None] = mapped_column(String(120))
    contact_email: Mapped[str] = mapped_column(String(320), nullable=False)
    submitted_by: Mapped[str] = mapped_column(UUID(as_uuid=False), index=True, nullable=False)

    plan: Mapped[str] = mapped_column(String(16), nullable=False, default="standard")  # standard|premium
    premium_badge: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    homepage_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    backlink_url: Mapped[str | None] = mapped_column(String(2048))

    status: Mapped[str] = mapped_column(String(16), index=True, nullable=False, default="pending")
    is_draft: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payment_status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    order_id: Mapped[str | None] = mapped_column(String(128))
    rejection_reason: Mapped[str | None] = mapped_column(Text())

    launch_week: Mapped[str | None] = mapped_column(String(16))
    weekly_competition_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False), ForeignKey("competitions.id", ondelete="SET NULL"), index=True
    )
    entered_weekly: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    weekly_competition_ended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    link_type: Mapped[str] = mapped_column(String(16), nullable=False, default="nofollow")
    dofollow_status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    dofollow_reason: Mapped[str | None] = mapped_column(String(32))
    dofollow_awarded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    weekly_winner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    weekly_position: Mapped[int | None] = mapped_column(Integer)

    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    upvotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_engagement: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    homepage_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    homepage_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    launch_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    launched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint("weekly_position IS NULL OR weekly_position BETWEEN 1 AND 3", name="ck_apps_weekly_position"),
        CheckConstraint("upvotes >= 0", name="ck_apps_upvotes_nonneg"),
    )

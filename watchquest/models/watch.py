from datetime import date, datetime
from typing import Optional

from sqlalchemy import String, Integer, Date, DateTime, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from watchquest.database import Base


STATUS_PLANNING = "planning"
STATUS_WATCHING = "watching"
STATUS_WATCHED = "watched"
STATUS_DROPPED = "dropped"

WATCH_STATUSES = (STATUS_PLANNING, STATUS_WATCHING, STATUS_WATCHED, STATUS_DROPPED)


class WatchRecord(Base):
    """A user's status for a title. Derived from episode watches for series."""

    __tablename__ = "watch_records"
    __table_args__ = (
        UniqueConstraint("user_id", "title_id", name="uq_watch_records_user_title"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    title_id: Mapped[int] = mapped_column(ForeignKey("titles.id", ondelete="CASCADE"), index=True)
    status: Mapped[str] = mapped_column(String(20), default=STATUS_WATCHED)
    watched_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


class EpisodeWatch(Base):
    """Existence of a row means the user has watched the episode."""

    __tablename__ = "episode_watches"
    __table_args__ = (
        UniqueConstraint("user_id", "episode_id", name="uq_episode_watches_user_episode"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    episode_id: Mapped[int] = mapped_column(ForeignKey("episodes.id", ondelete="CASCADE"), index=True)
    watched_date: Mapped[date] = mapped_column(Date)


class Review(Base):
    """A user's rating (1-5) and optional text for a title."""

    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("user_id", "title_id", name="uq_reviews_user_title"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    title_id: Mapped[int] = mapped_column(ForeignKey("titles.id", ondelete="CASCADE"), index=True)
    rating: Mapped[int] = mapped_column(Integer)
    content: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

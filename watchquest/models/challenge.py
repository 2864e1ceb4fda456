from datetime import date, datetime
from typing import Optional

from sqlalchemy import String, Integer, Date, DateTime, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from watchquest.database import Base


CHALLENGE_MOVIES = "movies"
CHALLENGE_SERIES = "series"
CHALLENGE_GENRE = "genre"
CHALLENGE_BOTH = "both"

# Highest first; tiers are independent gates so the order only affects output order
TIERS = ("platinum", "gold", "silver")


class Badge(Base):
    """Catalog entry for an awardable badge."""

    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    level: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)


class Challenge(Base):
    """A time-boxed goal with up to three reward tiers."""

    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(500))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Criteria kind: "movies", "series", "genre", "both"
    type: Mapped[str] = mapped_column(String(20))
    criteria_value: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    target_silver: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    target_gold: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    target_platinum: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    badge_silver_id: Mapped[Optional[int]] = mapped_column(ForeignKey("badges.id"), nullable=True)
    badge_gold_id: Mapped[Optional[int]] = mapped_column(ForeignKey("badges.id"), nullable=True)
    badge_platinum_id: Mapped[Optional[int]] = mapped_column(ForeignKey("badges.id"), nullable=True)

    start_date: Mapped[date] = mapped_column(Date)
    # Open-ended when null: the window closes "today"
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    @property
    def max_target(self) -> Optional[int]:
        targets = [t for t in (self.target_silver, self.target_gold, self.target_platinum) if t is not None]
        return max(targets) if targets else None


class ChallengeParticipant(Base):
    """A user's enrollment and progress in a challenge."""

    __tablename__ = "challenge_participants"
    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_challenge_participants_challenge_user"),
        # Ids are never reused: user badges keep pointing at left participations
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    challenge_id: Mapped[int] = mapped_column(ForeignKey("challenges.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    progress: Mapped[int] = mapped_column(Integer, default=0)
    joined_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    # Once set these are never cleared
    completed_silver_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_gold_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_platinum_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    @property
    def current_tier(self) -> Optional[str]:
        for tier in TIERS:
            if getattr(self, f"completed_{tier}_at") is not None:
                return tier
        return None


class UserBadge(Base):
    """A badge earned by a user through a specific challenge participation."""

    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "badge_id", "challenge_participant_id",
            name="uq_user_badges_user_badge_participant"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    badge_id: Mapped[int] = mapped_column(ForeignKey("badges.id"), index=True)
    level: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    challenge_participant_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("challenge_participants.id", ondelete="SET NULL"), nullable=True
    )
    earned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

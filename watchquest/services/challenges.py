"""
Challenge progress and badge awarding.

Every mutation path goes through `refresh_challenge_progress`, which for each
eligible participation computes progress with `evaluate_participation` and
awards the tiers it crossed. Awards are guarded twice: completion timestamps
are set with a conditional update, and user badges carry a unique
(user, badge, participation) constraint, so re-running is always safe.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional
import logging

from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from watchquest.clock import Clock
from watchquest.config import settings
from watchquest.database import insert_ignoring_conflicts
from watchquest.models import (
    Title, Season, Episode, WatchRecord, EpisodeWatch,
    Badge, Challenge, ChallengeParticipant, UserBadge
)
from watchquest.models.challenge import (
    CHALLENGE_MOVIES, CHALLENGE_SERIES, CHALLENGE_GENRE, CHALLENGE_BOTH, TIERS
)
from watchquest.models.title import MEDIA_MOVIE, MEDIA_SERIES
from watchquest.results import CompletedChallenge

logger = logging.getLogger(__name__)


@dataclass
class ParticipationOutcome:
    progress: int
    fired_tiers: list[str] = field(default_factory=list)


def challenge_window(challenge: Challenge, today: date) -> tuple[date, date]:
    return challenge.start_date, challenge.end_date or today


def is_eligible(participant: ChallengeParticipant, challenge: Challenge, today: date) -> bool:
    """Expired or fully completed participations are left untouched."""
    if participant.completed_platinum_at is not None:
        return False
    return challenge.end_date is None or challenge.end_date >= today


async def count_watched_movies(session: AsyncSession, user_id: int, start: date, end: date) -> int:
    result = await session.execute(
        select(func.count(func.distinct(WatchRecord.title_id)))
        .join(Title, WatchRecord.title_id == Title.id)
        .where(
            WatchRecord.user_id == user_id,
            Title.media_type == MEDIA_MOVIE,
            WatchRecord.watched_date >= start,
            WatchRecord.watched_date <= end
        )
    )
    return result.scalar() or 0


async def count_completed_series(session: AsyncSession, user_id: int, start: date, end: date) -> int:
    """
    Series whose every episode the user has watched, counted only when the
    completing watch (the latest episode watch) falls inside the window.
    Earlier episodes may have been watched at any time.
    """
    totals = (
        select(
            Season.series_id.label("series_id"),
            func.count(Episode.id).label("total")
        )
        .join(Episode, Episode.season_id == Season.id)
        .group_by(Season.series_id)
        .subquery()
    )
    watched = (
        select(
            Season.series_id.label("series_id"),
            func.count(func.distinct(EpisodeWatch.episode_id)).label("watched"),
            func.max(EpisodeWatch.watched_date).label("completed_on")
        )
        .select_from(EpisodeWatch)
        .join(Episode, EpisodeWatch.episode_id == Episode.id)
        .join(Season, Episode.season_id == Season.id)
        .where(EpisodeWatch.user_id == user_id)
        .group_by(Season.series_id)
        .subquery()
    )
    result = await session.execute(
        select(func.count(func.distinct(Title.id)))
        .join(totals, totals.c.series_id == Title.id)
        .join(watched, watched.c.series_id == Title.id)
        .where(
            Title.media_type == MEDIA_SERIES,
            watched.c.watched == totals.c.total,
            watched.c.completed_on >= start,
            watched.c.completed_on <= end
        )
    )
    return result.scalar() or 0


async def count_watched_in_genre(
    session: AsyncSession,
    user_id: int,
    genre: Optional[str],
    start: date,
    end: date
) -> int:
    if not genre:
        return 0
    result = await session.execute(
        select(func.count(func.distinct(WatchRecord.title_id)))
        .join(Title, WatchRecord.title_id == Title.id)
        .where(
            WatchRecord.user_id == user_id,
            Title.genre.icontains(genre.strip(), autoescape=True),
            WatchRecord.watched_date >= start,
            WatchRecord.watched_date <= end
        )
    )
    return result.scalar() or 0


def clamp_progress(progress: int, challenge: Challenge) -> int:
    max_target = challenge.max_target
    if max_target is not None and progress > max_target:
        return max_target
    return progress


async def calculate_progress(session: AsyncSession, user_id: int, challenge: Challenge, today: date) -> int:
    """Clamped progress of a user against a challenge's criteria. Read-only."""
    start, end = challenge_window(challenge, today)
    progress = 0

    if challenge.type in (CHALLENGE_MOVIES, CHALLENGE_BOTH):
        progress += await count_watched_movies(session, user_id, start, end)

    if challenge.type in (CHALLENGE_SERIES, CHALLENGE_BOTH):
        progress += await count_completed_series(session, user_id, start, end)

    if challenge.type == CHALLENGE_GENRE:
        progress = await count_watched_in_genre(session, user_id, challenge.criteria_value, start, end)

    if challenge.type not in (CHALLENGE_MOVIES, CHALLENGE_SERIES, CHALLENGE_GENRE, CHALLENGE_BOTH):
        logger.warning(f"Challenge {challenge.id} has unknown type {challenge.type!r}")

    return clamp_progress(progress, challenge)


def tiers_to_fire(challenge: Challenge, participant: ChallengeParticipant, progress: int) -> list[str]:
    fired = []
    for tier in TIERS:
        target = getattr(challenge, f"target_{tier}")
        badge_id = getattr(challenge, f"badge_{tier}_id")
        completed_at = getattr(participant, f"completed_{tier}_at")
        if completed_at is None and target is not None and progress >= target and badge_id is not None:
            fired.append(tier)
    return fired


async def evaluate_participation(
    session: AsyncSession,
    participant: ChallengeParticipant,
    challenge: Challenge,
    clock: Clock
) -> ParticipationOutcome:
    """New progress for a participation and the tiers it newly reaches. Does not write."""
    progress = await calculate_progress(session, participant.user_id, challenge, clock.today())
    return ParticipationOutcome(progress, tiers_to_fire(challenge, participant, progress))


async def get_eligible_participations(
    session: AsyncSession,
    user_id: int,
    today: date
) -> list[tuple[ChallengeParticipant, Challenge]]:
    result = await session.execute(
        select(ChallengeParticipant, Challenge)
        .join(Challenge, ChallengeParticipant.challenge_id == Challenge.id)
        .where(
            ChallengeParticipant.user_id == user_id,
            ChallengeParticipant.completed_platinum_at.is_(None),
            or_(Challenge.end_date.is_(None), Challenge.end_date >= today)
        )
        .order_by(ChallengeParticipant.id)
    )
    return [(row[0], row[1]) for row in result.all()]


def badge_image_ref(image_url: Optional[str]) -> Optional[str]:
    if not image_url:
        return None
    if image_url.startswith("http") or not settings.badge_image_base_url:
        return image_url
    return f"{settings.badge_image_base_url.rstrip('/')}/{image_url.lstrip('/')}"


def badge_payload(badge: Badge) -> dict:
    return {
        "id": badge.id,
        "name": badge.name,
        "description": badge.description,
        "imageRef": badge_image_ref(badge.image_url),
        "level": badge.level
    }


async def award_tier(
    session: AsyncSession,
    participant: ChallengeParticipant,
    challenge: Challenge,
    tier: str,
    now: datetime
) -> Optional[CompletedChallenge]:
    """Mark a tier completed and issue its badge, unless that already happened."""
    badge = await session.get(Badge, getattr(challenge, f"badge_{tier}_id"))
    if badge is None:
        logger.warning(f"Challenge {challenge.id} references a missing {tier} badge, skipping")
        return None

    completed_column = getattr(ChallengeParticipant, f"completed_{tier}_at")
    result = await session.execute(
        update(ChallengeParticipant)
        .where(ChallengeParticipant.id == participant.id, completed_column.is_(None))
        .values({completed_column: now})
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        logger.debug(f"Participant {participant.id} already completed {tier}")
        return None
    set_committed_value(participant, f"completed_{tier}_at", now)

    existing = await session.execute(
        select(UserBadge.id).where(
            UserBadge.user_id == participant.user_id,
            UserBadge.badge_id == badge.id,
            UserBadge.challenge_participant_id == participant.id
        )
    )
    if existing.scalar_one_or_none() is not None:
        logger.debug(f"User {participant.user_id} already holds badge {badge.id} for participant {participant.id}")
        return None

    inserted = await insert_ignoring_conflicts(
        session,
        UserBadge,
        [{
            "user_id": participant.user_id,
            "badge_id": badge.id,
            "level": badge.level or tier,
            "challenge_participant_id": participant.id,
            "earned_at": now
        }],
        index_elements=("user_id", "badge_id", "challenge_participant_id")
    )
    if not inserted:
        return None

    logger.info(
        f"User {participant.user_id} completed {tier} in challenge {challenge.id} "
        f"({challenge.title}), awarded badge {badge.id}"
    )
    return CompletedChallenge(
        challenge_id=challenge.id,
        challenge_title=challenge.title,
        tier=tier,
        badge=badge_payload(badge)
    )


async def refresh_challenge_progress(
    session: AsyncSession,
    user_id: int,
    clock: Clock
) -> list[CompletedChallenge]:
    """Recompute and persist progress for every eligible participation of a user."""
    completed: list[CompletedChallenge] = []
    now = clock.now()
    today = clock.today()

    for participant, challenge in await get_eligible_participations(session, user_id, today):
        if not is_eligible(participant, challenge, today):
            continue

        outcome = await evaluate_participation(session, participant, challenge, clock)

        if participant.progress != outcome.progress:
            logger.info(
                f"Challenge {challenge.id} for user {user_id}: progress "
                f"{participant.progress} -> {outcome.progress}"
            )
        participant.progress = outcome.progress

        for tier in outcome.fired_tiers:
            entry = await award_tier(session, participant, challenge, tier, now)
            if entry:
                completed.append(entry)

    await session.flush()
    return completed


async def settle_challenges(
    session: AsyncSession,
    user_id: int,
    clock: Clock
) -> list[CompletedChallenge]:
    """
    Run the challenge refresh as its own transaction.

    Conflicts are retried since every step is idempotent. When
    `isolate_challenge_failures` is on, a refresh that still fails is logged
    and reported as no completed challenges so the caller's primary action
    keeps its result.
    """
    attempts = max(1, settings.challenge_retry_attempts)
    last_error: Optional[Exception] = None

    for attempt in range(1, attempts + 1):
        try:
            completed = await refresh_challenge_progress(session, user_id, clock)
            await session.commit()
            return completed
        except (IntegrityError, OperationalError) as e:
            await session.rollback()
            last_error = e
            logger.warning(
                f"Challenge refresh for user {user_id} conflicted "
                f"(attempt {attempt}/{attempts}): {e}"
            )
        except Exception:
            await session.rollback()
            if not settings.isolate_challenge_failures:
                raise
            logger.exception(f"Challenge refresh for user {user_id} failed")
            return []

    if not settings.isolate_challenge_failures:
        raise last_error
    logger.error(f"Giving up on challenge refresh for user {user_id} after {attempts} attempts")
    return []

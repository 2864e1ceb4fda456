from datetime import date
from typing import Optional
import logging

from sqlalchemy import select, delete, desc, and_
from sqlalchemy.ext.asyncio import AsyncSession

from watchquest.clock import Clock, system_clock
from watchquest.exceptions import NotFoundError, ConflictError
from watchquest.models import Badge, Challenge, ChallengeParticipant, UserBadge
from watchquest.results import WatchResult
from watchquest.services.challenges import calculate_progress, settle_challenges, badge_image_ref

logger = logging.getLogger(__name__)


def challenge_status(challenge: Challenge, today: date) -> str:
    if today < challenge.start_date:
        return "upcoming"
    if challenge.end_date is not None and today > challenge.end_date:
        return "expired"
    return "active"


def _sort_key(item: dict) -> tuple:
    if item["is_participant"] and not item["completed_platinum_at"]:
        rank = 0
    elif item["status"] == "active":
        rank = 1
    elif item["status"] == "upcoming":
        rank = 2
    else:
        rank = 3
    # Open-ended challenges sort last within their group
    return rank, item["end_date"] or "9999-12-31"


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


async def _describe(
    session: AsyncSession,
    user_id: int,
    challenge: Challenge,
    participant: Optional[ChallengeParticipant],
    today: date
) -> dict:
    progress = 0
    if participant is not None:
        progress = await calculate_progress(session, user_id, challenge, today)

    max_target = challenge.max_target or 0

    return {
        "id": challenge.id,
        "title": challenge.title,
        "description": challenge.description,
        "type": challenge.type,
        "criteria_value": challenge.criteria_value,
        "target_silver": challenge.target_silver,
        "target_gold": challenge.target_gold,
        "target_platinum": challenge.target_platinum,
        "badge_silver_id": challenge.badge_silver_id,
        "badge_gold_id": challenge.badge_gold_id,
        "badge_platinum_id": challenge.badge_platinum_id,
        "start_date": _iso(challenge.start_date),
        "end_date": _iso(challenge.end_date),
        "status": challenge_status(challenge, today),
        "is_participant": participant is not None,
        "joined_at": _iso(participant.joined_at) if participant else None,
        "completed_silver_at": _iso(participant.completed_silver_at) if participant else None,
        "completed_gold_at": _iso(participant.completed_gold_at) if participant else None,
        "completed_platinum_at": _iso(participant.completed_platinum_at) if participant else None,
        "current_tier": (participant.current_tier if participant else None) or "none",
        "progress": progress,
        "percentage": round(progress / max_target * 100) if max_target > 0 else 0
    }


async def list_challenges(session: AsyncSession, user_id: int, clock: Clock = system_clock) -> list[dict]:
    """All challenges with the user's participation and live progress."""
    result = await session.execute(
        select(Challenge, ChallengeParticipant)
        .outerjoin(
            ChallengeParticipant,
            and_(
                ChallengeParticipant.challenge_id == Challenge.id,
                ChallengeParticipant.user_id == user_id
            )
        )
    )
    today = clock.today()
    items = [
        await _describe(session, user_id, challenge, participant, today)
        for challenge, participant in result.all()
    ]
    return sorted(items, key=_sort_key)


async def get_challenge(
    session: AsyncSession,
    user_id: int,
    challenge_id: int,
    clock: Clock = system_clock
) -> dict:
    challenge = await session.get(Challenge, challenge_id)
    if challenge is None:
        raise NotFoundError("Challenge not found", {"challengeId": challenge_id})

    participant = await _get_participant(session, user_id, challenge_id)
    return await _describe(session, user_id, challenge, participant, clock.today())


async def _get_participant(
    session: AsyncSession,
    user_id: int,
    challenge_id: int
) -> Optional[ChallengeParticipant]:
    result = await session.execute(
        select(ChallengeParticipant).where(
            ChallengeParticipant.challenge_id == challenge_id,
            ChallengeParticipant.user_id == user_id
        )
    )
    return result.scalar_one_or_none()


async def join_challenge(
    session: AsyncSession,
    user_id: int,
    challenge_id: int,
    clock: Clock = system_clock
) -> WatchResult:
    """
    Enroll the user in a challenge. Watches already inside the challenge
    window count immediately, so joining can complete tiers at once.
    """
    challenge = await session.get(Challenge, challenge_id)
    if challenge is None:
        raise NotFoundError("Challenge not found", {"challengeId": challenge_id})

    if await _get_participant(session, user_id, challenge_id) is not None:
        raise ConflictError("Already participating", {"challengeId": challenge_id})

    session.add(ChallengeParticipant(
        challenge_id=challenge_id,
        user_id=user_id,
        progress=0,
        joined_at=clock.now()
    ))
    await session.commit()
    logger.info(f"User {user_id} joined challenge {challenge_id}")

    completed = await settle_challenges(session, user_id, clock)
    return WatchResult(completed_challenges=completed)


async def leave_challenge(session: AsyncSession, user_id: int, challenge_id: int) -> None:
    """Drop the participation. Badges already earned stay with the user."""
    result = await session.execute(
        delete(ChallengeParticipant).where(
            ChallengeParticipant.challenge_id == challenge_id,
            ChallengeParticipant.user_id == user_id
        ).execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        await session.rollback()
        raise NotFoundError("Not participating in this challenge", {"challengeId": challenge_id})

    await session.commit()
    logger.info(f"User {user_id} left challenge {challenge_id}")


async def list_user_badges(session: AsyncSession, user_id: int, limit: Optional[int] = None) -> list[dict]:
    query = (
        select(UserBadge, Badge)
        .join(Badge, UserBadge.badge_id == Badge.id)
        .where(UserBadge.user_id == user_id)
        .order_by(desc(UserBadge.earned_at), desc(UserBadge.id))
    )
    if limit:
        query = query.limit(limit)

    result = await session.execute(query)

    return [
        {
            "id": badge.id,
            "name": badge.name,
            "description": badge.description,
            "imageUrl": badge_image_ref(badge.image_url),
            "level": user_badge.level,
            "earnedAt": _iso(user_badge.earned_at),
            "challengeParticipantId": user_badge.challenge_participant_id
        }
        for user_badge, badge in result.all()
    ]

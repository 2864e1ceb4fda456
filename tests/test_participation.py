from datetime import date

import pytest
from sqlalchemy import select, func

from watchquest.config import settings
from watchquest.exceptions import ConflictError, NotFoundError
from watchquest.models import ChallengeParticipant, UserBadge
from watchquest.services.cascade import add_watch_record
from watchquest.services.participation import (
    challenge_status, list_challenges, get_challenge, join_challenge, leave_challenge, list_user_badges
)

USER = 1


def test_challenge_status():
    today = date(2024, 6, 15)

    class Window:
        def __init__(self, start_date, end_date):
            self.start_date = start_date
            self.end_date = end_date

    assert challenge_status(Window(date(2024, 7, 1), None), today) == "upcoming"
    assert challenge_status(Window(date(2024, 1, 1), date(2024, 6, 14)), today) == "expired"
    assert challenge_status(Window(date(2024, 1, 1), date(2024, 6, 15)), today) == "active"
    assert challenge_status(Window(date(2024, 1, 1), None), today) == "active"


async def test_join_counts_existing_watches(session, catalog, clock):
    badge = await catalog.badge("Starter", level="silver")
    challenge = await catalog.challenge(target_silver=1, target_gold=3, badge_silver_id=badge.id)
    movie = await catalog.movie()
    await add_watch_record(session, USER, movie.id, watched_date=date(2024, 2, 1), clock=clock)

    result = await join_challenge(session, USER, challenge.id, clock)

    assert [c.tier for c in result.completed_challenges] == ["silver"]
    progress = await session.execute(
        select(ChallengeParticipant.progress).where(ChallengeParticipant.challenge_id == challenge.id)
    )
    assert progress.scalar() == 1


async def test_join_twice_conflicts(session, catalog, clock):
    challenge = await catalog.challenge(target_silver=1)
    await join_challenge(session, USER, challenge.id, clock)

    with pytest.raises(ConflictError):
        await join_challenge(session, USER, challenge.id, clock)


async def test_join_unknown_challenge(session, clock):
    with pytest.raises(NotFoundError):
        await join_challenge(session, USER, 404, clock)


async def test_leave_without_joining(session, catalog, clock):
    challenge = await catalog.challenge()

    with pytest.raises(NotFoundError):
        await leave_challenge(session, USER, challenge.id)


async def test_leaving_keeps_earned_badges(session, catalog, clock):
    badge = await catalog.badge("Starter", level="silver")
    challenge = await catalog.challenge(target_silver=1, badge_silver_id=badge.id)
    movie = await catalog.movie()
    await add_watch_record(session, USER, movie.id, watched_date=date(2024, 2, 1), clock=clock)
    await join_challenge(session, USER, challenge.id, clock)

    await leave_challenge(session, USER, challenge.id)

    participants = await session.execute(select(func.count(ChallengeParticipant.id)))
    assert participants.scalar() == 0
    badges = await session.execute(select(func.count(UserBadge.id)).where(UserBadge.user_id == USER))
    assert badges.scalar() == 1


async def test_rejoining_earns_the_badge_again(session, catalog, clock):
    badge = await catalog.badge("Starter", level="silver")
    challenge = await catalog.challenge(target_silver=1, badge_silver_id=badge.id)
    movie = await catalog.movie()
    await add_watch_record(session, USER, movie.id, watched_date=date(2024, 2, 1), clock=clock)
    first = await join_challenge(session, USER, challenge.id, clock)
    await leave_challenge(session, USER, challenge.id)

    second = await join_challenge(session, USER, challenge.id, clock)

    assert [c.tier for c in first.completed_challenges] == ["silver"]
    assert [c.tier for c in second.completed_challenges] == ["silver"]
    participants = await session.execute(select(ChallengeParticipant.id))
    participant_ids = participants.scalars().all()
    badges = await session.execute(select(UserBadge.challenge_participant_id).order_by(UserBadge.id))
    assert len(participant_ids) == 1
    assert badges.scalars().all() == [1, participant_ids[0]]
    assert participant_ids[0] != 1


async def test_list_challenges_orders_joined_first(session, catalog, clock):
    expired = await catalog.challenge("Expired", start=date(2024, 1, 1), end=date(2024, 5, 1), target_silver=1)
    upcoming = await catalog.challenge("Upcoming", start=date(2024, 7, 1), end=date(2024, 9, 30), target_silver=1)
    later = await catalog.challenge("Active later", end=date(2024, 12, 31), target_silver=1)
    sooner = await catalog.challenge("Active sooner", end=date(2024, 8, 31), target_silver=1)
    joined = await catalog.challenge("Joined", end=None, target_silver=2, target_gold=4)
    await catalog.participant(joined)
    movie = await catalog.movie()
    await add_watch_record(session, USER, movie.id, watched_date=date(2024, 3, 1), clock=clock)

    items = await list_challenges(session, USER, clock)

    assert [i["id"] for i in items] == [joined.id, sooner.id, later.id, upcoming.id, expired.id]
    assert [i["status"] for i in items] == ["active", "active", "active", "upcoming", "expired"]

    first = items[0]
    assert first["is_participant"] is True
    assert first["progress"] == 1
    assert first["percentage"] == 25
    assert first["current_tier"] == "none"
    assert items[1]["is_participant"] is False
    assert items[1]["progress"] == 0


async def test_get_challenge_reports_current_tier(session, catalog, clock):
    badge = await catalog.badge(level="silver")
    challenge = await catalog.challenge(target_silver=1, target_gold=2, badge_silver_id=badge.id)
    movie = await catalog.movie()
    await add_watch_record(session, USER, movie.id, watched_date=date(2024, 3, 1), clock=clock)
    await join_challenge(session, USER, challenge.id, clock)

    data = await get_challenge(session, USER, challenge.id, clock)

    assert data["current_tier"] == "silver"
    assert data["completed_silver_at"] == clock.now().isoformat()
    assert data["percentage"] == 50

    with pytest.raises(NotFoundError):
        await get_challenge(session, USER, 999, clock)


async def test_badge_images_use_configured_base(session, catalog, clock, monkeypatch):
    local = await catalog.badge("Local", level="silver", image_url="/silver.png")
    remote = await catalog.badge("Remote", level="gold", image_url="https://img.example.org/gold.png")
    challenge = await catalog.challenge(
        target_silver=1, target_gold=2, badge_silver_id=local.id, badge_gold_id=remote.id
    )
    await catalog.participant(challenge)
    for name, day in (("A", 1), ("B", 2)):
        movie = await catalog.movie(name)
        await add_watch_record(session, USER, movie.id, watched_date=date(2024, 3, day), clock=clock)

    monkeypatch.setattr(settings, "badge_image_base_url", "https://cdn.example.org/badges/")
    badges = await list_user_badges(session, USER)

    images = {b["name"]: b["imageUrl"] for b in badges}
    assert images == {
        "Local": "https://cdn.example.org/badges/silver.png",
        "Remote": "https://img.example.org/gold.png"
    }
    assert len(await list_user_badges(session, USER, limit=1)) == 1

"""
Entry points for watch-state changes.

Each operation mutates the watch ledger and recomputes the derived series
status in one transaction, commits it, then settles challenge progress and
badges in a second transaction (see `challenges.settle_challenges`).
"""

from datetime import date
from typing import Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from watchquest.clock import Clock, system_clock
from watchquest.exceptions import ValidationError, NotFoundError
from watchquest.models.title import MEDIA_SERIES
from watchquest.models.watch import WATCH_STATUSES, STATUS_WATCHED
from watchquest.results import WatchResult
from watchquest.services import ledger
from watchquest.services.challenges import settle_challenges
from watchquest.services.series_status import update_series_status

logger = logging.getLogger(__name__)


def is_unaired(air_date: Optional[date], today: date) -> bool:
    return air_date is not None and air_date > today


async def toggle_episode(
    session: AsyncSession,
    user_id: int,
    episode_id: Optional[int],
    watched: bool,
    mark_previous: bool = False,
    clock: Clock = system_clock,
    series_id: Optional[int] = None
) -> WatchResult:
    """
    Mark a single episode watched or unwatched.

    With `mark_previous`, every earlier episode (by season, then episode
    number) the user has not watched yet is marked too. Without it the
    result reports how many earlier episodes are still unwatched.
    """
    if episode_id is None:
        raise ValidationError("Episode ID is required")

    ctx = await ledger.get_episode_context(session, episode_id)
    if ctx is None or (series_id is not None and ctx.series_id != series_id):
        raise NotFoundError("Episode not found", {"episodeId": episode_id})

    today = clock.today()

    if watched and is_unaired(ctx.air_date, today):
        raise ValidationError(
            "Cannot mark an episode as watched before it airs",
            {"airDate": ctx.air_date.isoformat()}
        )

    if watched:
        if mark_previous:
            previous = await ledger.get_previous_unwatched(session, user_id, ctx)
            aired = [eid for eid, air_date in previous if not is_unaired(air_date, today)]
            added = await ledger.mark_episodes_watched(session, user_id, aired, today)
            if added:
                logger.info(f"Marked {added} previous episode(s) of series {ctx.series_id} for user {user_id}")
        await ledger.mark_episodes_watched(session, user_id, [episode_id], today)
    else:
        await ledger.unmark_episode(session, user_id, episode_id)

    series_status = await update_series_status(session, user_id, ctx.series_id, clock)
    await session.commit()

    completed = await settle_challenges(session, user_id, clock)

    remaining = await ledger.count_previous_unwatched(session, user_id, ctx)

    return WatchResult(
        status=series_status.status,
        has_previous_unwatched=watched and not mark_previous and remaining > 0,
        previous_unwatched_count=remaining,
        completed_challenges=completed
    )


async def mark_title_watched(
    session: AsyncSession,
    user_id: int,
    series_id: int,
    clock: Clock = system_clock
) -> int:
    """Mark every aired episode of a series watched. Does not commit."""
    today = clock.today()
    unwatched = await ledger.get_series_unwatched(session, user_id, series_id)
    aired = [eid for eid, air_date in unwatched if not is_unaired(air_date, today)]

    skipped = len(unwatched) - len(aired)
    if skipped:
        logger.info(f"Series {series_id}: leaving {skipped} unaired episode(s) unwatched")

    added = await ledger.mark_episodes_watched(session, user_id, aired, today)
    if added:
        logger.info(f"Marked {added} episode(s) of series {series_id} watched for user {user_id}")
    return added


async def set_title_status(
    session: AsyncSession,
    user_id: int,
    title_id: int,
    status: Optional[str] = None,
    watched_date: Optional[date] = None,
    rating: Optional[int] = None,
    review: Optional[str] = None,
    clock: Clock = system_clock
) -> WatchResult:
    """
    Change a user's status, date and review for a title.

    Setting a series to watched marks all of its aired episodes; its stored
    status then follows from the episode ledger. The episodes and the series
    record are dated today, so `watched_date` only applies to movies and to
    series without episodes. A series with no aired episode cannot be set to
    watched.
    """
    title = await ledger.get_title(session, title_id)
    if title is None:
        raise NotFoundError("Title not found", {"titleId": title_id})

    if status is not None and status not in WATCH_STATUSES:
        raise ValidationError(f"Unknown status: {status}", {"allowed": list(WATCH_STATUSES)})

    if rating is not None and not 0 <= rating <= 5:
        raise ValidationError("Rating must be between 0 and 5")

    result_status = None

    if status is not None:
        if (
            title.media_type == MEDIA_SERIES
            and status == STATUS_WATCHED
            and await ledger.count_series_episodes(session, title.id) > 0
        ):
            await mark_title_watched(session, user_id, title.id, clock)
            result_status = (await update_series_status(session, user_id, title.id, clock)).status
            if result_status is None:
                await session.rollback()
                raise ValidationError(
                    "Series has no aired episodes to mark as watched",
                    {"titleId": title_id}
                )
        else:
            record = await ledger.upsert_watch_record(
                session, user_id, title.id, status, watched_date or clock.today()
            )
            result_status = record.status
            logger.info(f"Title {title.id} for user {user_id} set to {status}")

    if rating is not None:
        await ledger.save_review(session, user_id, title.id, rating, review, clock.now())

    await session.commit()

    completed = []
    if status is not None:
        completed = await settle_challenges(session, user_id, clock)

    return WatchResult(status=result_status, completed_challenges=completed)


async def add_watch_record(
    session: AsyncSession,
    user_id: int,
    title_id: int,
    watched_date: Optional[date] = None,
    status: str = STATUS_WATCHED,
    rating: Optional[int] = None,
    review: Optional[str] = None,
    clock: Clock = system_clock
) -> WatchResult:
    """Add a title to the user's list, watched unless another status is given."""
    return await set_title_status(
        session,
        user_id,
        title_id,
        status=status,
        watched_date=watched_date,
        rating=rating,
        review=review,
        clock=clock
    )


async def remove_title(
    session: AsyncSession,
    user_id: int,
    title_id: int,
    clock: Clock = system_clock
) -> dict:
    """Remove a title from the user's list. Earned challenge tiers are kept."""
    title = await ledger.get_title(session, title_id)
    if title is None:
        raise NotFoundError("Title not found", {"titleId": title_id})

    counts = await ledger.remove_title_entries(session, user_id, title)
    await session.commit()

    completed = await settle_challenges(session, user_id, clock)

    data = WatchResult(completed_challenges=completed).to_dict()
    data.update(counts)
    return data

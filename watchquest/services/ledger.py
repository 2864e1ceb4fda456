"""
Watch ledger access.

Reads and writes of per-user watch facts: episode watches, title watch
records and reviews, plus the catalog lookups needed to interpret them.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional
import logging

from sqlalchemy import select, delete, func, and_, or_, exists
from sqlalchemy.ext.asyncio import AsyncSession

from watchquest.database import insert_ignoring_conflicts
from watchquest.models import Title, Season, Episode, WatchRecord, EpisodeWatch, Review
from watchquest.models.title import MEDIA_SERIES

logger = logging.getLogger(__name__)


@dataclass
class EpisodeContext:
    """An episode together with its position inside the series."""
    episode_id: int
    series_id: int
    season_number: int
    episode_number: int
    air_date: Optional[date]


async def get_title(session: AsyncSession, title_id: int) -> Optional[Title]:
    result = await session.execute(select(Title).where(Title.id == title_id))
    return result.scalar_one_or_none()


async def get_episode_context(session: AsyncSession, episode_id: int) -> Optional[EpisodeContext]:
    """Look up an episode with its season number and owning series."""
    result = await session.execute(
        select(
            Episode.id,
            Season.series_id,
            Season.season_number,
            Episode.episode_number,
            Episode.air_date
        )
        .join(Season, Episode.season_id == Season.id)
        .where(Episode.id == episode_id)
    )
    row = result.one_or_none()
    if row is None:
        return None
    return EpisodeContext(
        episode_id=row[0],
        series_id=row[1],
        season_number=row[2],
        episode_number=row[3],
        air_date=row[4]
    )


def _before(ctx: EpisodeContext):
    """Episodes ordered before ctx by season, then episode number."""
    return or_(
        Season.season_number < ctx.season_number,
        and_(
            Season.season_number == ctx.season_number,
            Episode.episode_number < ctx.episode_number
        )
    )


def _watched_by(user_id: int):
    return exists().where(
        EpisodeWatch.episode_id == Episode.id,
        EpisodeWatch.user_id == user_id
    )


async def count_previous_unwatched(session: AsyncSession, user_id: int, ctx: EpisodeContext) -> int:
    result = await session.execute(
        select(func.count(Episode.id))
        .join(Season, Episode.season_id == Season.id)
        .where(
            Season.series_id == ctx.series_id,
            _before(ctx),
            ~_watched_by(user_id)
        )
    )
    return result.scalar() or 0


async def get_previous_unwatched(
    session: AsyncSession,
    user_id: int,
    ctx: EpisodeContext
) -> list[tuple[int, Optional[date]]]:
    """(episode_id, air_date) of earlier episodes the user has not watched."""
    result = await session.execute(
        select(Episode.id, Episode.air_date)
        .join(Season, Episode.season_id == Season.id)
        .where(
            Season.series_id == ctx.series_id,
            _before(ctx),
            ~_watched_by(user_id)
        )
        .order_by(Season.season_number, Episode.episode_number)
    )
    return [(row[0], row[1]) for row in result.all()]


async def get_series_unwatched(
    session: AsyncSession,
    user_id: int,
    series_id: int
) -> list[tuple[int, Optional[date]]]:
    """(episode_id, air_date) of every episode in the series the user has not watched."""
    result = await session.execute(
        select(Episode.id, Episode.air_date)
        .join(Season, Episode.season_id == Season.id)
        .where(
            Season.series_id == series_id,
            ~_watched_by(user_id)
        )
        .order_by(Season.season_number, Episode.episode_number)
    )
    return [(row[0], row[1]) for row in result.all()]


async def count_series_episodes(session: AsyncSession, series_id: int) -> int:
    result = await session.execute(
        select(func.count(Episode.id))
        .join(Season, Episode.season_id == Season.id)
        .where(Season.series_id == series_id)
    )
    return result.scalar() or 0


async def count_watched_episodes(session: AsyncSession, user_id: int, series_id: int) -> int:
    result = await session.execute(
        select(func.count(func.distinct(EpisodeWatch.episode_id)))
        .join(Episode, EpisodeWatch.episode_id == Episode.id)
        .join(Season, Episode.season_id == Season.id)
        .where(
            Season.series_id == series_id,
            EpisodeWatch.user_id == user_id
        )
    )
    return result.scalar() or 0


async def mark_episodes_watched(
    session: AsyncSession,
    user_id: int,
    episode_ids: Iterable[int],
    watched_date: date
) -> int:
    """Insert episode watches that do not exist yet. Returns how many were added."""
    rows = [
        {"user_id": user_id, "episode_id": episode_id, "watched_date": watched_date}
        for episode_id in dict.fromkeys(episode_ids)
    ]
    return await insert_ignoring_conflicts(
        session, EpisodeWatch, rows, index_elements=("user_id", "episode_id")
    )


async def unmark_episode(session: AsyncSession, user_id: int, episode_id: int) -> int:
    result = await session.execute(
        delete(EpisodeWatch).where(
            EpisodeWatch.user_id == user_id,
            EpisodeWatch.episode_id == episode_id
        ).execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def get_watch_record(session: AsyncSession, user_id: int, title_id: int) -> Optional[WatchRecord]:
    result = await session.execute(
        select(WatchRecord).where(
            WatchRecord.user_id == user_id,
            WatchRecord.title_id == title_id
        )
    )
    return result.scalar_one_or_none()


async def upsert_watch_record(
    session: AsyncSession,
    user_id: int,
    title_id: int,
    status: str,
    watched_date: Optional[date]
) -> WatchRecord:
    record = await get_watch_record(session, user_id, title_id)

    if record:
        record.status = status
        record.watched_date = watched_date
    else:
        record = WatchRecord(
            user_id=user_id,
            title_id=title_id,
            status=status,
            watched_date=watched_date
        )
        session.add(record)

    await session.flush()
    return record


async def save_review(
    session: AsyncSession,
    user_id: int,
    title_id: int,
    rating: int,
    content: Optional[str],
    now: datetime
) -> Optional[Review]:
    """Create or update a review; a rating of 0 removes it."""
    if rating == 0:
        await session.execute(
            delete(Review).where(Review.user_id == user_id, Review.title_id == title_id)
        )
        return None

    result = await session.execute(
        select(Review).where(Review.user_id == user_id, Review.title_id == title_id)
    )
    review = result.scalar_one_or_none()

    if review:
        review.rating = rating
        review.content = content or ""
        review.updated_at = now
    else:
        review = Review(
            user_id=user_id,
            title_id=title_id,
            rating=rating,
            content=content or "",
            created_at=now,
            updated_at=now
        )
        session.add(review)

    await session.flush()
    return review


async def remove_title_entries(session: AsyncSession, user_id: int, title: Title) -> dict:
    """Drop the user's watch facts and review for a title."""
    deleted_episodes = 0
    if title.media_type == MEDIA_SERIES:
        episode_ids = (
            select(Episode.id)
            .join(Season, Episode.season_id == Season.id)
            .where(Season.series_id == title.id)
        )
        result = await session.execute(
            delete(EpisodeWatch).where(
                EpisodeWatch.user_id == user_id,
                EpisodeWatch.episode_id.in_(episode_ids)
            ).execution_options(synchronize_session=False)
        )
        deleted_episodes = result.rowcount or 0

    watched_result = await session.execute(
        delete(WatchRecord).where(WatchRecord.user_id == user_id, WatchRecord.title_id == title.id)
    )
    review_result = await session.execute(
        delete(Review).where(Review.user_id == user_id, Review.title_id == title.id)
    )

    logger.info(
        f"Removed title {title.id} for user {user_id}: "
        f"{watched_result.rowcount or 0} records, {review_result.rowcount or 0} reviews, "
        f"{deleted_episodes} episode watches"
    )

    return {
        "deletedWatched": watched_result.rowcount or 0,
        "deletedReviews": review_result.rowcount or 0,
        "deletedEpisodes": deleted_episodes
    }


def episode_label(season_number: int, episode_number: int, display_number: Optional[str]) -> str:
    if display_number:
        return display_number
    return f"S{season_number:02d} - E{episode_number:03d}"


async def list_series_episodes(session: AsyncSession, user_id: int, series: Title) -> dict:
    """Seasons with their episodes and the user's watch flags."""
    result = await session.execute(
        select(Season, Episode, EpisodeWatch.watched_date, EpisodeWatch.id)
        .select_from(Season)
        .outerjoin(Episode, Episode.season_id == Season.id)
        .outerjoin(
            EpisodeWatch,
            and_(EpisodeWatch.episode_id == Episode.id, EpisodeWatch.user_id == user_id)
        )
        .where(Season.series_id == series.id)
        .order_by(Season.season_number, Episode.episode_number)
    )

    seasons: dict[int, dict] = {}
    total = 0
    watched = 0

    for season, episode, watched_date, watch_id in result.all():
        if season.id not in seasons:
            seasons[season.id] = {
                "id": season.id,
                "seasonNumber": season.season_number,
                "title": season.title,
                "episodes": []
            }

        if episode is None:
            continue

        total += 1
        if watch_id is not None:
            watched += 1

        seasons[season.id]["episodes"].append({
            "id": episode.id,
            "episodeNumber": episode.episode_number,
            "title": episode.title,
            "displayNumber": episode_label(season.season_number, episode.episode_number, episode.display_number),
            "airDate": episode.air_date.isoformat() if episode.air_date else None,
            "duration": episode.duration,
            "isWatched": watch_id is not None,
            "watchedDate": watched_date.isoformat() if watched_date else None
        })

    return {
        "series": {"id": series.id, "title": series.title},
        "seasons": list(seasons.values()),
        "progress": {
            "total": total,
            "watched": watched,
            "percentage": round(watched / total * 100) if total else 0
        }
    }


async def get_title_entry(session: AsyncSession, user_id: int, title: Title) -> dict:
    """A title as seen from the user's list: status, date and review."""
    record = await get_watch_record(session, user_id, title.id)

    result = await session.execute(
        select(Review).where(Review.user_id == user_id, Review.title_id == title.id)
    )
    review = result.scalar_one_or_none()

    entry = {
        "id": title.id,
        "title": title.title,
        "type": title.media_type,
        "genre": title.genre,
        "releaseDate": title.release_date.isoformat() if title.release_date else None,
        "status": record.status if record else None,
        "watchedDate": record.watched_date.isoformat() if record and record.watched_date else None,
        "rating": review.rating if review else 0,
        "review": review.content if review else "",
        "duration": title.duration if title.media_type != MEDIA_SERIES else None
    }

    if title.media_type == MEDIA_SERIES:
        avg_result = await session.execute(
            select(func.avg(Episode.duration))
            .join(Season, Episode.season_id == Season.id)
            .where(Season.series_id == title.id)
        )
        avg_duration = avg_result.scalar()
        entry["avgEpisodeLength"] = round(avg_duration) if avg_duration is not None else None
        entry["duration"] = entry["avgEpisodeLength"]

    return entry

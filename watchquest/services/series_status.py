from dataclasses import dataclass
from typing import Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from watchquest.clock import Clock
from watchquest.models.watch import STATUS_PLANNING, STATUS_WATCHING, STATUS_WATCHED
from watchquest.services import ledger

logger = logging.getLogger(__name__)


@dataclass
class SeriesStatus:
    status: Optional[str]
    watched_count: int
    total_count: int


def derive_status(watched_count: int, total_count: int) -> str:
    if watched_count == 0:
        return STATUS_PLANNING
    if total_count > 0 and watched_count == total_count:
        return STATUS_WATCHED
    return STATUS_WATCHING


async def update_series_status(
    session: AsyncSession,
    user_id: int,
    series_id: int,
    clock: Clock
) -> SeriesStatus:
    """
    Recompute the series watch record from the user's episode watches.

    The stored status is a projection of the episode ledger and is never
    read back as input. With nothing watched an existing record falls back
    to planning (keeping its date); no record is created for it.
    """
    total_count = await ledger.count_series_episodes(session, series_id)
    watched_count = await ledger.count_watched_episodes(session, user_id, series_id)
    status = derive_status(watched_count, total_count)

    record = await ledger.get_watch_record(session, user_id, series_id)

    if status == STATUS_PLANNING:
        if record is None:
            return SeriesStatus(None, watched_count, total_count)
        if record.status != status:
            logger.info(f"Series {series_id} for user {user_id}: {record.status} -> {status}")
        record.status = status
        await session.flush()
        return SeriesStatus(status, watched_count, total_count)

    previous = record.status if record else None
    await ledger.upsert_watch_record(session, user_id, series_id, status, clock.today())
    if previous != status:
        logger.info(
            f"Series {series_id} for user {user_id}: {previous or 'none'} -> {status} "
            f"({watched_count}/{total_count} episodes)"
        )

    return SeriesStatus(status, watched_count, total_count)

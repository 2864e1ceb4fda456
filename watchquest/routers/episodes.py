from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from watchquest.clock import Clock
from watchquest.database import get_session
from watchquest.dependencies import get_user_id, get_clock
from watchquest.exceptions import NotFoundError
from watchquest.models.title import MEDIA_SERIES
from watchquest.schemas import EpisodeToggle
from watchquest.services import ledger
from watchquest.services.cascade import toggle_episode

router = APIRouter()


@router.get("/{series_id}/episodes")
async def get_episodes(
    series_id: int,
    user_id: int = Depends(get_user_id),
    session: AsyncSession = Depends(get_session)
):
    """Seasons and episodes of a series with the user's watch progress."""
    series = await ledger.get_title(session, series_id)
    if not series or series.media_type != MEDIA_SERIES:
        raise NotFoundError("Series not found", {"seriesId": series_id})

    return await ledger.list_series_episodes(session, user_id, series)


@router.post("/{series_id}/episodes")
async def mark_episode(
    series_id: int,
    data: EpisodeToggle,
    user_id: int = Depends(get_user_id),
    clock: Clock = Depends(get_clock),
    session: AsyncSession = Depends(get_session)
):
    """Mark an episode watched or unwatched, optionally with all previous ones."""
    result = await toggle_episode(
        session,
        user_id,
        data.episode_id,
        data.watched,
        mark_previous=data.mark_previous,
        clock=clock,
        series_id=series_id
    )
    return JSONResponse(result.to_dict())

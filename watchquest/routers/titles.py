from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from watchquest.clock import Clock
from watchquest.database import get_session
from watchquest.dependencies import get_user_id, get_clock
from watchquest.exceptions import NotFoundError
from watchquest.schemas import TitleUpdate, WatchRecordCreate
from watchquest.services import ledger
from watchquest.services.cascade import add_watch_record, set_title_status, remove_title

router = APIRouter()


@router.post("")
async def add_title(
    data: WatchRecordCreate,
    user_id: int = Depends(get_user_id),
    clock: Clock = Depends(get_clock),
    session: AsyncSession = Depends(get_session)
):
    """Add a title to the user's list."""
    result = await add_watch_record(
        session,
        user_id,
        data.id,
        watched_date=data.watched_date,
        status=data.status,
        rating=data.rating,
        review=data.review,
        clock=clock
    )
    return JSONResponse(result.to_dict())


@router.get("/{title_id}")
async def get_title(
    title_id: int,
    user_id: int = Depends(get_user_id),
    session: AsyncSession = Depends(get_session)
):
    title = await ledger.get_title(session, title_id)
    if not title:
        raise NotFoundError("Title not found", {"titleId": title_id})

    return await ledger.get_title_entry(session, user_id, title)


@router.put("/{title_id}")
async def update_title(
    title_id: int,
    data: TitleUpdate,
    user_id: int = Depends(get_user_id),
    clock: Clock = Depends(get_clock),
    session: AsyncSession = Depends(get_session)
):
    """Update status, watched date, rating or review."""
    result = await set_title_status(
        session,
        user_id,
        title_id,
        status=data.status,
        watched_date=data.watched_date,
        rating=data.rating,
        review=data.review,
        clock=clock
    )
    return JSONResponse(result.to_dict())


@router.delete("/{title_id}")
async def delete_title(
    title_id: int,
    user_id: int = Depends(get_user_id),
    clock: Clock = Depends(get_clock),
    session: AsyncSession = Depends(get_session)
):
    """Remove a title from the user's list along with its episode watches and review."""
    return JSONResponse(await remove_title(session, user_id, title_id, clock=clock))

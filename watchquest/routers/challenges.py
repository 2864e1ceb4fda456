from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from watchquest.clock import Clock
from watchquest.database import get_session
from watchquest.dependencies import get_user_id, get_clock
from watchquest.services import participation

router = APIRouter()
badges_router = APIRouter()


@router.get("")
async def list_challenges(
    user_id: int = Depends(get_user_id),
    clock: Clock = Depends(get_clock),
    session: AsyncSession = Depends(get_session)
):
    """All challenges with the user's participation and progress."""
    return await participation.list_challenges(session, user_id, clock)


@router.get("/{challenge_id}")
async def get_challenge(
    challenge_id: int,
    user_id: int = Depends(get_user_id),
    clock: Clock = Depends(get_clock),
    session: AsyncSession = Depends(get_session)
):
    return await participation.get_challenge(session, user_id, challenge_id, clock)


@router.post("/{challenge_id}")
async def join_challenge(
    challenge_id: int,
    user_id: int = Depends(get_user_id),
    clock: Clock = Depends(get_clock),
    session: AsyncSession = Depends(get_session)
):
    """Join a challenge."""
    result = await participation.join_challenge(session, user_id, challenge_id, clock)
    data = result.to_dict()
    data["message"] = "Successfully joined challenge"
    return JSONResponse(data)


@router.delete("/{challenge_id}")
async def leave_challenge(
    challenge_id: int,
    user_id: int = Depends(get_user_id),
    session: AsyncSession = Depends(get_session)
):
    """Leave a challenge."""
    await participation.leave_challenge(session, user_id, challenge_id)
    return {"success": True, "message": "Successfully left challenge"}


@badges_router.get("")
async def list_badges(
    limit: Optional[int] = Query(None, ge=1),
    user_id: int = Depends(get_user_id),
    session: AsyncSession = Depends(get_session)
):
    """Badges earned by the user, newest first."""
    return await participation.list_user_badges(session, user_id, limit)

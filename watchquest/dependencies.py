from typing import Optional

from fastapi import Header, HTTPException

from watchquest.clock import Clock, system_clock


async def get_user_id(x_user_id: Optional[int] = Header(None)) -> int:
    """The caller is authenticated upstream and forwards the user id."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id


def get_clock() -> Clock:
    return system_clock

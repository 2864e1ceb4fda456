from watchquest.routers.episodes import router as episodes_router
from watchquest.routers.titles import router as titles_router
from watchquest.routers.challenges import router as challenges_router, badges_router

__all__ = ["episodes_router", "titles_router", "challenges_router", "badges_router"]

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from watchquest.config import settings
from watchquest.database import init_db
from watchquest.exceptions import WatchQuestError
from watchquest.routers import episodes_router, titles_router, challenges_router, badges_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await init_db()
    logger.info("Database ready")
    yield


app = FastAPI(title="WatchQuest", lifespan=lifespan)

# Include routers
app.include_router(episodes_router, prefix="/api/series", tags=["episodes"])
app.include_router(titles_router, prefix="/api/titles", tags=["titles"])
app.include_router(challenges_router, prefix="/api/challenges", tags=["challenges"])
app.include_router(badges_router, prefix="/api/badges", tags=["badges"])


@app.exception_handler(WatchQuestError)
async def watchquest_error_handler(request: Request, exc: WatchQuestError):
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.get("/api/health")
async def health():
    return {"status": "ok"}

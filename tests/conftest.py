"""
Shared fixtures.

Each test gets a fresh in-memory SQLite database, a clock pinned to
2024-06-15 noon and a small catalog builder for titles, episodes,
badges and challenges.
"""

from datetime import date, datetime
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from watchquest.clock import FixedClock
from watchquest.database import Base, get_session
from watchquest.dependencies import get_clock
from watchquest.main import app
from watchquest.models import (
    Title, Season, Episode, Badge, Challenge, ChallengeParticipant
)


NOW = datetime(2024, 6, 15, 12, 0)


class Catalog:
    """Builds catalog rows and commits them so every session can see them."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        return obj

    async def movie(self, title: str = "Movie", genre: Optional[str] = None) -> Title:
        return await self._save(Title(title=title, media_type="movie", genre=genre, duration=110))

    async def series(
        self,
        title: str = "Series",
        seasons: tuple = (5,),
        genre: Optional[str] = None,
        air_dates: Optional[dict] = None
    ) -> tuple[Title, list[Episode]]:
        """
        `seasons` holds the episode count of each season. `air_dates` maps
        (season_number, episode_number) to an air date.
        """
        air_dates = air_dates or {}
        series = await self._save(Title(title=title, media_type="series", genre=genre))

        episodes = []
        for season_number, count in enumerate(seasons, start=1):
            season = Season(series_id=series.id, season_number=season_number)
            self.session.add(season)
            await self.session.flush()
            for episode_number in range(1, count + 1):
                episode = Episode(
                    season_id=season.id,
                    episode_number=episode_number,
                    duration=45,
                    air_date=air_dates.get((season_number, episode_number))
                )
                self.session.add(episode)
                episodes.append(episode)

        await self.session.commit()
        return series, episodes

    async def badge(self, name: str = "Badge", level: Optional[str] = None, image_url: Optional[str] = None) -> Badge:
        return await self._save(Badge(name=name, level=level, description=f"{name} badge", image_url=image_url))

    async def challenge(
        self,
        title: str = "Challenge",
        type: str = "movies",
        start: date = date(2024, 1, 1),
        end: Optional[date] = date(2024, 12, 31),
        **kwargs
    ) -> Challenge:
        return await self._save(Challenge(title=title, type=type, start_date=start, end_date=end, **kwargs))

    async def participant(self, challenge: Challenge, user_id: int = 1, **kwargs) -> ChallengeParticipant:
        return await self._save(
            ChallengeParticipant(challenge_id=challenge.id, user_id=user_id, progress=0, joined_at=NOW, **kwargs)
        )


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def catalog(session):
    return Catalog(session)


@pytest.fixture
async def client(session_factory, clock):
    """HTTP client bound to the test database and clock."""

    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_clock] = lambda: clock

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


WatchStatus = Literal["planning", "watching", "watched", "dropped"]


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class EpisodeToggle(CamelModel):
    episode_id: Optional[int] = Field(None, alias="episodeId")
    watched: bool = True
    mark_previous: bool = Field(False, alias="markPrevious")


class TitleUpdate(CamelModel):
    status: Optional[WatchStatus] = None
    watched_date: Optional[date] = Field(None, alias="watchedDate")
    rating: Optional[int] = Field(None, ge=0, le=5)
    review: Optional[str] = None


class WatchRecordCreate(CamelModel):
    id: int
    status: WatchStatus = "watched"
    watched_date: Optional[date] = Field(None, alias="watchedDate")
    rating: Optional[int] = Field(None, ge=0, le=5)
    review: Optional[str] = None

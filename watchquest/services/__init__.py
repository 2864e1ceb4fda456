from watchquest.services.cascade import (
    toggle_episode,
    set_title_status,
    add_watch_record,
    remove_title
)
from watchquest.services.challenges import refresh_challenge_progress, settle_challenges
from watchquest.services.series_status import update_series_status

__all__ = [
    "toggle_episode",
    "set_title_status",
    "add_watch_record",
    "remove_title",
    "refresh_challenge_progress",
    "settle_challenges",
    "update_series_status"
]

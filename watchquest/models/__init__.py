from watchquest.models.title import Title, Season, Episode
from watchquest.models.watch import WatchRecord, EpisodeWatch, Review
from watchquest.models.challenge import Badge, Challenge, ChallengeParticipant, UserBadge

__all__ = [
    "Title",
    "Season",
    "Episode",
    "WatchRecord",
    "EpisodeWatch",
    "Review",
    "Badge",
    "Challenge",
    "ChallengeParticipant",
    "UserBadge"
]

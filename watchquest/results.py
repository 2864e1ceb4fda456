from dataclasses import dataclass, field
from typing import Optional


@dataclass
class CompletedChallenge:
    """A tier reached during this invocation, for user-facing notification."""
    challenge_id: int
    challenge_title: Optional[str]
    tier: str
    badge: Optional[dict] = None

    def to_dict(self) -> dict:
        return {
            "challengeId": self.challenge_id,
            "challengeTitle": self.challenge_title,
            "tier": self.tier,
            "badge": self.badge
        }


@dataclass
class WatchResult:
    """Outcome of a ledger mutation plus any challenge tiers it completed."""
    success: bool = True
    status: Optional[str] = None
    has_previous_unwatched: Optional[bool] = None
    previous_unwatched_count: Optional[int] = None
    completed_challenges: list[CompletedChallenge] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "completedChallenges": [c.to_dict() for c in self.completed_challenges]
        }
        if self.status is not None:
            data["status"] = self.status
        # Only present for episode toggles
        if self.has_previous_unwatched is not None:
            data["hasPreviousUnwatched"] = self.has_previous_unwatched
            data["previousUnwatchedCount"] = self.previous_unwatched_count
        return data

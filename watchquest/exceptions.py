"""Domain errors raised by the engine before any mutation happens."""

from typing import Any, Optional


class WatchQuestError(Exception):
    status_code = 400

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, **self.details}


class ValidationError(WatchQuestError):
    """Input rejected, e.g. marking a not-yet-aired episode as watched."""
    status_code = 400


class NotFoundError(WatchQuestError):
    status_code = 404


class ConflictError(WatchQuestError):
    status_code = 409

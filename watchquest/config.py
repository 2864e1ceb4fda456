from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///data/watchquest.db"
    echo_sql: bool = False
    log_level: str = "INFO"

    # Gamification bookkeeping runs in its own transaction after the primary action
    challenge_retry_attempts: int = 3
    isolate_challenge_failures: bool = True

    # Public base URL for badge images stored as relative keys
    badge_image_base_url: Optional[str] = None

    class Config:
        env_prefix = "WATCHQUEST_"


settings = Settings()

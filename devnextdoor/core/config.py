from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):

    MONGO_URL: str = "mongodb://localhost:27017"
    MONGO_DB: str = "devnextdoor"
    REDIS_URL: Optional[str] = None
    LOG_LEVEL: str = "INFO"

    # duplicate suppression windows (milliseconds)
    DUPLICATE_QUERY_WINDOW_MS: int = 3000
    DUPLICATE_MATCH_WINDOW_MS: int = 2000
    CLIENT_THROTTLE_MS: int = 2000

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()

"""Application configuration loaded from environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Trackwise Core configuration."""

    model_config = SettingsConfigDict(env_prefix="TRACKWISE_", env_file=".env", extra="ignore")

    # Database
    database_url: str = "sqlite:///./trackwise.db"
    sql_echo: bool = False
    db_pool_size: int = 3
    db_max_overflow: int = 7
    db_pool_recycle: int = 3600
    db_pool_timeout: int = 30

    # Server
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173"]
    max_page_size: int = 100


@lru_cache
def get_settings() -> Settings:
    return Settings()

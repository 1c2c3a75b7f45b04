from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    # Overrides the level from logging_config.json when set
    LOG_LEVEL: Optional[str] = None

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./document_requests.db"
    DATABASE_ECHO: bool = False
    DATABASE_POOL_PRE_PING: bool = True

    # Request listing
    SEARCH_MAX_LENGTH: int = 200

    @field_validator("LOG_LEVEL", mode="before")
    def normalize_log_level(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not str(v).strip():
            return None
        return str(v).strip().upper()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()

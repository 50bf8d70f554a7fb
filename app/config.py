"""Application settings loaded from the environment / .env file."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    APP_NAME: str = "Token Economy"
    APP_DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Storage
    DATA_DIR: Path = BASE_DIR / "data"
    DATABASE_URL: str = f"sqlite+aiosqlite:///{BASE_DIR / 'data' / 'token_economy.db'}"

    # Identity header set by the upstream auth proxy
    AUTH_USER_HEADER: str = "x-user-id"

    # Calendar used for "same day" checks on goal submissions
    SCHOOL_TIMEZONE: str = "UTC"

    # Business rules
    CROWDFUND_MINIMUM_AMOUNT: int = Field(default=2, ge=1)
    DAILY_GOAL_SUBMISSION_LIMIT: int = Field(default=3, ge=1)
    APPROVAL_WINDOW_HOURS: int = Field(default=24, ge=1)


settings = Settings()

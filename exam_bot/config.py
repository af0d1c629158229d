"""Configuration settings using pydantic-settings."""
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Telegram Bot
    BOT_TOKEN: str = Field(..., description="Telegram Bot API token")

    # Exam portal API
    PORTAL_BASE_URL: str = Field(
        default="http://localhost:3001",
        description="Root URL of the exam portal API"
    )
    PORTAL_TIMEOUT: float = Field(default=30, description="API request timeout in seconds")

    # Database
    DATABASE_PATH: str = Field(
        default="data/exam_bot.db",
        description="Path to SQLite database file"
    )

    # Encryption
    ENCRYPTION_KEY: str = Field(..., description="Fernet encryption key for access tokens")

    # Attempt session
    AUTOSAVE_INTERVAL: float = Field(
        default=30,
        description="Seconds between periodic saves of the current answer"
    )
    CLOCK_TICK: float = Field(
        default=1.0,
        description="Wall-clock seconds per countdown second"
    )

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    LOG_FILE: str = Field(
        default="",
        description="Path to log file, empty to log to stdout only"
    )

    class Config:
        """Pydantic config."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


# Global settings instance
settings = Settings()

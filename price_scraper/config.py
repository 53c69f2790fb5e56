"""Application configuration via Pydantic Settings."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Scraper settings loaded from environment variables (or a .env file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Control API
    API_BASE_URL: str = ""
    CLIENT_ID: str = ""
    CLIENT_SECRET: str = ""

    # Scheduling
    SCRAPE_INTERVAL_SECONDS: int = Field(60, ge=1)

    # Concurrency / HTTP
    MAX_CONCURRENT_PIPELINES: int = Field(10, ge=1)
    HTTP_TIMEOUT_SECONDS: float = Field(30.0, gt=0)
    HTTP_RETRY_ATTEMPTS: int = Field(2, ge=1)  # total attempts for idempotent GETs

    # When False, a failed provider pipeline suppresses the run report
    REPORT_RUN_ON_PIPELINE_FAILURE: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = False

    @field_validator("API_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        """Paths are appended as "/auth/login" etc."""
        return value.rstrip("/")


settings = Settings()

"""Application configuration with comprehensive validation."""
from typing import Optional, Literal
from functools import lru_cache
from pydantic import Field, model_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client core settings with production-grade validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "SocialSense Client Core"
    APP_VERSION: str = "1.0.0"
    APP_ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "json"

    # Backend API
    API_URL: str = "http://localhost:3001/api"
    API_ACCESS_TOKEN: Optional[SecretStr] = None
    API_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0, le=300)
    VERIFY_TIMEOUT_SECONDS: float = Field(default=15.0, gt=0, le=120)
    ESTIMATE_TIMEOUT_SECONDS: float = Field(default=45.0, gt=0, le=300)
    ANALYZE_TIMEOUT_SECONDS: float = Field(default=600.0, gt=0, le=1800)
    EXPORT_TIMEOUT_SECONDS: float = Field(default=60.0, gt=0, le=600)

    # Status polling
    POLL_INTERVAL_SECONDS: float = Field(
        default=5.0,
        gt=0,
        le=300,
        description="Refresh interval for resources still in 'processing'",
    )

    # Payment verification policy
    VERIFY_RETRY_DELAY_SECONDS: float = Field(default=2.0, gt=0, le=60)
    VERIFY_MAX_RETRIES: int = Field(default=5, ge=0, le=20)
    VERIFY_SAFETY_TIMEOUT_SECONDS: float = Field(default=15.0, gt=0, le=300)

    # Views left open by clients that never tear them down
    VIEW_IDLE_TTL_SECONDS: int = Field(default=900, ge=30, le=86400)

    @model_validator(mode="after")
    def validate_verification_timing(self):
        """A retry must be able to fire before the safety timeout does."""
        if self.VERIFY_SAFETY_TIMEOUT_SECONDS <= self.VERIFY_RETRY_DELAY_SECONDS:
            raise ValueError(
                "VERIFY_SAFETY_TIMEOUT_SECONDS must be greater than VERIFY_RETRY_DELAY_SECONDS"
            )
        return self

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Ensure production has sane settings."""
        if self.APP_ENV == "production":
            if self.DEBUG:
                raise ValueError("DEBUG must be False in production")
            if not self.API_URL.startswith("https://"):
                raise ValueError("API_URL must use https in production")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()

settings = get_settings()

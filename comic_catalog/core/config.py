"""
Comic Catalog settings, read from the environment and `.env`

Production refuses to start without Marvel keys or with DEBUG on.
Outside production, an invalid configuration falls back to development
defaults so the test suite and local tools still run.
"""
import os
import logging
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # App
    APP_NAME: str = "Comic Catalog"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"

    # Marvel Comics API
    MARVEL_PUBLIC_KEY: str = ""
    MARVEL_PRIVATE_KEY: str = ""
    MARVEL_COMICS_ENDPOINT: str = "https://gateway.marvel.com/v1/public/comics"
    MARVEL_REQUEST_TIMEOUT: float = 30.0
    # Retries belong to the caller; the transport makes one attempt by default
    MARVEL_MAX_RETRIES: int = 0
    MARVEL_MIN_REQUEST_INTERVAL: float = 0.25

    # Redis (page cache, year totals, random sampling)
    REDIS_URL: str = ""
    CACHE_TTL_SECONDS: int = 0  # 0 = never expire
    IGNORE_CACHE: bool = False

    # Random comics
    RANDOM_SAMPLE_SIZE: int = 20

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper() or "INFO"
        return v

    @field_validator("MARVEL_MAX_RETRIES", "CACHE_TTL_SECONDS", "RANDOM_SAMPLE_SIZE")
    @classmethod
    def non_negative(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_production_config(self):
        """Production needs both Marvel keys and DEBUG off."""
        if self.ENVIRONMENT == "production":
            errors = []

            if self.DEBUG:
                errors.append(
                    "DEBUG=True is forbidden in production. "
                    "Set DEBUG=false or ENVIRONMENT=development"
                )

            if not self.MARVEL_PUBLIC_KEY or not self.MARVEL_PRIVATE_KEY:
                errors.append(
                    "MARVEL_PUBLIC_KEY and MARVEL_PRIVATE_KEY are required in production. "
                    "Get them from https://developer.marvel.com/account"
                )

            if errors:
                raise ValueError(
                    "PRODUCTION CONFIG VIOLATIONS:\n" + "\n".join(f"  - {e}" for e in errors)
                )

        return self


try:
    settings = Settings()
except Exception as e:
    if os.getenv("ENVIRONMENT", "development") == "development":
        logger.warning(
            f"Invalid settings ({e}), falling back to development defaults. "
            "Set MARVEL_PUBLIC_KEY and MARVEL_PRIVATE_KEY in .env."
        )
        os.environ.setdefault("ENVIRONMENT", "development")
        settings = Settings(ENVIRONMENT="development")
    else:
        raise

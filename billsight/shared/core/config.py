from functools import lru_cache
from typing import Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Environment Constants
ENV_PRODUCTION = "production"
ENV_STAGING = "staging"
ENV_DEVELOPMENT = "development"

# Region aliases accepted by OVH_ENDPOINT
OVH_ENDPOINTS = {
    "ovh-eu": "https://eu.api.ovh.com/1.0",
    "ovh-ca": "https://ca.api.ovh.com/1.0",
    "ovh-us": "https://api.us.ovhcloud.com/1.0",
}


@lru_cache
def get_settings() -> "Settings":
    """Returns a singleton instance of the application settings."""
    return Settings()


class Settings(BaseSettings):
    """
    Main configuration for Billsight.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """

    APP_NAME: str = "Billsight"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    # ENVIRONMENT options: local, development, staging, production
    ENVIRONMENT: str = ENV_DEVELOPMENT
    TESTING: bool = False

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./billsight.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_RECYCLE: int = 3600
    DB_ECHO: bool = False
    DB_SLOW_QUERY_THRESHOLD_SECONDS: float = 0.2

    # Billing source API (OVHcloud)
    OVH_ENDPOINT: str = "ovh-eu"
    OVH_APPLICATION_KEY: Optional[str] = None
    OVH_APPLICATION_SECRET: Optional[SecretStr] = None
    OVH_CONSUMER_KEY: Optional[SecretStr] = None
    OVH_REQUEST_TIMEOUT_SECONDS: float = 20.0
    # Only HTTP 429 is retried; timeouts are recorded and left to the operator.
    OVH_RATE_LIMIT_RETRIES: int = 3
    OVH_RATE_LIMIT_BACKOFF_SECONDS: float = 1.0

    # Ingestion
    IMPORT_BATCH_SIZE: int = 40

    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True)

    @model_validator(mode="after")
    def validate_all_config(self) -> "Settings":
        """Centralized validation, grouped by concern."""
        if self.TESTING and self.ENVIRONMENT in {ENV_PRODUCTION, ENV_STAGING}:
            raise ValueError(
                "TESTING must be false in staging/production runtime environments."
            )
        self._validate_database_config()
        self._validate_ingestion_config()
        return self

    def _validate_database_config(self) -> None:
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL must not be empty.")
        if self.DB_SLOW_QUERY_THRESHOLD_SECONDS <= 0:
            raise ValueError("DB_SLOW_QUERY_THRESHOLD_SECONDS must be > 0.")

    def _validate_ingestion_config(self) -> None:
        if self.IMPORT_BATCH_SIZE <= 0:
            raise ValueError("IMPORT_BATCH_SIZE must be > 0.")
        if self.OVH_REQUEST_TIMEOUT_SECONDS <= 0:
            raise ValueError("OVH_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.OVH_RATE_LIMIT_RETRIES < 0:
            raise ValueError("OVH_RATE_LIMIT_RETRIES must be >= 0.")

    @property
    def ovh_base_url(self) -> str:
        """Resolve OVH_ENDPOINT aliases to a base URL."""
        endpoint = self.OVH_ENDPOINT.strip()
        return OVH_ENDPOINTS.get(endpoint.lower(), endpoint).rstrip("/")

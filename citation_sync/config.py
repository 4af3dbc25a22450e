from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Postgres holding brand_info and the citation tables
    DATABASE_URL: str = ""

    # Fernet key for provider credentials stored in the database
    ENCRYPTION_KEY: str | None = None

    # Bearer secret required by the cron drain endpoint (disabled when empty)
    CRON_SECRET: str | None = None

    # =================================================================
    # PROVIDER CREDENTIALS - environment wins over the credential store
    # =================================================================
    FOURSQUARE_API_KEY: str | None = None
    DATA_AXLE_API_KEY: str | None = None
    GOOGLE_BUSINESS_CLIENT_ID: str | None = None
    GOOGLE_BUSINESS_CLIENT_SECRET: str | None = None
    GOOGLE_BUSINESS_REFRESH_TOKEN: str | None = None
    FACEBOOK_APP_ID: str | None = None
    FACEBOOK_APP_SECRET: str | None = None
    FACEBOOK_ACCESS_TOKEN: str | None = None
    BROWNBOOK_API_KEY: str | None = None
    LDE_RAPIDAPI_KEY: str | None = None
    NEUSTAR_LOCALEZE_API_KEY: str | None = None

    CREDENTIAL_CACHE_TTL_SECONDS: float = 60.0

    # =================================================================
    # PROVIDER HTTP
    # =================================================================
    PROVIDER_REQUEST_TIMEOUT: float = 30.0
    # 0 = one attempt per drain; the queue attempt counter does the retrying
    PROVIDER_HTTP_MAX_RETRIES: int = 0
    PROVIDER_HTTP_BACKOFF_FACTOR: float = 2.0

    # =================================================================
    # CITATION QUEUE
    # =================================================================
    CITATION_QUEUE_BATCH_SIZE: int = 10
    CITATION_QUEUE_INTERVAL_SECONDS: int = 120
    CITATION_DEFAULT_PRIORITY: int = 50
    CITATION_MAX_ATTEMPTS: int = 3
    CITATION_CLAIM_STALE_SECONDS: int = 900

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour
    DB_STATEMENT_TIMEOUT_SECONDS: int = 60

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            # The worker and the API share a small local database
            config.update(
                {
                    "min_size": 1,
                    "max_size": 5,
                    "timeout": 15.0,
                }
            )

        return config

    def clamp_queue_limit(self, limit: int | None) -> int:
        """Clamp a requested drain size to 1..50, defaulting to the configured batch size."""
        if limit is None:
            return self.CITATION_QUEUE_BATCH_SIZE
        return min(max(1, int(limit)), 50)


settings = Settings()

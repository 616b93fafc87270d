from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Postgres
    DATABASE_URL: str = "postgresql://localhost:5432/scheduler"

    # Google Calendar (service account with domain-wide delegation)
    GOOGLE_SERVICE_ACCOUNT: str | None = None
    GOOGLE_CALENDAR_EMAIL: str | None = None

    # HubSpot private app token
    HUBSPOT_ACCESS_TOKEN: str | None = None

    # Resend (verification emails)
    RESEND_API_KEY: str | None = None
    EMAIL_FROM: str = "Bookings <bookings@example.com>"

    # Env-level fallback, the settings table wins when it has a value
    TEST_MODE: bool = False

    # Manage-booking sessions
    MANAGE_SESSION_SECRET: str | None = None
    MANAGE_SESSION_TTL_MINUTES: int = 60
    VERIFICATION_CODE_TTL_MINUTES: int = 10
    VERIFICATION_CODES_PER_HOUR: int = 3

    # Booking rules
    SLOT_LOCK_TTL_MINUTES: int = 15
    SLOT_LOCK_SWEEP_INTERVAL_MINUTES: int = 5
    MIN_RESCHEDULE_NOTICE_DAYS: int = 2

    # Comma-separated origins allowed to call the public API (the embedding site)
    CORS_ALLOWED_ORIGINS: str = "*"

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def calendar_configured(self) -> bool:
        """Service account credentials are present (host email may come from settings)."""
        return bool(self.GOOGLE_SERVICE_ACCOUNT)

    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ALLOWED_ORIGINS.split(",") if origin.strip()]

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
            config.update(
                {
                    "min_size": 1,
                    "max_size": 4,
                    "timeout": 15.0,
                }
            )

        return config


settings = Settings()

# app/core/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict
import urllib.parse

class Settings(BaseSettings):
    # Read env from .env; ignore unknown keys so extra lines don't crash startup
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Postgres ---
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "physio"
    POSTGRES_USER: str = "physio"
    POSTGRES_PASSWORD: str = "physio"

    # Full async URL override (e.g. sqlite+aiosqlite:///./data/physio.db)
    DATABASE_URL: str | None = None
    DB_POOL_PRE_PING: bool = True

    # --- Store ---
    STORE_TIMEOUT_SECONDS: float = 5.0

    # --- Scheduling ---
    MAX_LOOKAHEAD_DAYS: int = 90
    DEFAULT_DURATION_MIN: int = 60
    MAX_DURATION_MIN: int = 240
    DEFAULT_SLOT_MIN: int = 30
    CANCELLATION_CUTOFF_HOURS: int = 24
    LOCAL_TIMEZONE: str = "America/Edmonton"
    BOOKING_REF_PREFIX: str = "PHY"
    BOOKING_REF_ATTEMPTS: int = 5
    CURRENCY: str = "CAD"

    # --- Lifecycle events ---
    EVENT_MAX_ATTEMPTS: int = 5
    EVENT_RELAY_BATCH: int = 100

    # --- Security ---
    API_KEY: str | None = None

    # --- Monitoring & Logging ---
    APP_ENV: str = "production"
    LOG_LEVEL: str = "INFO"
    LOG_REQUESTS: bool = False
    LOG_RESPONSES: bool = False
    MAX_LOG_LENGTH: int = 200
    SLOW_REQUEST_THRESHOLD: float = 2.0

    # Sync URI (Alembic)
    @property
    def sync_db_uri(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL.replace("+asyncpg", "").replace("+aiosqlite", "")
        pwd = urllib.parse.quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql://{self.POSTGRES_USER}:{pwd}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Async URI (SQLAlchemy engine)
    @property
    def async_db_uri(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        pwd = urllib.parse.quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{pwd}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Monitoring helpers
    @property
    def is_development(self) -> bool:
        return self.APP_ENV.lower() in ("development", "dev", "local")

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() in ("production", "prod")

# Singleton
settings = Settings()

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App Config
    APP_NAME: str = "Meridian Console Backend"
    APP_VERSION: str = "0.1.0"
    PORT: int = 8000
    ENVIRONMENT: str = "development"
    AUTO_INIT_DB: bool = True

    # Database
    DATABASE_URL: str | None = None
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "meridian"
    POSTGRES_PASSWORD: str = "meridian"
    POSTGRES_DB: str = "meridian"
    PGADMIN_PORT: int = 5050

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    LOG_FILE: str | None = None

    # Security
    ALLOWED_ORIGINS: list[str] = ["http://localhost:8501", "http://127.0.0.1:8501"]
    RATE_LIMIT_ENABLED: bool = True

    # Drift
    DRIFT_IGNORE_PATHS: list[str] = []

    # Health
    HEALTH_PROBE_TIMEOUT_SECONDS: float = 5.0
    HEALTH_DEGRADED_LATENCY_MS: float = 1000.0
    HEALTH_MAX_CONCURRENCY: int = 10
    HEALTH_PROBE_RETRIES: int = 2

    # Spend
    DEFAULT_CURRENCY: str = "USD"
    BUDGET_WARNING_THRESHOLD: float = 0.8

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def database_url(self) -> str:
        """DATABASE_URL if set, otherwise assembled from the POSTGRES_* parts."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.POSTGRES_PASSWORD:
            return (
                f"postgresql+psycopg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )
        return f"postgresql+psycopg://{self.POSTGRES_USER}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"


@lru_cache
def get_settings() -> Settings:
    return Settings()

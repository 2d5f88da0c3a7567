from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "eci"
    POSTGRES_USER: str = "eci"
    POSTGRES_PASSWORD: str = "eci"
    # Full SQLAlchemy URL, takes precedence over the POSTGRES_* parts
    DATABASE_URL: Optional[str] = None

    LOG_LEVEL: str = "INFO"
    SERVICE_VERSION: str = "1.0.0"
    RUN_MIGRATIONS: bool = True

    STRICT_TRANSITIONS: bool = False
    TRACKING_NUMBER_PREFIX: str = "SHP"
    TRACKING_NUMBER_MAX_ATTEMPTS: int = 5
    ESTIMATED_DELIVERY_DAYS: int = 4
    DEFAULT_LOCATION: str = "Warehouse"

    STREAM_POLL_INTERVAL_SECONDS: float = 5.0
    STREAM_READ_ATTEMPTS: int = 3
    STREAM_READ_BACKOFF_SECONDS: float = 0.2

    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

@lru_cache
def get_settings() -> Settings:
    return Settings()

from decimal import Decimal
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'textile_user'
    POSTGRES_PASSWORD: str = 'textile_pass'
    POSTGRES_DB: str = 'textile_erp'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Overrides the POSTGRES_* composition when set

    # Redis settings (Celery broker and result backend)
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # Tenant defaults
    DEFAULT_CURRENCY: str = 'INR'

    # Report engine
    REPORT_CACHE_ENABLED: bool = True
    REPORT_CACHE_TTL_SECONDS: float = 30.0
    REPORT_CACHE_MAX_ENTRIES: int = 512
    REPORT_READ_TIMEOUT_SECONDS: float = 15.0
    REPORT_MAX_WORKERS: int = 4

    # Report policy constants
    LOW_STOCK_CRITICAL_FRACTION: Decimal = Decimal('0.5')
    REGION_PERCENT_TOLERANCE: Decimal = Decimal('0.1')
    MACHINE_DEFAULT_PERIOD_HOURS: Decimal = Decimal('24')

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", "REPORT_CACHE_ENABLED", mode="before")
    @classmethod
    def parse_bool(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("LOW_STOCK_CRITICAL_FRACTION")
    @classmethod
    def validate_fraction(cls, v):
        if v < 0 or v > 1:
            raise ValueError("LOW_STOCK_CRITICAL_FRACTION must be between 0 and 1")
        return v

    @field_validator("DEFAULT_CURRENCY", mode="before")
    @classmethod
    def normalize_currency(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

settings = Settings()

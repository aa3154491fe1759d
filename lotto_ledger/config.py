from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 5  # Background jobs only, small pool is enough
    DB_MAX_OVERFLOW: int = 5  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Lottery Accounting Core"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Business day is computed in this zone, never in UTC
    OPERATING_TIMEZONE: str = "America/Costa_Rica"

    # Account statement settlement
    SETTLEMENT_DEFAULT_AGE_DAYS: int = 7
    SETTLEMENT_DEFAULT_BATCH_SIZE: int = 1000
    SETTLEMENT_MAX_BATCH_SIZE: int = 2000  # Hard cap, applied whatever the stored config says
    SETTLEMENT_DEFAULT_HOUR: int = 3
    SETTLEMENT_DEFAULT_MINUTE: int = 0

    # Monthly closing
    MONTHLY_CLOSING_BATCH_SIZE: int = 100  # Entities per page
    MONTHLY_CLOSING_DAY: int = 1
    MONTHLY_CLOSING_HOUR: int = 2

    # Commission policy cache
    COMMISSION_POLICY_CACHE_TTL: int = 300  # 5 minutes
    COMMISSION_POLICY_CACHE_MAX_SIZE: int = 1000

    # Connection warm-up before every job run
    WARMUP_MAX_ATTEMPTS: int = 5
    WARMUP_BASE_DELAY_SECONDS: float = 2.0  # Linear backoff: 2s, 4s, 6s...

    # Graceful shutdown
    SHUTDOWN_TIMEOUT_SECONDS: int = 30

    SCHEDULER_ENABLED: bool = True
    SCHEDULER_MISFIRE_GRACE_SECONDS: Optional[int] = 3600

    @field_validator('OPERATING_TIMEZONE')
    @classmethod
    def validate_timezone(cls, v):
        try:
            ZoneInfo(v)
        except ZoneInfoNotFoundError:
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def operating_tz(self) -> ZoneInfo:
        return ZoneInfo(self.OPERATING_TIMEZONE)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()

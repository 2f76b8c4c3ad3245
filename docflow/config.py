from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from decimal import Decimal
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings (ignored for SQLite)
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Docflow Trading ERP"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Currency
    DEFAULT_CURRENCY: str = "BHD"  # Stamped on documents whose source has no currency
    BASE_CURRENCY: Optional[str] = "BHD"  # Reporting currency; None = each document's own currency

    # Amendments
    AMENDMENT_LOCK_TIMEOUT_SECONDS: int = 5  # Lock wait before allocation gives up with a conflict
    AMENDMENT_REASON_MIN_LENGTH: int = 5

    # Numbering
    SALES_ORDER_NUMBER_PADDING: int = 3  # SO-2026-001

    # Derivations
    ALLOW_REFERENTIAL_FALLBACK: bool = False  # Substitute first/placeholder product & supplier rows
    LPO_APPROVAL_THRESHOLD: Optional[Decimal] = None  # Derived LPOs at or above this total need approval

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return list(self.CORS_ORIGINS)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()

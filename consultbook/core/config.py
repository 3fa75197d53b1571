# consultbook/core/config.py

from __future__ import annotations

import urllib.parse
from datetime import time
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from consultbook.core.errors import ConfigurationError

DEFAULT_PRICE_TABLE: Dict[str, Dict[int, Decimal]] = {
    "CAD": {30: Decimal("50"), 60: Decimal("90"), 90: Decimal("130")},
    "MAD": {30: Decimal("500"), 60: Decimal("900"), 90: Decimal("1300")},
}


class WorkingBand(BaseModel):
    """A daily window in which legacy time slots are generated."""

    start: time
    end: time

    @model_validator(mode="after")
    def _check_order(self) -> "WorkingBand":
        if self.start >= self.end:
            raise ValueError("working band start must be before end")
        return self


DEFAULT_WORKING_BANDS: List[WorkingBand] = [
    WorkingBand(start=time(9, 0), end=time(12, 0)),
    WorkingBand(start=time(14, 0), end=time(17, 0)),
]


class PricingTable:
    """Currency -> duration -> amount lookup, injected into the booking flow."""

    def __init__(self, table: Dict[str, Dict[int, Decimal]]):
        self._table = {
            currency.upper(): {int(k): Decimal(str(v)) for k, v in prices.items()}
            for currency, prices in table.items()
        }

    @property
    def currencies(self) -> List[str]:
        return sorted(self._table)

    def price_for(self, currency: str, duration: int) -> Decimal:
        amount = self._table.get(currency.upper(), {}).get(duration)
        if amount is None or amount <= 0:
            raise ConfigurationError(
                f"No price configured for {duration} minutes in {currency}"
            )
        return amount


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
    POSTGRES_DB: str = "consultbook"
    POSTGRES_USER: str = "consultbook"
    POSTGRES_PASSWORD: str = ""
    # Full async URL; overrides the POSTGRES_* parts when set (tests use sqlite)
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_RECYCLE_SECONDS: int = 1800

    # --- Security ---
    ADMIN_API_KEY: Optional[str] = None

    # --- Scheduling ---
    BUSINESS_TIMEZONE: str = "America/Toronto"
    PRICE_TABLE: Dict[str, Dict[int, Decimal]] = DEFAULT_PRICE_TABLE
    WORKING_BANDS: List[WorkingBand] = DEFAULT_WORKING_BANDS

    # --- Notifications ---
    NOTIFICATIONS_ENABLED: bool = True
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    NOTIFY_FROM_EMAIL: Optional[str] = None
    ADMIN_EMAIL: Optional[str] = None
    NOTIFY_WEBHOOK_URL: Optional[str] = None

    # --- Reminder job ---
    REMINDER_SCHEDULER_ENABLED: bool = False
    REMINDER_INTERVAL_SECONDS: int = 3600

    # --- Monitoring & Logging ---
    APP_ENV: str = "production"
    LOG_LEVEL: str = "INFO"
    LOG_REQUESTS: bool = False
    LOG_RESPONSES: bool = False
    MAX_LOG_LENGTH: int = 200
    SLOW_REQUEST_THRESHOLD: float = 2.0

    @field_validator("PRICE_TABLE")
    @classmethod
    def _upper_currencies(cls, v: Dict[str, Dict[int, Decimal]]) -> Dict[str, Dict[int, Decimal]]:
        return {k.upper(): prices for k, prices in v.items()}

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

    @property
    def pricing(self) -> PricingTable:
        return PricingTable(self.PRICE_TABLE)

    @property
    def smtp_configured(self) -> bool:
        return all([self.SMTP_HOST, self.SMTP_USER, self.SMTP_PASSWORD, self.NOTIFY_FROM_EMAIL])

    # Monitoring helpers
    @property
    def is_development(self) -> bool:
        return self.APP_ENV.lower() in ("development", "dev", "local")

    @property
    def is_testing(self) -> bool:
        return self.APP_ENV.lower() in ("test", "testing")


# Singleton
settings = Settings()

"""
Tests for settings, pricing lookup and error logging helpers.
"""
from datetime import time
from decimal import Decimal
from unittest.mock import patch

import pytest
from pydantic import ValidationError
from sqlalchemy.pool import StaticPool

from consultbook.core.config import DEFAULT_PRICE_TABLE, PricingTable, Settings, WorkingBand, settings
from consultbook.core.errors import (
    BusinessRuleViolation,
    ConfigurationError,
    ErrorSeverity,
    InvalidRequestError,
    NotFoundError,
    log_error,
)
from consultbook.db.session import engine_options


@pytest.mark.unit
class TestPricing:
    def test_default_table(self):
        table = PricingTable(DEFAULT_PRICE_TABLE)
        assert table.currencies == ["CAD", "MAD"]
        assert table.price_for("CAD", 30) == Decimal("50")
        assert table.price_for("mad", 60) == Decimal("900")

    def test_missing_or_non_positive_price(self):
        table = PricingTable({"CAD": {30: "0", 60: "90"}})
        with pytest.raises(ConfigurationError):
            table.price_for("CAD", 30)
        with pytest.raises(ConfigurationError):
            table.price_for("CAD", 90)
        with pytest.raises(ConfigurationError):
            table.price_for("EUR", 60)


@pytest.mark.unit
class TestSettings:
    def test_database_url_override(self):
        s = Settings(DATABASE_URL="sqlite+aiosqlite:///./local.db")
        assert s.async_db_uri == "sqlite+aiosqlite:///./local.db"
        assert s.sync_db_uri == "sqlite:///./local.db"

    def test_postgres_uris_from_parts(self):
        s = Settings(DATABASE_URL=None, POSTGRES_HOST="db", POSTGRES_PORT=5433, POSTGRES_DB="cb",
                     POSTGRES_USER="cb", POSTGRES_PASSWORD="p@ss word")
        assert s.async_db_uri == "postgresql+asyncpg://cb:p%40ss+word@db:5433/cb"
        assert s.sync_db_uri == "postgresql://cb:p%40ss+word@db:5433/cb"

    def test_price_table_currencies_are_upper_cased(self):
        s = Settings(PRICE_TABLE={"cad": {30: 55}})
        assert s.pricing.price_for("CAD", 30) == Decimal("55")

    def test_environment_flags(self):
        assert Settings(APP_ENV="development").is_development
        assert Settings(APP_ENV="testing").is_testing
        assert not Settings(APP_ENV="production").is_development

    def test_working_band_order(self):
        with pytest.raises(ValidationError):
            WorkingBand(start=time(12, 0), end=time(9, 0))

    def test_engine_options_for_in_memory_sqlite(self):
        options = engine_options("sqlite+aiosqlite:///:memory:")
        assert options["poolclass"] is StaticPool
        assert options["connect_args"] == {"check_same_thread": False}
        assert "pool_size" not in options

    def test_engine_options_for_file_sqlite(self):
        options = engine_options("sqlite+aiosqlite:///./local.db")
        assert "poolclass" not in options

    def test_engine_options_for_postgres(self):
        options = engine_options("postgresql+asyncpg://cb:pw@db:5432/cb")
        assert options["pool_pre_ping"] is True
        assert options["pool_size"] == settings.DB_POOL_SIZE
        assert options["max_overflow"] == settings.DB_MAX_OVERFLOW


@pytest.mark.unit
class TestErrors:
    def test_status_codes(self):
        assert NotFoundError("x").status_code == 404
        assert BusinessRuleViolation("x").status_code == 409
        assert InvalidRequestError("x").status_code == 400
        assert ConfigurationError("x").status_code == 500
        assert isinstance(InvalidRequestError("x"), BusinessRuleViolation)

    def test_log_error_uses_error_severity(self):
        with patch("consultbook.core.errors.logger") as mock_logger:
            log_error(ConfigurationError("no price"), {"component": "pricing"})
            mock_logger.error.assert_called_once()
            _, kwargs = mock_logger.error.call_args
            assert kwargs["severity"] == ErrorSeverity.HIGH.value
            assert kwargs["component"] == "pricing"

            log_error(RuntimeError("smtp down"))
            mock_logger.warning.assert_called_once()

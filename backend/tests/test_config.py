"""Tests for settings, store setup and logging."""

import json
import logging

import pytest

from portfolio_app.config import BackingMode, Settings
from portfolio_app.core.exceptions import ConfigurationError
from portfolio_app.core.logging import JsonFormatter, setup_logging
from portfolio_app.core.store_backends.demo import DemoLedgerStore
from portfolio_app.core.store_backends.sql import SQLLedgerStore
from portfolio_app.core.store_setup import init_store, shutdown_store


class TestSettings:
    """Tests for environment-driven configuration."""

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.backing_mode == BackingMode.LIVE
        assert settings.allow_oversell is False
        assert settings.recent_transactions_limit == 20
        assert settings.default_currency == "USD"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("BACKING_MODE", "demo")
        monkeypatch.setenv("PORTFOLIO_ID", "7")
        monkeypatch.setenv("ALLOW_OVERSELL", "true")

        settings = Settings(_env_file=None)
        assert settings.backing_mode == BackingMode.DEMO
        assert settings.portfolio_id == 7
        assert settings.allow_oversell is True


class TestStoreSetup:
    """Tests for choosing the backing store at startup."""

    @pytest.mark.asyncio
    async def test_demo_mode(self):
        store = await init_store(Settings(_env_file=None, backing_mode=BackingMode.DEMO))
        assert isinstance(store, DemoLedgerStore)
        assert store.read_only

    @pytest.mark.asyncio
    async def test_live_mode_creates_database_directory(self, tmp_path):
        db_path = tmp_path / "nested" / "ledger.db"
        settings = Settings(_env_file=None, database_url=f"sqlite+aiosqlite:///{db_path}")

        store = await init_store(settings)
        try:
            assert isinstance(store, SQLLedgerStore)
            assert not store.read_only
            assert db_path.parent.is_dir()
            assert await store.list_portfolios(settings.user_id) == []
        finally:
            await shutdown_store(store)

    @pytest.mark.asyncio
    async def test_live_mode_needs_database_url(self):
        with pytest.raises(ConfigurationError):
            await init_store(Settings(_env_file=None, database_url=None))


class TestLogging:
    """Tests for logging configuration."""

    def test_json_formatter(self):
        record = logging.LogRecord(
            name="portfolio_app.core.accounting",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Recorded %s of %s",
            args=("buy", 10),
            exc_info=None,
        )
        data = json.loads(JsonFormatter().format(record))
        assert data["level"] == "INFO"
        assert data["logger"] == "portfolio_app.core.accounting"
        assert data["message"] == "Recorded buy of 10"

    def test_setup_logging_sets_levels(self):
        setup_logging("DEBUG", "json")
        assert logging.getLogger("portfolio_app").level == logging.DEBUG
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        assert isinstance(logging.getLogger().handlers[0].formatter, JsonFormatter)

    def test_unknown_level_falls_back_to_info(self):
        setup_logging("chatty")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert not isinstance(root.handlers[0].formatter, JsonFormatter)

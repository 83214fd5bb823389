"""Ledger store initialization."""
from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy.engine import make_url

from portfolio_app.config import BackingMode, Settings
from portfolio_app.database import create_engine_for, create_session_factory, init_db
from .exceptions import ConfigurationError
from .ledger_store import LedgerStore
from .store_backends.demo import DemoLedgerStore
from .store_backends.sql import SQLLedgerStore

logger = logging.getLogger(__name__)


async def init_store(settings: Settings) -> LedgerStore:
    """Build the store for the configured backing mode, once, at startup"""
    if settings.backing_mode == BackingMode.DEMO:
        logger.warning("Running in demo mode: sample data, all writes are rejected")
        return DemoLedgerStore()

    if not settings.database_url:
        raise ConfigurationError("database_url is required in live mode")

    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine_for(settings.database_url, echo=settings.debug)
    await init_db(engine)
    logger.info("Ledger store connected")
    return SQLLedgerStore(create_session_factory(engine), engine=engine)


async def shutdown_store(store: LedgerStore) -> None:
    await store.close()

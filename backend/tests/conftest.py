"""Pytest configuration and fixtures."""

from datetime import date, timedelta
from typing import Optional

import pytest
import pytest_asyncio

from portfolio_app.config import BackingMode, Settings
from portfolio_app.core.accounting import PortfolioAccountingService
from portfolio_app.core.reconciler import replay
from portfolio_app.core.store_backends.sql import SQLLedgerStore
from portfolio_app.database import create_engine_for, create_session_factory, init_db
from portfolio_app.models.portfolio import Transaction
from portfolio_app.schemas.portfolio import TransactionCreate

TODAY = date(2026, 10, 19)


def days_ago(n: int) -> date:
    return TODAY - timedelta(days=n)


def trade(
    operation: str,
    ticker: str,
    shares,
    price,
    on: Optional[date] = None,
    fee=None,
) -> TransactionCreate:
    """Transaction form as the client would submit it."""
    return TransactionCreate(
        ticker=ticker,
        operation=operation,
        date=on or TODAY,
        shares=shares,
        price=price,
        fee=fee,
    )


def make_tx(
    tx_id: Optional[int],
    tx_type: str,
    shares: int,
    price: float,
    on: date = TODAY,
    stock_id: int = 1,
) -> Transaction:
    """Unsaved ledger entry for reconciler tests."""
    return Transaction(
        id=tx_id,
        portfolio_id=1,
        stock_id=stock_id,
        type=tx_type,
        shares=shares,
        price=price,
        amount=shares * price,
        transaction_date=on,
    )


async def assert_holding_matches_replay(service: PortfolioAccountingService, stock_id: int) -> None:
    """Stored holding must equal a full replay of the stored ledger."""
    portfolio_id = service.portfolio.id
    trades = await service.store.list_trades(portfolio_id, stock_id)
    expected = replay(trades)
    holding = await service.store.get_holding(portfolio_id, stock_id)

    if expected is None:
        assert holding is None
    else:
        assert holding is not None
        assert holding.shares == expected.shares
        assert holding.average_cost == pytest.approx(expected.average_cost)


@pytest.fixture
def seed() -> int:
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Live settings against a throwaway SQLite file."""
    return Settings(
        _env_file=None,
        backing_mode=BackingMode.LIVE,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        panel_cache_ttl=300,
    )


@pytest_asyncio.fixture
async def engine(settings):
    engine = create_engine_for(settings.database_url)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory) -> SQLLedgerStore:
    return SQLLedgerStore(session_factory)


@pytest_asyncio.fixture
async def service(store, settings) -> PortfolioAccountingService:
    """Activated accounting service over the SQL store."""
    service = PortfolioAccountingService(store, settings, clock=lambda: TODAY)
    await service.activate()
    return service


@pytest.fixture
def seed_rows(session_factory):
    """Insert reference rows (stocks, dividends) the market-data job would own."""
    async def _seed(*rows):
        async with session_factory() as session:
            for row in rows:
                session.add(row)
            await session.commit()
            for row in rows:
                await session.refresh(row)
        return rows
    return _seed

"""SQLModel ledger store backend."""
from __future__ import annotations

import logging
from datetime import date, datetime
from functools import wraps
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select

from portfolio_app.core.exceptions import NotFoundError, UpstreamStoreError
from portfolio_app.core.ledger_store import LedgerStore
from portfolio_app.core.reconciler import HoldingState
from portfolio_app.models.portfolio import TRADE_TYPES, Holding, Portfolio, Transaction
from portfolio_app.models.stock import Dividend, Stock

logger = logging.getLogger(__name__)


def _upstream(func):
    """Surface persistence failures as UpstreamStoreError"""
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.error("Ledger store call %s failed: %s", func.__name__, e)
            raise UpstreamStoreError(f"{func.__name__} failed: {e}") from e
    return wrapper


class SQLLedgerStore(LedgerStore):
    """Ledger store backed by an async SQLAlchemy session factory."""

    read_only = False

    def __init__(self, session_factory, engine=None):
        self._session_factory = session_factory
        self._engine = engine

    # Portfolios
    @_upstream
    async def get_portfolio(self, portfolio_id: int) -> Optional[Portfolio]:
        async with self._session_factory() as session:
            return await session.get(Portfolio, portfolio_id)

    @_upstream
    async def list_portfolios(self, user_id: str) -> List[Portfolio]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Portfolio)
                .where(Portfolio.user_id == user_id)
                .order_by(Portfolio.created_at, Portfolio.id)
            )
            return list(result.scalars().all())

    @_upstream
    async def create_portfolio(self, user_id: str, name: str, description: Optional[str] = None) -> Portfolio:
        async with self._session_factory() as session:
            portfolio = Portfolio(user_id=user_id, name=name, description=description)
            session.add(portfolio)
            await session.commit()
            await session.refresh(portfolio)
            return portfolio

    # Transactions
    @_upstream
    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        async with self._session_factory() as session:
            return await session.get(Transaction, transaction_id)

    @_upstream
    async def insert_transaction(self, fields: Dict[str, Any]) -> Transaction:
        async with self._session_factory() as session:
            transaction = Transaction(**fields)
            session.add(transaction)
            await session.commit()
            await session.refresh(transaction)
            return transaction

    @_upstream
    async def update_transaction(self, transaction_id: int, fields: Dict[str, Any]) -> Transaction:
        async with self._session_factory() as session:
            transaction = await session.get(Transaction, transaction_id)
            if transaction is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            for key, value in fields.items():
                setattr(transaction, key, value)
            session.add(transaction)
            await session.commit()
            await session.refresh(transaction)
            return transaction

    @_upstream
    async def delete_transaction(self, transaction_id: int) -> None:
        async with self._session_factory() as session:
            transaction = await session.get(Transaction, transaction_id)
            if transaction is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            await session.delete(transaction)
            await session.commit()

    @_upstream
    async def list_transactions(self, portfolio_id: int, limit: int) -> List[Transaction]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Transaction)
                .where(Transaction.portfolio_id == portfolio_id)
                .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    @_upstream
    async def list_trades(self, portfolio_id: int, stock_id: int) -> List[Transaction]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Transaction)
                .where(
                    Transaction.portfolio_id == portfolio_id,
                    Transaction.stock_id == stock_id,
                    Transaction.type.in_(TRADE_TYPES),
                )
                .order_by(Transaction.transaction_date, Transaction.id)
            )
            return list(result.scalars().all())

    @_upstream
    async def list_traded_stock_ids(self, portfolio_id: int) -> List[int]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Transaction.stock_id)
                .where(
                    Transaction.portfolio_id == portfolio_id,
                    Transaction.type.in_(TRADE_TYPES),
                )
                .distinct()
            )
            return sorted(result.scalars().all())

    # Holdings
    @_upstream
    async def get_holding(self, portfolio_id: int, stock_id: int) -> Optional[Holding]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Holding).where(
                    Holding.portfolio_id == portfolio_id,
                    Holding.stock_id == stock_id,
                )
            )
            return result.scalar_one_or_none()

    @_upstream
    async def list_holdings(self, portfolio_id: int) -> List[Holding]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Holding)
                .where(Holding.portfolio_id == portfolio_id)
                .order_by(Holding.id)
            )
            return list(result.scalars().all())

    @_upstream
    async def upsert_holding(self, portfolio_id: int, stock_id: int, state: HoldingState) -> Holding:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Holding).where(
                    Holding.portfolio_id == portfolio_id,
                    Holding.stock_id == stock_id,
                )
            )
            holding = result.scalar_one_or_none()
            if holding is None:
                holding = Holding(portfolio_id=portfolio_id, stock_id=stock_id,
                                  shares=state.shares, average_cost=state.average_cost)
            holding.shares = state.shares
            holding.average_cost = state.average_cost
            holding.current_price = state.current_price
            holding.last_updated = datetime.now()
            session.add(holding)
            await session.commit()
            await session.refresh(holding)
            return holding

    @_upstream
    async def delete_holding(self, holding_id: int) -> None:
        async with self._session_factory() as session:
            holding = await session.get(Holding, holding_id)
            if holding is not None:
                await session.delete(holding)
                await session.commit()

    # Reference data
    @_upstream
    async def get_stock_by_symbol(self, symbol: str) -> Optional[Stock]:
        async with self._session_factory() as session:
            result = await session.execute(select(Stock).where(Stock.symbol == symbol))
            return result.scalar_one_or_none()

    @_upstream
    async def resolve_or_create_stock(self, symbol: str, default_name: str) -> Stock:
        async with self._session_factory() as session:
            result = await session.execute(select(Stock).where(Stock.symbol == symbol))
            stock = result.scalar_one_or_none()
            if stock is not None:
                return stock

            stock = Stock(symbol=symbol, name=default_name)
            session.add(stock)
            try:
                await session.commit()
            except IntegrityError:
                # Inserted by the market-data job in the meantime
                await session.rollback()
                result = await session.execute(select(Stock).where(Stock.symbol == symbol))
                return result.scalar_one()
            await session.refresh(stock)
            logger.info("Created stock %s", symbol)
            return stock

    @_upstream
    async def list_stocks(self, stock_ids: Sequence[int]) -> List[Stock]:
        if not stock_ids:
            return []
        async with self._session_factory() as session:
            result = await session.execute(select(Stock).where(Stock.id.in_(list(stock_ids))))
            return list(result.scalars().all())

    @_upstream
    async def list_dividends(
        self,
        stock_ids: Sequence[int],
        statuses: Optional[Sequence[str]],
        from_date: date,
        to_date: Optional[date] = None,
    ) -> List[Dividend]:
        if not stock_ids:
            return []
        query = select(Dividend).where(
            Dividend.stock_id.in_(list(stock_ids)),
            Dividend.payment_date >= from_date,
        )
        if statuses is not None:
            query = query.where(Dividend.status.in_(list(statuses)))
        if to_date is not None:
            query = query.where(Dividend.payment_date <= to_date)
        async with self._session_factory() as session:
            result = await session.execute(query.order_by(Dividend.payment_date, Dividend.id))
            return list(result.scalars().all())

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

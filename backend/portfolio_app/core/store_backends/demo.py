"""Read-only in-memory ledger store for demo mode."""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from portfolio_app.core.demo_data import DemoDataset, build_demo_dataset
from portfolio_app.core.exceptions import ReadOnlyModeError
from portfolio_app.core.ledger_store import LedgerStore
from portfolio_app.core.reconciler import HoldingState, ledger_order_key
from portfolio_app.models.portfolio import Holding, Portfolio, Transaction
from portfolio_app.models.stock import Dividend, Stock


class DemoLedgerStore(LedgerStore):
    """Serves a fixed snapshot; every write raises ReadOnlyModeError."""

    read_only = True

    def __init__(self, dataset: Optional[DemoDataset] = None):
        self._data = dataset or build_demo_dataset()

    def _refuse(self, operation: str):
        raise ReadOnlyModeError(f"{operation} is not available in demo mode")

    # Portfolios
    async def get_portfolio(self, portfolio_id: int) -> Optional[Portfolio]:
        if portfolio_id == self._data.portfolio.id:
            return self._data.portfolio
        return None

    async def list_portfolios(self, user_id: str) -> List[Portfolio]:
        # The demo portfolio is shown to whoever asks
        return [self._data.portfolio]

    async def create_portfolio(self, user_id: str, name: str, description: Optional[str] = None) -> Portfolio:
        self._refuse("create_portfolio")

    # Transactions
    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        return self._data.transactions.get(transaction_id)

    async def insert_transaction(self, fields: Dict[str, Any]) -> Transaction:
        self._refuse("insert_transaction")

    async def update_transaction(self, transaction_id: int, fields: Dict[str, Any]) -> Transaction:
        self._refuse("update_transaction")

    async def delete_transaction(self, transaction_id: int) -> None:
        self._refuse("delete_transaction")

    async def list_transactions(self, portfolio_id: int, limit: int) -> List[Transaction]:
        entries = [tx for tx in self._data.transactions.values() if tx.portfolio_id == portfolio_id]
        entries.sort(key=ledger_order_key, reverse=True)
        return entries[:limit]

    async def list_trades(self, portfolio_id: int, stock_id: int) -> List[Transaction]:
        trades = [
            tx for tx in self._data.transactions.values()
            if tx.portfolio_id == portfolio_id and tx.stock_id == stock_id and tx.is_trade
        ]
        return sorted(trades, key=ledger_order_key)

    async def list_traded_stock_ids(self, portfolio_id: int) -> List[int]:
        return sorted({
            tx.stock_id for tx in self._data.transactions.values()
            if tx.portfolio_id == portfolio_id and tx.is_trade
        })

    # Holdings
    async def get_holding(self, portfolio_id: int, stock_id: int) -> Optional[Holding]:
        holding = self._data.holdings.get(stock_id)
        if holding is not None and holding.portfolio_id == portfolio_id:
            return holding
        return None

    async def list_holdings(self, portfolio_id: int) -> List[Holding]:
        return [h for h in self._data.holdings.values() if h.portfolio_id == portfolio_id]

    async def upsert_holding(self, portfolio_id: int, stock_id: int, state: HoldingState) -> Holding:
        self._refuse("upsert_holding")

    async def delete_holding(self, holding_id: int) -> None:
        self._refuse("delete_holding")

    # Reference data
    async def get_stock_by_symbol(self, symbol: str) -> Optional[Stock]:
        return self._data.stock_by_symbol(symbol)

    async def resolve_or_create_stock(self, symbol: str, default_name: str) -> Stock:
        stock = self._data.stock_by_symbol(symbol)
        if stock is None:
            self._refuse("resolve_or_create_stock")
        return stock

    async def list_stocks(self, stock_ids: Sequence[int]) -> List[Stock]:
        return [self._data.stocks[i] for i in stock_ids if i in self._data.stocks]

    async def list_dividends(
        self,
        stock_ids: Sequence[int],
        statuses: Optional[Sequence[str]],
        from_date: date,
        to_date: Optional[date] = None,
    ) -> List[Dividend]:
        wanted = set(stock_ids)
        dividends = [
            d for d in self._data.dividends
            if d.stock_id in wanted
            and d.payment_date >= from_date
            and (statuses is None or d.status in statuses)
            and (to_date is None or d.payment_date <= to_date)
        ]
        return sorted(dividends, key=lambda d: (d.payment_date, d.id))

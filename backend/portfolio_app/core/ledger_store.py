"""Ledger store interface consumed by the accounting service."""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from portfolio_app.core.reconciler import HoldingState
from portfolio_app.models.portfolio import Holding, Portfolio, Transaction
from portfolio_app.models.stock import Dividend, Stock


class LedgerStore(ABC):
    """Persistence collaborator of the accounting service.

    Owns the transaction ledger (system of record), the holdings projection
    and stock/dividend reference data. Every call may suspend the caller.
    """

    read_only: bool = False

    # Portfolios
    @abstractmethod
    async def get_portfolio(self, portfolio_id: int) -> Optional[Portfolio]:
        pass

    @abstractmethod
    async def list_portfolios(self, user_id: str) -> List[Portfolio]:
        """Portfolios of a user, oldest first"""

    @abstractmethod
    async def create_portfolio(self, user_id: str, name: str, description: Optional[str] = None) -> Portfolio:
        pass

    # Transactions
    @abstractmethod
    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def insert_transaction(self, fields: Dict[str, Any]) -> Transaction:
        pass

    @abstractmethod
    async def update_transaction(self, transaction_id: int, fields: Dict[str, Any]) -> Transaction:
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: int) -> None:
        pass

    @abstractmethod
    async def list_transactions(self, portfolio_id: int, limit: int) -> List[Transaction]:
        """Most recent entries first"""

    @abstractmethod
    async def list_trades(self, portfolio_id: int, stock_id: int) -> List[Transaction]:
        """Buy and sell entries of one stock in ledger order"""

    @abstractmethod
    async def list_traded_stock_ids(self, portfolio_id: int) -> List[int]:
        pass

    # Holdings
    @abstractmethod
    async def get_holding(self, portfolio_id: int, stock_id: int) -> Optional[Holding]:
        pass

    @abstractmethod
    async def list_holdings(self, portfolio_id: int) -> List[Holding]:
        pass

    @abstractmethod
    async def upsert_holding(self, portfolio_id: int, stock_id: int, state: HoldingState) -> Holding:
        pass

    @abstractmethod
    async def delete_holding(self, holding_id: int) -> None:
        pass

    # Reference data
    @abstractmethod
    async def get_stock_by_symbol(self, symbol: str) -> Optional[Stock]:
        """Stock for ``symbol`` without creating it"""

    @abstractmethod
    async def resolve_or_create_stock(self, symbol: str, default_name: str) -> Stock:
        """Existing stock for ``symbol``, or a new one named ``default_name``"""

    @abstractmethod
    async def list_stocks(self, stock_ids: Sequence[int]) -> List[Stock]:
        pass

    @abstractmethod
    async def list_dividends(
        self,
        stock_ids: Sequence[int],
        statuses: Optional[Sequence[str]],
        from_date: date,
        to_date: Optional[date] = None,
    ) -> List[Dividend]:
        """Dividends paying on or after ``from_date``, payment date ascending"""

    async def close(self) -> None:
        pass

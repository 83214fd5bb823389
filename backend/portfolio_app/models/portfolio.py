"""Portfolio database models"""
from datetime import date, datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


TRANSACTION_TYPES = ("buy", "sell", "dividend")
TRADE_TYPES = ("buy", "sell")


class Portfolio(SQLModel, table=True):
    """Investment portfolio"""
    __tablename__ = "portfolios"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(max_length=64, index=True, description="Owner")
    name: str = Field(max_length=100, description="Portfolio name")
    description: Optional[str] = Field(default=None, description="Description")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Holding(SQLModel, table=True):
    """Current position in a stock, derived from the transaction ledger"""
    __tablename__ = "portfolio_holdings"
    __table_args__ = (UniqueConstraint("portfolio_id", "stock_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    portfolio_id: int = Field(foreign_key="portfolios.id", index=True)
    stock_id: int = Field(foreign_key="stocks.id", index=True)
    shares: int = Field(description="Number of shares, never zero")
    average_cost: float = Field(description="Weighted average cost per share")
    current_price: float = Field(default=0, description="Last trade price")
    last_updated: datetime = Field(default_factory=datetime.now)


class Transaction(SQLModel, table=True):
    """Ledger entry"""
    __tablename__ = "transactions"

    id: Optional[int] = Field(default=None, primary_key=True)
    portfolio_id: int = Field(foreign_key="portfolios.id", index=True)
    stock_id: int = Field(foreign_key="stocks.id", index=True)
    type: str = Field(max_length=10, description="buy/sell/dividend")
    shares: int = Field(default=0, description="Number of shares (0 for plain dividends)")
    price: float = Field(default=0, description="Trade price, or dividend amount")
    amount: float = Field(default=0, description="shares x price for buy/sell")
    fee: float = Field(default=0, description="Commission")
    currency: str = Field(default="USD", max_length=3)
    transaction_date: date = Field(index=True, description="Trade date")
    status: str = Field(default="completed", max_length=10, description="completed/pending")
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_trade(self) -> bool:
        return self.type in TRADE_TYPES

"""Stock reference data models"""
from datetime import date, datetime
from typing import Optional

from sqlmodel import SQLModel, Field


DIVIDEND_STATUSES = ("upcoming", "ex-dividend", "paid")


class Stock(SQLModel, table=True):
    """Stock basic information and latest market snapshot"""
    __tablename__ = "stocks"

    id: Optional[int] = Field(default=None, primary_key=True)
    symbol: str = Field(max_length=16, unique=True, index=True, description="Ticker, e.g. AAPL")
    name: str = Field(max_length=100, description="Company name")
    sector: Optional[str] = Field(default=None, max_length=50, description="Sector")
    market_cap: Optional[str] = Field(default=None, max_length=20, description="Market cap label")
    current_price: Optional[float] = Field(default=None, description="Latest price")
    price_change_24h: Optional[float] = Field(default=None, description="Change vs previous close")
    price_change_percent_24h: Optional[float] = Field(default=None, description="Change percentage")
    last_price_update: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.now)


class Dividend(SQLModel, table=True):
    """Declared dividend event"""
    __tablename__ = "dividends"

    id: Optional[int] = Field(default=None, primary_key=True)
    stock_id: int = Field(foreign_key="stocks.id", index=True)
    amount: float = Field(description="Amount per share")
    ex_dividend_date: date = Field(description="Ex-dividend date")
    payment_date: date = Field(index=True, description="Payment date")
    record_date: Optional[date] = Field(default=None)
    dividend_yield: Optional[float] = Field(default=None, description="Yield percentage")
    frequency: str = Field(default="Quarterly", max_length=12, description="Monthly/Quarterly/Semi-Annual/Annual")
    status: str = Field(default="upcoming", max_length=12, description="Stored status, may be stale")
    created_at: datetime = Field(default_factory=datetime.now)

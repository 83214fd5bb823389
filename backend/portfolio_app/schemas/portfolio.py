"""Portfolio API schemas"""
import datetime as dt
from datetime import date, datetime
from typing import Dict, List, Literal, Optional, Union
from pydantic import BaseModel


class TransactionCreate(BaseModel):
    """Transaction form as submitted by the client.

    Numbers may arrive as strings; they are parsed and validated by the
    accounting service.
    """
    ticker: str
    operation: Literal["buy", "sell", "dividend"]
    date: dt.date
    shares: Union[int, str, None] = None
    price: Union[float, str]
    currency: Optional[str] = None
    fee: Union[float, str, None] = None
    status: Literal["completed", "pending"] = "completed"


class HoldingView(BaseModel):
    """Holding joined with its stock reference data"""
    id: Optional[int] = None
    portfolio_id: int
    stock_id: int
    symbol: str
    name: str
    shares: int
    average_cost: float
    current_price: float
    market_price: Optional[float] = None  # stock price from the market-data job
    price_change_24h: Optional[float] = None
    last_updated: Optional[datetime] = None

    @property
    def price(self) -> float:
        return self.market_price if self.market_price is not None else self.current_price


class TransactionView(BaseModel):
    """Ledger entry with its ticker"""
    id: int
    portfolio_id: int
    stock_id: int
    symbol: str
    type: str
    shares: int
    price: float
    amount: float
    fee: float
    currency: str
    transaction_date: date
    status: str


class TodaysChange(BaseModel):
    """Portfolio value change since previous close"""
    value: float = 0.0
    percentage: float = 0.0


class NextDividend(BaseModel):
    """Earliest upcoming dividend payout for a held stock"""
    symbol: str
    amount: float  # per share
    date: dt.date
    total_amount: float


class DividendView(BaseModel):
    """Dividend with its status derived from today's date"""
    id: Optional[int] = None
    stock_id: int
    symbol: str
    amount: float
    ex_dividend_date: date
    payment_date: date
    dividend_yield: Optional[float] = None
    frequency: str
    status: str
    shares: int = 0
    total_amount: float = 0.0


class PortfolioPosition(BaseModel):
    """Holding valued at its latest price"""
    symbol: str
    name: str
    shares: int
    price: float
    value: float
    cost: float
    change: float
    change_percent: float
    weight: float = 0.0


class DividendPayment(BaseModel):
    symbol: str
    amount: float
    date: dt.date


class MonthlyDividend(BaseModel):
    """Projected dividend income for one calendar month"""
    year: int
    month: int
    label: str
    amount: float = 0.0
    paid_amount: float = 0.0
    payments: List[DividendPayment] = []


class DividendForecast(BaseModel):
    """Dividend income over the next twelve months"""
    months: List[MonthlyDividend]
    next_12_months_total: float
    monthly_average: float


class PortfolioInfo(BaseModel):
    id: int
    user_id: str
    name: str
    description: Optional[str] = None


class PortfolioSnapshot(BaseModel):
    """Every dashboard panel at once"""
    mode: str
    portfolio: Optional[PortfolioInfo] = None
    holdings: List[HoldingView] = []
    transactions: List[TransactionView] = []
    next_dividend: Optional[NextDividend] = None
    todays_change: TodaysChange = TodaysChange()
    errors: Dict[str, str] = {}


class RebuildResult(BaseModel):
    stocks: int
    holdings: int

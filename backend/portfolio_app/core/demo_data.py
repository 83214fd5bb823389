"""Seeded snapshot served when the backend runs in demo mode."""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from portfolio_app.core.reconciler import replay
from portfolio_app.models.portfolio import Holding, Portfolio, Transaction
from portfolio_app.models.stock import Dividend, Stock

DEMO_PORTFOLIO_ID = 1

# symbol, name, sector, price, 24h change
_STOCKS = [
    ("AAPL", "Apple Inc.", "Technology", 175.50, 2.10),
    ("MSFT", "Microsoft Corporation", "Technology", 338.50, 4.20),
    ("GOOGL", "Alphabet Inc.", "Communication Services", 142.75, -1.80),
    ("AMZN", "Amazon.com Inc.", "Consumer Discretionary", 151.25, 0.90),
    ("TSLA", "Tesla Inc.", "Consumer Discretionary", 242.75, -6.30),
    ("NVDA", "NVIDIA Corporation", "Technology", 875.25, 12.40),
    ("KO", "The Coca-Cola Company", "Consumer Staples", 60.10, 0.15),
    ("JNJ", "Johnson & Johnson", "Health Care", 158.20, -0.40),
]

# symbol, type, shares, price, days ago
_LEDGER = [
    ("AAPL", "buy", 100, 155.00, 210),
    ("TSLA", "buy", 90, 260.00, 180),
    ("GOOGL", "buy", 110, 150.00, 150),
    ("MSFT", "buy", 100, 320.00, 120),
    ("AMZN", "buy", 200, 142.50, 90),
    ("AAPL", "buy", 50, 170.00, 60),
    ("NVDA", "buy", 40, 781.25, 45),
    ("MSFT", "dividend", 0, 275.00, 30),
    ("TSLA", "sell", 15, 242.75, 20),
    ("AAPL", "dividend", 0, 157.50, 14),
    ("GOOGL", "sell", 30, 142.75, 9),
    ("NVDA", "buy", 10, 875.25, 3),
]

# symbol, per share, ex-date offset, payment offset, yield, stored status
_DIVIDENDS = [
    ("AAPL", 0.24, 10, 16, 0.52, "upcoming"),
    ("MSFT", 0.75, -3, 28, 0.89, "ex-dividend"),
    ("KO", 0.46, 5, 35, 2.95, "upcoming"),
    ("JNJ", 1.13, -20, 12, 2.87, "upcoming"),
    ("NVDA", 0.01, 55, 62, 0.02, "upcoming"),
    ("AAPL", 0.24, -80, -74, 0.52, "paid"),
]


@dataclass
class DemoDataset:
    """Fixed portfolio snapshot, holdings derived from its ledger"""

    portfolio: Portfolio
    stocks: Dict[int, Stock] = field(default_factory=dict)
    transactions: Dict[int, Transaction] = field(default_factory=dict)
    holdings: Dict[int, Holding] = field(default_factory=dict)
    dividends: List[Dividend] = field(default_factory=list)

    def stock_by_symbol(self, symbol: str) -> Optional[Stock]:
        for stock in self.stocks.values():
            if stock.symbol == symbol:
                return stock
        return None


def build_demo_dataset(today: Optional[date] = None, user_id: str = "demo") -> DemoDataset:
    """Seed the demo snapshot with dates relative to ``today``"""
    today = today or date.today()
    now = datetime.now()

    dataset = DemoDataset(portfolio=Portfolio(
        id=DEMO_PORTFOLIO_ID,
        user_id=user_id,
        name="Demo Portfolio",
        description="Sample data, read-only",
    ))

    for stock_id, (symbol, name, sector, price, change) in enumerate(_STOCKS, start=1):
        dataset.stocks[stock_id] = Stock(
            id=stock_id,
            symbol=symbol,
            name=name,
            sector=sector,
            current_price=price,
            price_change_24h=change,
            price_change_percent_24h=round(change / (price - change) * 100, 2),
            last_price_update=now,
        )

    for tx_id, (symbol, tx_type, shares, price, days_ago) in enumerate(_LEDGER, start=1):
        stock = dataset.stock_by_symbol(symbol)
        dataset.transactions[tx_id] = Transaction(
            id=tx_id,
            portfolio_id=DEMO_PORTFOLIO_ID,
            stock_id=stock.id,
            type=tx_type,
            shares=shares,
            price=price,
            amount=shares * price if tx_type != "dividend" else price,
            transaction_date=today - timedelta(days=days_ago),
        )

    for stock_id in dataset.stocks:
        trades = [tx for tx in dataset.transactions.values()
                  if tx.stock_id == stock_id and tx.is_trade]
        state = replay(trades)
        if state is None:
            continue
        dataset.holdings[stock_id] = Holding(
            id=stock_id,
            portfolio_id=DEMO_PORTFOLIO_ID,
            stock_id=stock_id,
            shares=state.shares,
            average_cost=state.average_cost,
            current_price=state.current_price,
            last_updated=now,
        )

    for dividend_id, (symbol, amount, ex_offset, pay_offset, dividend_yield, status) in enumerate(_DIVIDENDS, start=1):
        dataset.dividends.append(Dividend(
            id=dividend_id,
            stock_id=dataset.stock_by_symbol(symbol).id,
            amount=amount,
            ex_dividend_date=today + timedelta(days=ex_offset),
            payment_date=today + timedelta(days=pay_offset),
            dividend_yield=dividend_yield,
            frequency="Quarterly",
            status=status,
        ))

    return dataset

"""Derived portfolio analytics.

Pure functions of the current holdings snapshot and stock/dividend reference
data. Nothing here touches the store; the accounting service recomputes these
whenever holdings change.
"""
from datetime import date
from typing import Dict, Iterable, List, Literal, Optional, Sequence

from portfolio_app.models.stock import Dividend
from portfolio_app.schemas.portfolio import (
    DividendForecast,
    DividendPayment,
    DividendView,
    HoldingView,
    MonthlyDividend,
    NextDividend,
    PortfolioPosition,
    TodaysChange,
)

VISIBLE_DIVIDEND_STATUSES = ("upcoming", "ex-dividend")
MONTH_LABELS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
                "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def calculate_todays_change(holdings: Iterable[HoldingView]) -> TodaysChange:
    """
    Portfolio value change since the previous close.

    previous_price = price - price_change_24h, summed over held shares.
    Percentage is relative to the previous value and 0 when that is 0.
    """
    total_change = 0.0
    total_previous = 0.0

    for holding in holdings:
        if holding.shares <= 0:
            continue
        current_price = holding.price
        previous_price = current_price - (holding.price_change_24h or 0.0)
        current_value = holding.shares * current_price
        previous_value = holding.shares * previous_price
        total_change += current_value - previous_value
        total_previous += previous_value

    percentage = (total_change / total_previous * 100) if total_previous > 0 else 0.0
    return TodaysChange(value=total_change, percentage=percentage)


def derive_dividend_status(ex_dividend_date: date, payment_date: date, today: date) -> str:
    """Display status computed from calendar dates, ignoring the stored one"""
    if payment_date < today:
        return "paid"
    if ex_dividend_date <= today <= payment_date:
        return "ex-dividend"
    return "upcoming"


def _held_shares(holdings: Iterable[HoldingView]) -> Dict[int, int]:
    return {h.stock_id: h.shares for h in holdings if h.shares > 0}


def visible_dividends(
    dividends: Iterable[Dividend],
    holdings: Iterable[HoldingView],
    today: date,
) -> List[Dividend]:
    """
    Dividends the dashboard may show.

    A dividend is visible only while its stock is held, its payment date has
    not passed and its stored status is upcoming or ex-dividend.
    """
    held = _held_shares(holdings)
    return [
        d for d in dividends
        if d.stock_id in held
        and d.payment_date >= today
        and d.status in VISIBLE_DIVIDEND_STATUSES
    ]


def dividend_views(
    dividends: Iterable[Dividend],
    holdings: Iterable[HoldingView],
    symbols: Dict[int, str],
    today: date,
) -> List[DividendView]:
    holdings = list(holdings)
    held = _held_shares(holdings)
    visible = sorted(visible_dividends(dividends, holdings, today), key=lambda d: d.payment_date)
    return [
        DividendView(
            id=d.id,
            stock_id=d.stock_id,
            symbol=symbols.get(d.stock_id, ""),
            amount=d.amount,
            ex_dividend_date=d.ex_dividend_date,
            payment_date=d.payment_date,
            dividend_yield=d.dividend_yield,
            frequency=d.frequency,
            status=derive_dividend_status(d.ex_dividend_date, d.payment_date, today),
            shares=held[d.stock_id],
            total_amount=d.amount * held[d.stock_id],
        )
        for d in visible
    ]


def find_next_dividend(
    dividends: Iterable[Dividend],
    holdings: Iterable[HoldingView],
    symbols: Dict[int, str],
    today: date,
) -> Optional[NextDividend]:
    """Earliest visible payout, or None"""
    holdings = list(holdings)
    visible = visible_dividends(dividends, holdings, today)
    if not visible:
        return None

    # sorted() is stable, ties keep store order
    upcoming = sorted(visible, key=lambda d: d.payment_date)[0]
    shares = _held_shares(holdings)[upcoming.stock_id]
    return NextDividend(
        symbol=symbols.get(upcoming.stock_id, ""),
        amount=upcoming.amount,
        date=upcoming.payment_date,
        total_amount=upcoming.amount * shares,
    )


def portfolio_positions(holdings: Iterable[HoldingView]) -> List[PortfolioPosition]:
    """Value each holding at its latest price against its cost basis"""
    positions = []
    for holding in holdings:
        price = holding.price
        value = holding.shares * price
        cost = holding.shares * holding.average_cost
        change = value - cost
        positions.append(PortfolioPosition(
            symbol=holding.symbol,
            name=holding.name,
            shares=holding.shares,
            price=price,
            value=value,
            cost=cost,
            change=change,
            change_percent=(change / cost * 100) if cost > 0 else 0.0,
        ))

    total_value = sum(p.value for p in positions)
    for position in positions:
        position.weight = (position.value / total_value * 100) if total_value > 0 else 0.0
    return positions


def top_movers(
    positions: Sequence[PortfolioPosition],
    kind: Literal["gainers", "losers"],
    limit: int = 5,
) -> List[PortfolioPosition]:
    """Best (gainers) or worst (losers) positions by change percentage"""
    if kind == "gainers":
        ranked = sorted(positions, key=lambda p: p.change_percent, reverse=True)
        ranked = [p for p in ranked if p.change_percent > 0]
    elif kind == "losers":
        ranked = sorted(positions, key=lambda p: p.change_percent)
        ranked = [p for p in ranked if p.change_percent < 0]
    else:
        raise ValueError(f"unknown mover kind: {kind}")
    return ranked[:limit]


def _add_months(year: int, month: int, offset: int):
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def forecast_dividends(
    dividends: Iterable[Dividend],
    holdings: Iterable[HoldingView],
    symbols: Dict[int, str],
    today: date,
) -> DividendForecast:
    """
    Dividend income of held stocks over the next twelve calendar months.

    Buckets start at the current month. Payments already made this month
    count towards the bucket's paid amount; dividends of stocks that are no
    longer held are left out.
    """
    held = _held_shares(holdings)
    months = []
    for offset in range(12):
        year, month = _add_months(today.year, today.month, offset)
        months.append(MonthlyDividend(year=year, month=month, label=MONTH_LABELS[month - 1]))
    buckets = {(m.year, m.month): m for m in months}

    for dividend in sorted(dividends, key=lambda d: d.payment_date):
        if dividend.stock_id not in held:
            continue
        bucket = buckets.get((dividend.payment_date.year, dividend.payment_date.month))
        if bucket is None:
            continue
        total = dividend.amount * held[dividend.stock_id]
        bucket.amount += total
        if derive_dividend_status(dividend.ex_dividend_date, dividend.payment_date, today) == "paid":
            bucket.paid_amount += total
        bucket.payments.append(DividendPayment(
            symbol=symbols.get(dividend.stock_id, "Unknown"),
            amount=total,
            date=dividend.payment_date,
        ))

    total = sum(m.amount for m in months)
    return DividendForecast(
        months=months,
        next_12_months_total=total,
        monthly_average=total / 12,
    )

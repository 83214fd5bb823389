"""Portfolio accounting service.

Keeps the holdings projection consistent with the transaction ledger and
serves the dashboard panels derived from it.

Holdings are updated incrementally when the affected entry is the last one in
ledger order for its stock; anything else (backdated entries, edits of older
entries, a closed position whose cost basis is gone) is resolved by replaying
that stock's ledger. Both paths give the same result as a full replay.

Panels are cached in a TTLCache. Every holdings change clears the cache, then
the panels the dashboard shows after a mutation are refreshed concurrently.
A panel that fails to refresh is logged, reported in ``errors`` and left out
of the cache; it never rolls back the mutation.
"""
import asyncio
import logging
import math
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from cachetools import TTLCache

from portfolio_app.config import Settings
from portfolio_app.core import analytics
from portfolio_app.core.exceptions import (
    IrreversibleTransactionError,
    NoActivePortfolioError,
    NotFoundError,
    ReadOnlyModeError,
    ValidationError,
)
from portfolio_app.core.ledger_store import LedgerStore
from portfolio_app.core.reconciler import (
    HoldingState,
    apply_transaction,
    find_oversold,
    ledger_order_key,
    replay,
    reverse_transaction,
)
from portfolio_app.models.portfolio import Holding, Portfolio, Transaction
from portfolio_app.models.stock import Stock
from portfolio_app.schemas.portfolio import (
    DividendForecast,
    DividendView,
    HoldingView,
    NextDividend,
    PortfolioInfo,
    PortfolioPosition,
    PortfolioSnapshot,
    RebuildResult,
    TodaysChange,
    TransactionCreate,
    TransactionView,
)

logger = logging.getLogger(__name__)

# Panels refreshed after every mutation
MUTATION_PANELS = ("holdings", "transactions", "next_dividend", "todays_change")

_PANEL_FALLBACKS: Dict[str, Callable[[], Any]] = {
    "holdings": list,
    "transactions": list,
    "next_dividend": lambda: None,
    "todays_change": TodaysChange,
    "dividends": list,
    "forecast": lambda: DividendForecast(months=[], next_12_months_total=0, monthly_average=0),
}

_INTEGER_RE = re.compile(r"^\+?\d+$")


@dataclass
class ParsedTransaction:
    """Validated transaction input, not yet bound to a stock"""

    symbol: str
    type: str
    shares: int
    price: float
    fee: float
    currency: str
    transaction_date: date
    status: str

    @property
    def amount(self) -> float:
        if self.type == "dividend" and self.shares == 0:
            return self.price
        return self.shares * self.price

    def fields(self, portfolio_id: int, stock_id: int) -> Dict[str, Any]:
        return {
            "portfolio_id": portfolio_id,
            "stock_id": stock_id,
            "type": self.type,
            "shares": self.shares,
            "price": self.price,
            "amount": self.amount,
            "fee": self.fee,
            "currency": self.currency,
            "transaction_date": self.transaction_date,
            "status": self.status,
        }


def _is_blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def parse_shares(raw: Any, required: bool) -> int:
    """Share count from client input; positive when required, else >= 0"""
    if _is_blank(raw):
        if required:
            raise ValidationError("shares is required")
        return 0
    if isinstance(raw, bool):
        raise ValidationError(f"shares must be an integer, got {raw!r}")
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw).strip()
        if not _INTEGER_RE.match(text):
            raise ValidationError(f"shares must be an integer, got {raw!r}")
        value = int(text)

    if required and value <= 0:
        raise ValidationError("shares must be a positive integer")
    if value < 0:
        raise ValidationError("shares must not be negative")
    return value


def parse_money(raw: Any, field: str, default: Optional[float] = None) -> float:
    """Non-negative decimal from client input; ``default`` only when missing"""
    if _is_blank(raw):
        if default is not None:
            return default
        raise ValidationError(f"{field} is required")
    if isinstance(raw, bool):
        raise ValidationError(f"{field} must be a number, got {raw!r}")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number, got {raw!r}") from None
    if not math.isfinite(value) or value < 0:
        raise ValidationError(f"{field} must be a non-negative number")
    return value


class PortfolioAccountingService:
    """Add, update and delete ledger entries of the active portfolio."""

    def __init__(
        self,
        store: LedgerStore,
        settings: Settings,
        clock: Callable[[], date] = date.today,
    ):
        self.store = store
        self.settings = settings
        self._today = clock
        self.portfolio: Optional[Portfolio] = None
        self.errors: Dict[str, str] = {}
        self._panels: TTLCache = TTLCache(
            maxsize=settings.panel_cache_size,
            ttl=settings.panel_cache_ttl,
        )
        self._loaders: Dict[str, Callable] = {
            "holdings": self._load_holdings,
            "transactions": self._load_transactions,
            "next_dividend": self._load_next_dividend,
            "todays_change": self._load_todays_change,
            "dividends": self._load_dividends,
            "forecast": self._load_forecast,
        }

    @property
    def mode(self) -> str:
        return self.settings.backing_mode.value

    # ------------------------------------------------------------------
    # Portfolio context
    # ------------------------------------------------------------------

    async def activate(self) -> Portfolio:
        """Resolve the portfolio every operation runs against"""
        if self.settings.portfolio_id is not None:
            portfolio = await self.store.get_portfolio(self.settings.portfolio_id)
            if portfolio is None:
                raise NotFoundError(f"Portfolio {self.settings.portfolio_id} not found")
        else:
            portfolios = await self.store.list_portfolios(self.settings.user_id)
            if portfolios:
                portfolio = portfolios[0]
            elif self.store.read_only:
                raise NoActivePortfolioError("No portfolio available in read-only mode")
            else:
                portfolio = await self.store.create_portfolio(
                    self.settings.user_id,
                    self.settings.default_portfolio_name,
                    "Default portfolio",
                )
                logger.info("Created default portfolio %s for %s", portfolio.id, self.settings.user_id)

        self.portfolio = portfolio
        self.invalidate()
        logger.info("Active portfolio: %s (%s, %s mode)", portfolio.id, portfolio.name, self.mode)
        return portfolio

    def _require_portfolio(self) -> Portfolio:
        if self.portfolio is None:
            raise NoActivePortfolioError("No active portfolio")
        return self.portfolio

    def _require_writable(self) -> None:
        if self.store.read_only:
            raise ReadOnlyModeError("Portfolio is read-only in demo mode")

    async def _get_owned_transaction(self, portfolio: Portfolio, transaction_id: int) -> Transaction:
        transaction = await self.store.get_transaction(transaction_id)
        if transaction is None or transaction.portfolio_id != portfolio.id:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def parse_input(self, data: TransactionCreate) -> ParsedTransaction:
        symbol = data.ticker.strip().upper()
        if not symbol:
            raise ValidationError("ticker is required")
        is_trade = data.operation in ("buy", "sell")
        return ParsedTransaction(
            symbol=symbol,
            type=data.operation,
            shares=parse_shares(data.shares, required=is_trade),
            price=parse_money(data.price, "price"),
            fee=parse_money(data.fee, "fee", default=0.0),
            currency=((data.currency or "").strip() or self.settings.default_currency).upper(),
            transaction_date=data.date,
            status=data.status,
        )

    async def _resolve_stock(self, symbol: str, stock: Optional[Stock]) -> Stock:
        if stock is not None:
            return stock
        return await self.store.resolve_or_create_stock(symbol, f"{symbol} Inc.")

    def _check_oversell(self, trades: Iterable[Transaction], symbol: str) -> None:
        if self.settings.allow_oversell:
            return
        oversold = find_oversold(trades)
        if oversold is not None:
            sell, available = oversold
            raise ValidationError(
                f"Cannot sell {sell.shares} shares of {symbol} on {sell.transaction_date}: "
                f"only {available} held"
            )

    async def add_transaction(self, data: TransactionCreate) -> Transaction:
        """Append a ledger entry and apply it to the holding"""
        self._require_writable()
        portfolio = self._require_portfolio()
        parsed = self.parse_input(data)

        # Unknown symbols have no trades; the stock row is only created once the entry is valid
        stock = await self.store.get_stock_by_symbol(parsed.symbol)
        candidate = Transaction(**parsed.fields(portfolio.id, stock.id if stock else None))

        trades: List[Transaction] = []
        if candidate.is_trade:
            if stock is not None:
                trades = await self.store.list_trades(portfolio.id, stock.id)
            self._check_oversell(trades + [candidate], parsed.symbol)

        stock = await self._resolve_stock(parsed.symbol, stock)
        transaction = await self.store.insert_transaction(parsed.fields(portfolio.id, stock.id))
        logger.info(
            "Recorded %s of %s %s @ %.4f (transaction %s)",
            transaction.type, transaction.shares, stock.symbol, transaction.price, transaction.id,
        )

        if transaction.is_trade:
            existing = await self.store.get_holding(portfolio.id, stock.id)
            if _is_last(trades, transaction):
                new_state = apply_transaction(HoldingState.from_holding(existing), transaction)
            else:
                logger.debug("Backdated entry for %s, replaying ledger", stock.symbol)
                new_state = replay(trades + [transaction])
            await self._write_holding(portfolio.id, stock.id, existing, new_state)

        await self._holdings_changed(MUTATION_PANELS)
        return transaction

    async def update_transaction(self, transaction_id: int, data: TransactionCreate) -> Transaction:
        """Rewrite a ledger entry: retract the original, apply the new one"""
        self._require_writable()
        portfolio = self._require_portfolio()
        original = await self._get_owned_transaction(portfolio, transaction_id)
        parsed = self.parse_input(data)

        stock = await self.store.get_stock_by_symbol(parsed.symbol)
        target_id = stock.id if stock else None
        candidate = Transaction(id=original.id, **parsed.fields(portfolio.id, target_id))

        # Every stock whose ledger changes must stay covered once the edit lands
        affected: Dict[Optional[int], str] = {}
        if original.is_trade:
            affected[original.stock_id] = f"stock {original.stock_id}"
        if candidate.is_trade:
            affected[target_id] = parsed.symbol
        for stock_id, label in affected.items():
            ledger: List[Transaction] = []
            if stock_id is not None:
                trades = await self.store.list_trades(portfolio.id, stock_id)
                ledger = [t for t in trades if t.id != original.id]
            if candidate.is_trade and stock_id == target_id:
                ledger.append(candidate)
            self._check_oversell(ledger, label)

        stock = await self._resolve_stock(parsed.symbol, stock)
        updated = await self.store.update_transaction(original.id, parsed.fields(portfolio.id, stock.id))
        logger.info("Updated transaction %s (%s %s -> %s %s)",
                    updated.id, original.type, original.shares, updated.type, updated.shares)

        if original.stock_id == updated.stock_id:
            await self._reconcile_update(portfolio.id, original, updated)
        else:
            for stock_id in (original.stock_id, updated.stock_id):
                await self._replay_stock(portfolio.id, stock_id)

        await self._holdings_changed(MUTATION_PANELS)
        return updated

    async def _reconcile_update(self, portfolio_id: int, original: Transaction, updated: Transaction) -> None:
        if not original.is_trade and not updated.is_trade:
            return

        trades = await self.store.list_trades(portfolio_id, updated.stock_id)
        others = [t for t in trades if t.id != updated.id]
        existing = await self.store.get_holding(portfolio_id, updated.stock_id)

        new_state: Optional[HoldingState]
        if _is_last(others, original) and _is_last(others, updated):
            try:
                retracted = reverse_transaction(HoldingState.from_holding(existing), original)
                new_state = apply_transaction(retracted, updated)
            except IrreversibleTransactionError:
                new_state = replay(trades)
        else:
            new_state = replay(trades)

        await self._write_holding(portfolio_id, updated.stock_id, existing, new_state)

    async def delete_transaction(self, transaction_id: int) -> Transaction:
        """Remove a ledger entry and retract its effect on the holding"""
        self._require_writable()
        portfolio = self._require_portfolio()
        transaction = await self._get_owned_transaction(portfolio, transaction_id)

        remaining: List[Transaction] = []
        if transaction.is_trade:
            trades = await self.store.list_trades(portfolio.id, transaction.stock_id)
            remaining = [t for t in trades if t.id != transaction.id]
            self._check_oversell(remaining, f"stock {transaction.stock_id}")

        await self.store.delete_transaction(transaction.id)
        logger.info("Deleted transaction %s (%s)", transaction.id, transaction.type)

        panels = ["holdings", "transactions", "todays_change"]
        if transaction.is_trade:
            existing = await self.store.get_holding(portfolio.id, transaction.stock_id)
            try:
                if _is_last(remaining, transaction):
                    new_state = reverse_transaction(HoldingState.from_holding(existing), transaction)
                else:
                    new_state = replay(remaining)
            except IrreversibleTransactionError:
                new_state = replay(remaining)
            holding = await self._write_holding(portfolio.id, transaction.stock_id, existing, new_state)

            if not remaining and holding is None:
                logger.info("Last trade of stock %s removed, its dividends are no longer tracked",
                            transaction.stock_id)
                panels.append("next_dividend")

        await self._holdings_changed(panels)
        return transaction

    async def rebuild_holdings(self) -> RebuildResult:
        """Replace every holding of the portfolio with a full ledger replay"""
        self._require_writable()
        portfolio = self._require_portfolio()

        stock_ids = set(await self.store.list_traded_stock_ids(portfolio.id))
        stock_ids.update(h.stock_id for h in await self.store.list_holdings(portfolio.id))

        kept = 0
        for stock_id in sorted(stock_ids):
            if await self._replay_stock(portfolio.id, stock_id) is not None:
                kept += 1

        logger.info("Rebuilt holdings of portfolio %s: %s stocks, %s holdings", portfolio.id, len(stock_ids), kept)
        await self._holdings_changed(MUTATION_PANELS)
        return RebuildResult(stocks=len(stock_ids), holdings=kept)

    async def _replay_stock(self, portfolio_id: int, stock_id: int) -> Optional[Holding]:
        trades = await self.store.list_trades(portfolio_id, stock_id)
        existing = await self.store.get_holding(portfolio_id, stock_id)
        return await self._write_holding(portfolio_id, stock_id, existing, replay(trades))

    async def _write_holding(
        self,
        portfolio_id: int,
        stock_id: int,
        existing: Optional[Holding],
        state: Optional[HoldingState],
    ) -> Optional[Holding]:
        """Upsert the holding, or delete it when no shares are left"""
        if state is None:
            if existing is not None:
                await self.store.delete_holding(existing.id)
            return None
        return await self.store.upsert_holding(portfolio_id, stock_id, state)

    # ------------------------------------------------------------------
    # Panels
    # ------------------------------------------------------------------

    def invalidate(self) -> None:
        """Forget every cached panel"""
        self._panels.clear()
        self.errors.clear()

    async def _holdings_changed(self, panels: Sequence[str]) -> Dict[str, str]:
        self.invalidate()
        return await self.refresh(panels)

    async def refresh(self, panels: Sequence[str] = MUTATION_PANELS) -> Dict[str, str]:
        """
        Reload panels concurrently.

        Failures are isolated per panel: logged, recorded in ``errors`` and
        returned, never raised.
        """
        self._require_portfolio()
        names = list(panels)
        results = await asyncio.gather(
            *(self._loaders[name]() for name in names),
            return_exceptions=True,
        )

        failed = {}
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.error("Refreshing %s panel failed: %s", name, result, exc_info=result)
                self._panels.pop(name, None)
                self.errors[name] = str(result) or type(result).__name__
                failed[name] = self.errors[name]
            else:
                self._panels[name] = result
                self.errors.pop(name, None)
        return failed

    async def _panel(self, name: str):
        self._require_portfolio()
        try:
            return self._panels[name]
        except KeyError:
            pass
        value = await self._loaders[name]()
        self._panels[name] = value
        self.errors.pop(name, None)
        return value

    async def _panel_or_fallback(self, name: str):
        try:
            return await self._panel(name)
        except NoActivePortfolioError:
            raise
        except Exception as e:
            logger.error("Loading %s panel failed: %s", name, e, exc_info=e)
            self.errors[name] = str(e) or type(e).__name__
            return _PANEL_FALLBACKS[name]()

    async def holdings(self) -> List[HoldingView]:
        return await self._panel("holdings")

    async def transactions(self, limit: Optional[int] = None) -> List[TransactionView]:
        if limit is None or limit == self.settings.recent_transactions_limit:
            return await self._panel("transactions")
        self._require_portfolio()
        return await self._load_transactions(limit)

    async def todays_change(self) -> TodaysChange:
        return await self._panel("todays_change")

    async def next_dividend(self) -> Optional[NextDividend]:
        return await self._panel("next_dividend")

    async def dividends(self) -> List[DividendView]:
        return await self._panel("dividends")

    async def dividend_forecast(self) -> DividendForecast:
        return await self._panel("forecast")

    async def positions(self) -> List[PortfolioPosition]:
        return analytics.portfolio_positions(await self.holdings())

    async def top_movers(self, kind: str) -> List[PortfolioPosition]:
        if kind not in ("gainers", "losers"):
            raise ValidationError(f"kind must be gainers or losers, got {kind!r}")
        return analytics.top_movers(await self.positions(), kind, self.settings.top_movers_limit)

    async def snapshot(self) -> PortfolioSnapshot:
        """Every dashboard panel; failed panels are degraded and listed in errors"""
        portfolio = self._require_portfolio()
        holdings, transactions, next_dividend, todays_change = await asyncio.gather(
            *(self._panel_or_fallback(name) for name in MUTATION_PANELS)
        )
        return PortfolioSnapshot(
            mode=self.mode,
            portfolio=PortfolioInfo(
                id=portfolio.id,
                user_id=portfolio.user_id,
                name=portfolio.name,
                description=portfolio.description,
            ),
            holdings=holdings,
            transactions=transactions,
            next_dividend=next_dividend,
            todays_change=todays_change,
            errors=dict(self.errors),
        )

    # Loaders

    async def _holding_views(self) -> List[HoldingView]:
        portfolio = self._require_portfolio()
        holdings = [h for h in await self.store.list_holdings(portfolio.id) if h.shares > 0]
        stocks = {s.id: s for s in await self.store.list_stocks([h.stock_id for h in holdings])}

        views = []
        for holding in holdings:
            stock = stocks.get(holding.stock_id)
            views.append(HoldingView(
                id=holding.id,
                portfolio_id=holding.portfolio_id,
                stock_id=holding.stock_id,
                symbol=stock.symbol if stock else "",
                name=stock.name if stock else "",
                shares=holding.shares,
                average_cost=holding.average_cost,
                current_price=holding.current_price,
                market_price=stock.current_price if stock else None,
                price_change_24h=stock.price_change_24h if stock else None,
                last_updated=holding.last_updated,
            ))
        return views

    async def _load_holdings(self) -> List[HoldingView]:
        return await self._holding_views()

    async def _load_transactions(self, limit: Optional[int] = None) -> List[TransactionView]:
        portfolio = self._require_portfolio()
        limit = limit or self.settings.recent_transactions_limit
        entries = await self.store.list_transactions(portfolio.id, limit)
        symbols = {s.id: s.symbol for s in await self.store.list_stocks(sorted({t.stock_id for t in entries}))}
        return [
            TransactionView(
                id=t.id,
                portfolio_id=t.portfolio_id,
                stock_id=t.stock_id,
                symbol=symbols.get(t.stock_id, ""),
                type=t.type,
                shares=t.shares,
                price=t.price,
                amount=t.amount,
                fee=t.fee,
                currency=t.currency,
                transaction_date=t.transaction_date,
                status=t.status,
            )
            for t in entries
        ]

    async def _load_todays_change(self) -> TodaysChange:
        return analytics.calculate_todays_change(await self._holding_views())

    async def _load_next_dividend(self) -> Optional[NextDividend]:
        today = self._today()
        holdings = await self._holding_views()
        dividends = await self.store.list_dividends(
            [h.stock_id for h in holdings],
            analytics.VISIBLE_DIVIDEND_STATUSES,
            today,
        )
        return analytics.find_next_dividend(dividends, holdings, _symbols(holdings), today)

    async def _load_dividends(self) -> List[DividendView]:
        today = self._today()
        holdings = await self._holding_views()
        dividends = await self.store.list_dividends(
            [h.stock_id for h in holdings],
            analytics.VISIBLE_DIVIDEND_STATUSES,
            today,
        )
        return analytics.dividend_views(dividends, holdings, _symbols(holdings), today)

    async def _load_forecast(self) -> DividendForecast:
        today = self._today()
        holdings = await self._holding_views()
        month_start = today.replace(day=1)
        horizon = _last_day_of_forecast(month_start)
        dividends = await self.store.list_dividends(
            [h.stock_id for h in holdings],
            None,
            month_start,
            horizon,
        )
        return analytics.forecast_dividends(dividends, holdings, _symbols(holdings), today)


def _is_last(others: Iterable[Transaction], tx: Transaction) -> bool:
    """True when ``tx`` sorts after every other trade of its stock"""
    if not tx.is_trade:
        return True
    key = ledger_order_key(tx)
    return all(ledger_order_key(other) < key for other in others)


def _symbols(holdings: Iterable[HoldingView]) -> Dict[int, str]:
    return {h.stock_id: h.symbol for h in holdings}


def _last_day_of_forecast(month_start: date) -> date:
    """Last day of the eleventh month after ``month_start``"""
    year = month_start.year + (month_start.month + 11) // 12
    month = (month_start.month + 11) % 12 + 1
    return date(year, month, 1) - timedelta(days=1)

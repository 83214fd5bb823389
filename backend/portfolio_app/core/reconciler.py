"""Cost-basis reconciliation between the transaction ledger and holdings.

All functions here are pure: they take the prior holding state and a ledger
entry and return the next holding state. ``None`` means "no holding"; a
holding with zero shares is never returned.

Buy:
    new_shares = shares + tx.shares
    new_average_cost = (shares * average_cost + tx.amount) / new_shares

Sell:
    new_shares = max(0, shares - tx.shares)
    average_cost is unchanged (no lot tracking, realized gains are not kept)

Dividends never touch the holding.
"""
from dataclasses import dataclass, replace
from datetime import date
from typing import Iterable, Optional, Protocol, Tuple

from .exceptions import IrreversibleTransactionError


class LedgerEntry(Protocol):
    id: Optional[int]
    type: str
    shares: int
    price: float
    amount: float
    transaction_date: date


@dataclass(frozen=True)
class HoldingState:
    """Shares and cost basis of one (portfolio, stock) pair"""

    shares: int
    average_cost: float
    current_price: float = 0.0

    @property
    def total_cost(self) -> float:
        return self.shares * self.average_cost

    @classmethod
    def from_holding(cls, holding) -> Optional["HoldingState"]:
        if holding is None:
            return None
        return cls(
            shares=holding.shares,
            average_cost=holding.average_cost,
            current_price=holding.current_price,
        )


def ledger_order_key(tx: LedgerEntry) -> Tuple[date, int]:
    """Order in which entries are folded into a holding"""
    # Unsaved entries sort after everything recorded on the same day
    return tx.transaction_date, tx.id if tx.id is not None else 2**63


def apply_transaction(
    holding: Optional[HoldingState],
    tx: LedgerEntry,
) -> Optional[HoldingState]:
    """Holding state after ``tx`` is applied on top of ``holding``"""
    if tx.type == "buy":
        prior_shares = holding.shares if holding else 0
        prior_cost = holding.total_cost if holding else 0.0
        new_shares = prior_shares + tx.shares
        if new_shares <= 0:
            return None
        return HoldingState(
            shares=new_shares,
            average_cost=(prior_cost + tx.amount) / new_shares,
            current_price=tx.price,
        )

    if tx.type == "sell":
        if holding is None:
            return None
        new_shares = max(0, holding.shares - tx.shares)
        if new_shares == 0:
            return None
        return replace(holding, shares=new_shares, current_price=tx.price)

    return holding


def reverse_transaction(
    holding: Optional[HoldingState],
    tx: LedgerEntry,
) -> Optional[HoldingState]:
    """Holding state before ``tx`` was applied.

    Exact inverse of :func:`apply_transaction` when ``tx`` was the last entry
    applied to ``holding``. Raises IrreversibleTransactionError when there is
    no holding to reverse against, since the cost basis of a closed position
    is gone.
    """
    if tx.type not in ("buy", "sell"):
        return holding
    if holding is None:
        raise IrreversibleTransactionError(
            f"cannot reverse {tx.type} #{tx.id} without a holding"
        )

    if tx.type == "buy":
        new_shares = holding.shares - tx.shares
        if new_shares <= 0:
            return None
        remaining_cost = holding.total_cost - tx.amount
        return replace(
            holding,
            shares=new_shares,
            average_cost=remaining_cost / new_shares,
        )

    return replace(holding, shares=holding.shares + tx.shares)


def replay(transactions: Iterable[LedgerEntry]) -> Optional[HoldingState]:
    """Fold the whole ledger of one (portfolio, stock) pair from empty"""
    state: Optional[HoldingState] = None
    for tx in sorted(transactions, key=ledger_order_key):
        state = apply_transaction(state, tx)
    return state


def find_oversold(transactions: Iterable[LedgerEntry]) -> Optional[Tuple[LedgerEntry, int]]:
    """First sell that exceeds the shares held at its ledger position.

    Returns the sell and the shares that were available, or None when every
    sell is covered.
    """
    held = 0
    for tx in sorted(transactions, key=ledger_order_key):
        if tx.type == "buy":
            held += tx.shares
        elif tx.type == "sell":
            if tx.shares > held:
                return tx, held
            held -= tx.shares
    return None

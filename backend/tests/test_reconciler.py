"""Tests for cost-basis reconciliation."""

import random

import pytest

from conftest import days_ago, make_tx
from portfolio_app.core.exceptions import IrreversibleTransactionError
from portfolio_app.core.reconciler import (
    HoldingState,
    apply_transaction,
    find_oversold,
    ledger_order_key,
    replay,
    reverse_transaction,
)


class TestApplyTransaction:
    """Tests for folding one entry into a holding."""

    def test_first_buy_opens_holding(self):
        state = apply_transaction(None, make_tx(1, "buy", 10, 100.0))
        assert state == HoldingState(shares=10, average_cost=100.0, current_price=100.0)

    def test_buys_average_the_cost(self):
        state = apply_transaction(None, make_tx(1, "buy", 10, 100.0))
        state = apply_transaction(state, make_tx(2, "buy", 10, 120.0))
        assert state.shares == 20
        assert state.average_cost == pytest.approx(110.0)
        assert state.current_price == 120.0

    def test_sell_keeps_average_cost(self):
        state = HoldingState(shares=20, average_cost=110.0, current_price=120.0)
        state = apply_transaction(state, make_tx(3, "sell", 5, 130.0))
        assert state.shares == 15
        assert state.average_cost == pytest.approx(110.0)
        assert state.current_price == 130.0

    def test_selling_everything_drops_holding(self):
        state = HoldingState(shares=15, average_cost=110.0)
        assert apply_transaction(state, make_tx(4, "sell", 15, 130.0)) is None

    def test_oversell_clamps_to_no_holding(self):
        state = HoldingState(shares=5, average_cost=110.0)
        assert apply_transaction(state, make_tx(4, "sell", 8, 130.0)) is None

    def test_sell_without_holding_is_noop(self):
        assert apply_transaction(None, make_tx(1, "sell", 5, 100.0)) is None

    def test_dividend_leaves_holding_untouched(self):
        state = HoldingState(shares=10, average_cost=100.0, current_price=101.0)
        assert apply_transaction(state, make_tx(5, "dividend", 0, 12.5)) is state
        assert apply_transaction(None, make_tx(5, "dividend", 0, 12.5)) is None

    def test_full_lifecycle(self):
        ledger = [
            make_tx(1, "buy", 10, 100.0, days_ago(4)),
            make_tx(2, "buy", 10, 120.0, days_ago(3)),
            make_tx(3, "sell", 5, 150.0, days_ago(2)),
        ]
        state = None
        for tx in ledger:
            state = apply_transaction(state, tx)
        assert state.shares == 15
        assert state.average_cost == pytest.approx(110.0)

        state = apply_transaction(state, make_tx(4, "sell", 15, 90.0, days_ago(1)))
        assert state is None


class TestReverseTransaction:
    """Tests for retracting the last applied entry."""

    @pytest.mark.parametrize("prior,tx", [
        (None, make_tx(9, "buy", 10, 100.0)),
        (HoldingState(20, 110.0, 120.0), make_tx(9, "buy", 7, 95.0)),
        (HoldingState(20, 110.0, 120.0), make_tx(9, "sell", 5, 130.0)),
        (HoldingState(3, 42.0, 40.0), make_tx(9, "dividend", 0, 1.2)),
    ])
    def test_reverse_undoes_apply(self, prior, tx):
        applied = apply_transaction(prior, tx)
        restored = reverse_transaction(applied, tx)

        if prior is None:
            assert restored is None
        else:
            assert restored.shares == prior.shares
            assert restored.average_cost == pytest.approx(prior.average_cost)

    def test_reversing_only_buy_drops_holding(self):
        state = HoldingState(shares=10, average_cost=100.0)
        assert reverse_transaction(state, make_tx(1, "buy", 10, 100.0)) is None

    def test_reversing_sell_restores_shares(self):
        state = HoldingState(shares=15, average_cost=110.0)
        restored = reverse_transaction(state, make_tx(3, "sell", 5, 150.0))
        assert restored.shares == 20
        assert restored.average_cost == pytest.approx(110.0)

    def test_reversing_without_holding_is_irreversible(self):
        with pytest.raises(IrreversibleTransactionError):
            reverse_transaction(None, make_tx(4, "sell", 15, 90.0))

    def test_dividend_reversal_without_holding_is_noop(self):
        assert reverse_transaction(None, make_tx(5, "dividend", 0, 2.0)) is None


class TestReplay:
    """Tests for rebuilding a holding from its ledger."""

    def test_empty_ledger(self):
        assert replay([]) is None

    def test_replay_sorts_by_date_then_id(self):
        ledger = [
            make_tx(3, "sell", 5, 150.0, days_ago(1)),
            make_tx(2, "buy", 10, 120.0, days_ago(2)),
            make_tx(1, "buy", 10, 100.0, days_ago(2)),
        ]
        state = replay(ledger)
        assert state.shares == 15
        assert state.average_cost == pytest.approx(110.0)
        assert state.current_price == 150.0

    def test_unsaved_entry_sorts_last_on_its_day(self):
        saved = make_tx(7, "buy", 1, 1.0, days_ago(1))
        unsaved = make_tx(None, "buy", 1, 1.0, days_ago(1))
        assert ledger_order_key(saved) < ledger_order_key(unsaved)
        assert ledger_order_key(unsaved) < ledger_order_key(make_tx(1, "buy", 1, 1.0))

    def test_incremental_matches_replay(self, seed):
        rng = random.Random(seed)
        ledger = []
        state = None
        for tx_id in range(1, 200):
            held = state.shares if state else 0
            if held and rng.random() < 0.35:
                tx = make_tx(tx_id, "sell", rng.randint(1, held), rng.uniform(50, 150), days_ago(200 - tx_id))
            elif rng.random() < 0.1:
                tx = make_tx(tx_id, "dividend", 0, rng.uniform(1, 5), days_ago(200 - tx_id))
            else:
                tx = make_tx(tx_id, "buy", rng.randint(1, 50), rng.uniform(50, 150), days_ago(200 - tx_id))
            ledger.append(tx)
            state = apply_transaction(state, tx)

            expected = replay(ledger)
            if expected is None:
                assert state is None
            else:
                assert state.shares == expected.shares
                assert state.average_cost == pytest.approx(expected.average_cost)


class TestFindOversold:
    """Tests for detecting sells the ledger cannot cover."""

    def test_covered_ledger(self):
        ledger = [
            make_tx(1, "buy", 10, 100.0, days_ago(3)),
            make_tx(2, "sell", 10, 110.0, days_ago(2)),
        ]
        assert find_oversold(ledger) is None

    def test_sell_before_buy_is_oversold(self):
        sell = make_tx(2, "sell", 5, 110.0, days_ago(3))
        ledger = [make_tx(1, "buy", 10, 100.0, days_ago(2)), sell]
        assert find_oversold(ledger) == (sell, 0)

    def test_reports_available_shares(self):
        sell = make_tx(3, "sell", 8, 110.0, days_ago(1))
        ledger = [
            make_tx(1, "buy", 10, 100.0, days_ago(3)),
            make_tx(2, "sell", 4, 110.0, days_ago(2)),
            sell,
        ]
        assert find_oversold(ledger) == (sell, 6)

    def test_dividends_are_ignored(self):
        ledger = [make_tx(1, "dividend", 0, 3.0), make_tx(2, "dividend", 0, 4.0)]
        assert find_oversold(ledger) is None

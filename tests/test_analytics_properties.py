"""Property-based tests for performance analytics module.

Tests the analytics correctness properties using Hypothesis.
"""

from __future__ import annotations

import csv
import os
import tempfile
from decimal import Decimal
from typing import Dict, List

from hypothesis import given, settings, strategies as st

from stockledger.trading.analytics import PortfolioAnalytics
from stockledger.trading.models import Position, Trade, TradeDirection


# Strategies for generating valid test data
positive_quantity_strategy = st.integers(min_value=1, max_value=500)

positive_price_strategy = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("5000"),
    places=2,
    allow_nan=False,
    allow_infinity=False
)

symbol_strategy = st.sampled_from(["AAPL", "MSFT", "GOOGL", "AMZN", "TSLA"])


@st.composite
def ledger_strategy(draw, max_size=30):
    """Generate a ledger in which sells never exceed holdings."""
    held: Dict[str, int] = {}
    ledger: List[Trade] = []
    for _ in range(draw(st.integers(min_value=0, max_value=max_size))):
        symbol = draw(symbol_strategy)
        price = draw(positive_price_strategy)
        if held.get(symbol, 0) > 0 and draw(st.booleans()):
            quantity = draw(st.integers(min_value=1, max_value=held[symbol]))
            direction = TradeDirection.SELL
            held[symbol] -= quantity
        else:
            quantity = draw(positive_quantity_strategy)
            direction = TradeDirection.BUY
            held[symbol] = held.get(symbol, 0) + quantity
        ledger.append(Trade(symbol, direction, quantity, price, seq=len(ledger)))
    return ledger


def sample_ledger() -> List[Trade]:
    return [
        Trade("AAPL", TradeDirection.BUY, 10, Decimal("100"), seq=0),
        Trade("AAPL", TradeDirection.BUY, 10, Decimal("200"), seq=1),
        Trade("AAPL", TradeDirection.SELL, 5, Decimal("180"), seq=2),
        Trade("AAPL", TradeDirection.SELL, 15, Decimal("120"), seq=3),
    ]


@given(ledger=ledger_strategy())
@settings(max_examples=100, deadline=None)
def test_realized_pnl_calculation(ledger: List[Trade]):
    """
    For any ledger, realized PnL equals the sum of
    (sell price - average cost) × sell quantity over all sells, with average
    cost tracked from the buys that came before each sell.
    """
    analytics = PortfolioAnalytics()

    cost_basis: Dict[str, tuple] = {}
    expected_pnl = Decimal("0")
    for trade in ledger:
        qty, cost = cost_basis.get(trade.symbol, (0, Decimal("0")))
        if trade.is_buy:
            cost_basis[trade.symbol] = (qty + trade.quantity, cost + trade.total_value)
        else:
            avg_cost = cost / qty
            expected_pnl += (trade.price - avg_cost) * trade.quantity
            remaining = qty - trade.quantity
            cost_basis[trade.symbol] = (remaining, avg_cost * remaining)

    calculated_pnl = analytics.calculate_realized_pnl(ledger)

    # Average cost is kept at fixed precision, so allow for rounding
    assert abs(calculated_pnl - expected_pnl) < Decimal("0.001"), \
        f"Calculated PnL {calculated_pnl} should equal expected PnL {expected_pnl}"


@given(ledger=ledger_strategy())
@settings(max_examples=100, deadline=None)
def test_win_rate_calculation(ledger: List[Trade]):
    """
    For any ledger, win rate equals profitable sells / total sells × 100
    and total volume equals the sum of all trade values.
    """
    analytics = PortfolioAnalytics()

    metrics = analytics.calculate_metrics(ledger)
    pnls = analytics.per_trade_pnl(ledger)

    sells = [t for t in ledger if not t.is_buy]
    assert metrics.total_trades == len(sells) == len(pnls)
    assert metrics.profitable_trades == sum(1 for pnl in pnls if pnl > 0)
    if sells:
        expected = Decimal(metrics.profitable_trades) / Decimal(len(sells)) * Decimal("100")
        assert metrics.win_rate == expected
    else:
        assert metrics.win_rate == Decimal("0")
    assert metrics.total_volume == sum((t.total_value for t in ledger), Decimal("0"))


def test_metrics_for_known_ledger():
    metrics = PortfolioAnalytics().calculate_metrics(sample_ledger())

    assert PortfolioAnalytics().per_trade_pnl(sample_ledger()) == [Decimal("150"), Decimal("-450")]
    assert metrics.total_trades == 2
    assert metrics.profitable_trades == 1
    assert metrics.win_rate == Decimal("50")
    assert metrics.realized_pnl == Decimal("-300")
    assert metrics.total_volume == Decimal("5700")


def test_summary_values_positions_at_current_price():
    analytics = PortfolioAnalytics()
    positions = [Position("AAPL", 10, Decimal("100"))]

    summary = analytics.summarize(Decimal("1000"), positions, {"AAPL": Decimal("120")})

    assert summary.portfolio_value == Decimal("1200")
    assert summary.unrealized_pnl == Decimal("200")
    assert summary.total_assets == Decimal("2200")
    assert summary.positions[0].unrealized_pnl_pct == Decimal("20")


def test_position_without_price_is_valued_at_cost():
    analytics = PortfolioAnalytics()
    positions = [Position("AAPL", 10, Decimal("100")), Position("MSFT", 2, Decimal("300"))]

    summary = analytics.summarize(Decimal("0"), positions, {"AAPL": Decimal("90")})

    msft = summary.positions[1]
    assert msft.current_price is None
    assert msft.market_value == Decimal("600")
    assert msft.unrealized_pnl == Decimal("0")
    assert summary.portfolio_value == Decimal("1500")
    assert summary.unrealized_pnl == Decimal("-100")


def test_empty_portfolio_summary():
    summary = PortfolioAnalytics().summarize(Decimal("500"), [], {})

    assert summary.portfolio_value == Decimal("0")
    assert summary.total_assets == Decimal("500")
    assert summary.positions == []


@given(ledger=ledger_strategy(max_size=15))
@settings(max_examples=50, deadline=None)
def test_csv_export_completeness(ledger: List[Trade]):
    """
    For any ledger, the exported CSV contains exactly one row per trade, in
    ledger order, plus a header row.
    """
    analytics = PortfolioAnalytics()

    with tempfile.NamedTemporaryFile(mode='w', suffix='.csv', delete=False) as f:
        temp_path = f.name

    try:
        analytics.export_to_csv(ledger, temp_path)

        with open(temp_path, 'r', newline='', encoding='utf-8') as csvfile:
            rows = list(csv.DictReader(csvfile))

        assert len(rows) == len(ledger)
        for row, trade in zip(rows, ledger):
            assert row["id"] == trade.id
            assert row["seq"] == str(trade.seq)
            assert row["direction"] == trade.direction.value
            assert Decimal(row["total_value"]) == trade.total_value
            assert row["timestamp"]
    finally:
        if os.path.exists(temp_path):
            os.remove(temp_path)

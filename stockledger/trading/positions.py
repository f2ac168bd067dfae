"""Position calculation by ledger replay.

Uses the weighted average cost method: buys update a quantity-weighted
average purchase price, sells reduce quantity and leave the average alone.

All arithmetic is Decimal. Prices and average prices are quantized to
``PRICE_QUANTUM`` (8 places, ROUND_HALF_EVEN) after every division; cash
deltas are exact ``quantity * price`` products, so cash conservation holds
without drift.
"""

from decimal import ROUND_HALF_EVEN, Decimal
from typing import Dict, Iterable, Mapping, Optional

from stockledger.errors import LedgerReplayError

from .models import Position, Trade, TradeDirection

PRICE_QUANTUM = Decimal("0.00000001")


def quantize_price(value: Decimal) -> Decimal:
    """Round a price to the ledger's fixed precision."""
    return value.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_EVEN)


def apply_trade(positions: Mapping[str, Position], trade: Trade) -> Dict[str, Position]:
    """Apply one trade to a position map.

    Args:
        positions: Current positions keyed by symbol (left untouched)
        trade: Trade to apply

    Returns:
        New position map with the trade applied

    Raises:
        LedgerReplayError: If a sell exceeds the held quantity
    """
    updated = dict(positions)
    symbol = trade.symbol
    existing = updated.get(symbol)

    if trade.direction is TradeDirection.BUY:
        if existing is None:
            updated[symbol] = Position(
                symbol=symbol,
                quantity=trade.quantity,
                average_price=trade.price,
            )
        else:
            total_quantity = existing.quantity + trade.quantity
            total_cost = existing.total_cost + trade.total_value
            updated[symbol] = Position(
                symbol=symbol,
                quantity=total_quantity,
                average_price=quantize_price(total_cost / total_quantity),
            )
        return updated

    held = existing.quantity if existing else 0
    if trade.quantity > held:
        raise LedgerReplayError(
            f"Trade {trade.id} sells {trade.quantity} {symbol} but only {held} held"
        )

    remaining = held - trade.quantity
    if remaining == 0:
        del updated[symbol]
    else:
        updated[symbol] = Position(
            symbol=symbol,
            quantity=remaining,
            average_price=existing.average_price,
        )
    return updated


def compute_positions(ledger: Iterable[Trade]) -> Dict[str, Position]:
    """Derive positions by replaying a ledger from empty, in ledger order."""
    positions: Dict[str, Position] = {}
    for trade in ledger:
        positions = apply_trade(positions, trade)
    return positions


def apply_cash(cash_balance: Decimal, trade: Trade) -> Decimal:
    """Cash balance after a trade settles."""
    if trade.direction is TradeDirection.BUY:
        return cash_balance - trade.total_value
    return cash_balance + trade.total_value


def replay_cash(initial_cash: Decimal, ledger: Iterable[Trade]) -> Decimal:
    """Cash balance implied by a ledger replayed from ``initial_cash``."""
    cash = initial_cash
    for trade in ledger:
        cash = apply_cash(cash, trade)
    return cash


def realized_pnl(position: Optional[Position], trade: Trade) -> Decimal:
    """Realized profit/loss of a sell against the position it closes from.

    Returns zero for buys and for sells without a position.
    """
    if trade.direction is not TradeDirection.SELL or position is None:
        return Decimal("0")
    return (trade.price - position.average_price) * trade.quantity

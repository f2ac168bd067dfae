"""Performance analytics and portfolio valuation."""

import csv
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence

from .models import Position, Trade
from .positions import apply_trade, realized_pnl


@dataclass
class PerformanceMetrics:
    """Performance metrics for trading activity.

    Attributes:
        total_trades: Number of sell trades (each closes some shares)
        profitable_trades: Number of sells with positive realized PnL
        win_rate: Percentage of profitable sells (0-100)
        realized_pnl: Total realized profit/loss
        total_volume: Sum of all trade values
    """
    total_trades: int
    profitable_trades: int
    win_rate: Decimal
    realized_pnl: Decimal
    total_volume: Decimal


@dataclass
class PositionValuation:
    """A position marked to a current price.

    Attributes:
        position: The held position
        current_price: Price used for valuation (None if unavailable)
        market_value: quantity × current price, or cost basis without a price
        unrealized_pnl: market value minus cost basis
        unrealized_pnl_pct: unrealized PnL as a percentage of cost basis
    """
    position: Position
    current_price: Optional[Decimal]
    market_value: Decimal
    unrealized_pnl: Decimal
    unrealized_pnl_pct: Decimal


@dataclass
class PortfolioSummary:
    """Account-level totals shown on the portfolio page."""
    cash_balance: Decimal
    portfolio_value: Decimal
    unrealized_pnl: Decimal
    total_assets: Decimal
    positions: List[PositionValuation]


class PortfolioAnalytics:
    """Derives metrics from a ledger and values positions against prices.

    Realized PnL uses the same average-cost replay as the position
    calculator, so it always agrees with the stored average prices.
    """

    def per_trade_pnl(self, ledger: Sequence[Trade]) -> List[Decimal]:
        """Realized PnL of every sell in the ledger, in ledger order."""
        positions: Dict[str, Position] = {}
        pnls: List[Decimal] = []
        for trade in ledger:
            if not trade.is_buy:
                pnls.append(realized_pnl(positions.get(trade.symbol), trade))
            positions = apply_trade(positions, trade)
        return pnls

    def calculate_realized_pnl(self, ledger: Sequence[Trade]) -> Decimal:
        return sum(self.per_trade_pnl(ledger), Decimal("0"))

    def calculate_metrics(self, ledger: Sequence[Trade]) -> PerformanceMetrics:
        """Calculate performance metrics from a ledger.

        Args:
            ledger: Trades in ledger order

        Returns:
            PerformanceMetrics with calculated values
        """
        sell_pnls = self.per_trade_pnl(ledger)
        total_trades = len(sell_pnls)
        profitable_trades = sum(1 for pnl in sell_pnls if pnl > Decimal("0"))

        if total_trades > 0:
            win_rate = (Decimal(profitable_trades) / Decimal(total_trades)) * Decimal("100")
        else:
            win_rate = Decimal("0")

        return PerformanceMetrics(
            total_trades=total_trades,
            profitable_trades=profitable_trades,
            win_rate=win_rate,
            realized_pnl=sum(sell_pnls, Decimal("0")),
            total_volume=sum((t.total_value for t in ledger), Decimal("0")),
        )

    def value_position(self, position: Position, current_price: Optional[Decimal]) -> PositionValuation:
        """Mark a position to market.

        Without a current price the position is valued at cost basis.
        """
        cost_basis = position.total_cost
        if current_price is None:
            market_value = cost_basis
        else:
            market_value = position.quantity * current_price
        pnl = market_value - cost_basis
        pct = (pnl / cost_basis * Decimal("100")) if cost_basis else Decimal("0")
        return PositionValuation(
            position=position,
            current_price=current_price,
            market_value=market_value,
            unrealized_pnl=pnl,
            unrealized_pnl_pct=pct,
        )

    def summarize(
        self,
        cash_balance: Decimal,
        positions: Sequence[Position],
        prices: Mapping[str, Decimal],
    ) -> PortfolioSummary:
        """Value all positions and total them with cash.

        Args:
            cash_balance: Available cash
            positions: Held positions
            prices: Current sell price per symbol

        Returns:
            PortfolioSummary with per-position valuations and totals
        """
        valuations = [self.value_position(p, prices.get(p.symbol)) for p in positions]
        portfolio_value = sum((v.market_value for v in valuations), Decimal("0"))
        return PortfolioSummary(
            cash_balance=cash_balance,
            portfolio_value=portfolio_value,
            unrealized_pnl=sum((v.unrealized_pnl for v in valuations), Decimal("0")),
            total_assets=cash_balance + portfolio_value,
            positions=valuations,
        )

    def export_to_csv(self, ledger: Sequence[Trade], filepath: str) -> None:
        """Export a ledger to a CSV file, one row per trade in ledger order."""
        fieldnames = ["seq", "id", "symbol", "direction", "quantity", "price", "total_value", "timestamp"]

        with open(filepath, "w", newline="", encoding="utf-8") as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=fieldnames)
            writer.writeheader()

            for trade in ledger:
                writer.writerow({
                    "seq": trade.seq,
                    "id": trade.id,
                    "symbol": trade.symbol,
                    "direction": trade.direction.value,
                    "quantity": trade.quantity,
                    "price": str(trade.price),
                    "total_value": str(trade.total_value),
                    "timestamp": trade.timestamp.isoformat(),
                })

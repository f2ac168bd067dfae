# Trading module
"""Ledger components: models, position replay, validation, execution and analytics."""

from .models import Account, AccountSnapshot, Position, Trade, TradeDirection
from .positions import (
    PRICE_QUANTUM,
    apply_cash,
    apply_trade,
    compute_positions,
    quantize_price,
    realized_pnl,
    replay_cash,
)
from .validator import RejectionReason, TradeValidator, ValidationResult
from .ledger_store import LEDGER_FORMAT_VERSION, LedgerSerializer, LedgerStore, ledger_key, positions_key
from .executor import LedgerAuthority, TradeExecutor, TradeOutcome, TradeStatus
from .analytics import (
    PerformanceMetrics,
    PortfolioAnalytics,
    PortfolioSummary,
    PositionValuation,
)

__all__ = [
    "Account",
    "AccountSnapshot",
    "Position",
    "Trade",
    "TradeDirection",
    "PRICE_QUANTUM",
    "apply_cash",
    "apply_trade",
    "compute_positions",
    "quantize_price",
    "realized_pnl",
    "replay_cash",
    "RejectionReason",
    "TradeValidator",
    "ValidationResult",
    "LEDGER_FORMAT_VERSION",
    "LedgerSerializer",
    "LedgerStore",
    "ledger_key",
    "positions_key",
    "LedgerAuthority",
    "TradeExecutor",
    "TradeOutcome",
    "TradeStatus",
    "PerformanceMetrics",
    "PortfolioAnalytics",
    "PortfolioSummary",
    "PositionValuation",
]

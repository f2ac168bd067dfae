"""Data models for the trade ledger."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple
import uuid


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TradeDirection(Enum):
    """Side of a trade."""
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class Trade:
    """An executed trade. Immutable once appended to a ledger.

    Attributes:
        symbol: Instrument symbol (e.g., "AAPL")
        direction: BUY or SELL
        quantity: Number of shares traded
        price: Execution price per share
        timestamp: Time of execution
        id: Unique trade identifier
        seq: Position in the owning ledger, assigned on append
    """
    symbol: str
    direction: TradeDirection
    quantity: int
    price: Decimal
    timestamp: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    seq: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.symbol:
            raise ValueError("Trade symbol must be non-empty")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValueError(f"Trade quantity must be a positive integer, got {self.quantity!r}")
        if not isinstance(self.price, Decimal) or not self.price.is_finite() or self.price <= 0:
            raise ValueError(f"Trade price must be a positive Decimal, got {self.price!r}")

    @property
    def is_buy(self) -> bool:
        return self.direction is TradeDirection.BUY

    @property
    def total_value(self) -> Decimal:
        """Cash moved by this trade (quantity × price)."""
        return self.quantity * self.price

    def with_seq(self, seq: int) -> "Trade":
        return replace(self, seq=seq)


@dataclass(frozen=True)
class Position:
    """Current holding in one symbol.

    Attributes:
        symbol: Instrument symbol
        quantity: Shares held, always > 0 while the position exists
        average_price: Weighted average purchase price per share
    """
    symbol: str
    quantity: int
    average_price: Decimal

    @property
    def total_cost(self) -> Decimal:
        """Cost basis for this position."""
        return self.quantity * self.average_price


@dataclass(frozen=True)
class AccountSnapshot:
    """Consistent read-only copy of an account's state."""
    account_id: str
    initial_cash: Decimal
    cash_balance: Decimal
    positions: Tuple[Tuple[str, Position], ...]
    ledger: Tuple[Trade, ...]

    def positions_dict(self) -> Dict[str, Position]:
        return dict(self.positions)


@dataclass
class Account:
    """A single user's cash, ledger and derived positions.

    The position map and cash balance are always what a replay of ``ledger``
    from ``initial_cash`` produces; they are kept here as a cache.
    """
    account_id: str
    initial_cash: Decimal
    cash_balance: Optional[Decimal] = None
    positions: Dict[str, Position] = field(default_factory=dict)
    ledger: List[Trade] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.cash_balance is None:
            self.cash_balance = self.initial_cash
        if self.initial_cash < 0:
            raise ValueError("Initial cash must not be negative")

    def snapshot(self) -> AccountSnapshot:
        return AccountSnapshot(
            account_id=self.account_id,
            initial_cash=self.initial_cash,
            cash_balance=self.cash_balance,
            positions=tuple(sorted(self.positions.items())),
            ledger=tuple(self.ledger),
        )

    def restore(self, snapshot: AccountSnapshot) -> None:
        """Roll this account back to a previously taken snapshot."""
        self.initial_cash = snapshot.initial_cash
        self.cash_balance = snapshot.cash_balance
        self.positions = snapshot.positions_dict()
        self.ledger = list(snapshot.ledger)

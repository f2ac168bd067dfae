"""Pre-flight trade validation.

This module provides:
- RejectionReason enum shared by validation and execution outcomes
- ValidationResult dataclass describing a validation decision
- TradeValidator, a pure check of a proposed trade against account state
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional

from stockledger.data.catalog import IPriceSource

from .models import AccountSnapshot, TradeDirection
from .positions import quantize_price


class RejectionReason(Enum):
    """Reason a trade did not happen."""
    INVALID_INPUT = "invalid_input"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INSUFFICIENT_SHARES = "insufficient_shares"
    NO_POSITION = "no_position"
    TRADE_IN_FLIGHT = "trade_in_flight"
    EXTERNAL_FAILURE = "external_failure"
    PERSISTENCE_FAILURE = "persistence_failure"


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating a proposed trade.

    Attributes:
        reason: None when the trade is acceptable, otherwise why it was rejected
        message: Human-readable explanation
        detail: Quantitative detail (shortfall, held quantity, ...)
    """
    reason: Optional[RejectionReason] = None
    message: str = ""
    detail: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.reason is None

    @classmethod
    def accept(cls) -> "ValidationResult":
        return cls()

    @classmethod
    def reject(cls, reason: RejectionReason, message: str, **detail: Any) -> "ValidationResult":
        return cls(reason=reason, message=message, detail=detail)


def normalize_price(value: Any) -> Optional[Decimal]:
    """Convert a caller-supplied price to a quantized Decimal.

    Floats are converted through ``str`` so 0.1 stays 0.1.

    Returns:
        The quantized price, or None if it is not a positive finite number
    """
    if isinstance(value, bool):
        return None
    try:
        price = value if isinstance(value, Decimal) else Decimal(str(value))
        if not price.is_finite():
            return None
        quantized = quantize_price(price)
    except (InvalidOperation, ValueError):
        return None
    if quantized <= 0:
        return None
    # Keep the caller's representation when it is already exact
    return price if quantized == price else quantized


def normalize_symbol(symbol: Any) -> str:
    if not isinstance(symbol, str):
        return ""
    return symbol.strip().upper()


class TradeValidator:
    """Checks a proposed trade for input validity, funds and holdings.

    Has no side effects; the same inputs always give the same result.
    """

    def __init__(self, price_source: Optional[IPriceSource] = None) -> None:
        """Initialize validator.

        Args:
            price_source: Optional catalog; when given, unlisted symbols are rejected
        """
        self._price_source = price_source

    def check_input(self, symbol: Any, quantity: Any, price: Any) -> ValidationResult:
        """Validate the shape of a trade request without touching account state."""
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            return ValidationResult.reject(
                RejectionReason.INVALID_INPUT,
                "Quantity must be a positive whole number of shares",
                quantity=quantity,
            )

        if normalize_price(price) is None:
            return ValidationResult.reject(
                RejectionReason.INVALID_INPUT,
                "Price must be greater than zero",
                price=price,
            )

        symbol = normalize_symbol(symbol)
        if not symbol:
            return ValidationResult.reject(RejectionReason.INVALID_INPUT, "Symbol is required")

        if self._price_source is not None and not self._price_source.is_listed(symbol):
            return ValidationResult.reject(
                RejectionReason.INVALID_INPUT,
                f"Unknown symbol {symbol}",
                symbol=symbol,
            )

        return ValidationResult.accept()

    def validate(
        self,
        account: AccountSnapshot,
        direction: TradeDirection,
        symbol: Any,
        quantity: Any,
        price: Any,
    ) -> ValidationResult:
        """Validate a proposed trade against an account snapshot.

        Args:
            account: Snapshot of the account the trade would apply to
            direction: BUY or SELL
            symbol: Ticker symbol
            quantity: Whole number of shares
            price: Price per share

        Returns:
            ValidationResult; ``ok`` if the trade may be executed
        """
        result = self.check_input(symbol, quantity, price)
        if not result.ok:
            return result

        symbol = normalize_symbol(symbol)
        price = normalize_price(price)

        if direction is TradeDirection.BUY:
            cost = quantity * price
            if cost > account.cash_balance:
                shortfall = cost - account.cash_balance
                return ValidationResult.reject(
                    RejectionReason.INSUFFICIENT_FUNDS,
                    f"Insufficient funds: need {cost}, have {account.cash_balance}",
                    cost=cost,
                    cash_balance=account.cash_balance,
                    shortfall=shortfall,
                )
            return ValidationResult.accept()

        position = account.positions_dict().get(symbol)
        if position is None:
            return ValidationResult.reject(
                RejectionReason.NO_POSITION,
                f"You do not own any shares of {symbol}",
                held=0,
            )

        if position.quantity < quantity:
            return ValidationResult.reject(
                RejectionReason.INSUFFICIENT_SHARES,
                f"You only own {position.quantity} shares of {symbol}",
                held=position.quantity,
                requested=quantity,
            )

        return ValidationResult.accept()

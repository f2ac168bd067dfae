"""Trade execution for a single account.

This module provides:
- TradeStatus enum and TradeOutcome dataclass for trade results
- LedgerAuthority, the explicit choice of where the ledger's truth lives
- TradeExecutor, the only component that mutates an Account

Every trade goes through the same sequence: in-flight guard, input
validation, (external authority) refresh from the trade log, validation
against current state, (external authority) external write, then cash,
ledger and positions are updated together under the state lock.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from stockledger.data.catalog import IPriceSource
from stockledger.errors import ExternalLedgerError, LedgerReplayError, PersistenceError

from .ledger_store import LedgerStore
from .models import Account, AccountSnapshot, Position, Trade, TradeDirection
from .positions import apply_cash, apply_trade, compute_positions, realized_pnl, replay_cash
from .validator import RejectionReason, TradeValidator, ValidationResult, normalize_price, normalize_symbol

if TYPE_CHECKING:
    from stockledger.chain.adapter import ExternalTradeSource
    from stockledger.chain.trade_log import Confirmation

logger = logging.getLogger(__name__)


class TradeStatus(Enum):
    """Status of a trade after submission."""
    EXECUTED = "executed"
    REJECTED = "rejected"
    FAILED = "failed"


class LedgerAuthority(Enum):
    """Where the authoritative ledger lives for a deployment."""
    LOCAL = "local"
    EXTERNAL = "external"


@dataclass
class TradeOutcome:
    """Result of a trade submission.

    Attributes:
        status: EXECUTED, REJECTED (validation) or FAILED (external/persistence)
        message: Human-readable message describing the result
        cash_balance: Cash balance after the attempt
        position: Resulting position in the traded symbol, None if none is held
        trade: The ledger record if the trade executed
        rejection_reason: Why the trade did not happen
        detail: Quantitative detail for rejections (shortfall, held shares, ...)
        realized_pnl: Realized profit/loss for an executed sell
        retryable: True if the same request may succeed when retried
        confirmation: External receipt when the trade was recorded externally
    """
    status: TradeStatus
    message: str = ""
    cash_balance: Decimal = Decimal("0")
    position: Optional[Position] = None
    trade: Optional[Trade] = None
    rejection_reason: Optional[RejectionReason] = None
    detail: Dict[str, Any] = field(default_factory=dict)
    realized_pnl: Optional[Decimal] = None
    retryable: bool = False
    confirmation: Optional["Confirmation"] = None

    @property
    def success(self) -> bool:
        return self.status is TradeStatus.EXECUTED


def coerce_direction(value: Union[TradeDirection, str]) -> Optional[TradeDirection]:
    if isinstance(value, TradeDirection):
        return value
    if isinstance(value, str):
        try:
            return TradeDirection(value.strip().upper())
        except ValueError:
            return None
    return None


class TradeExecutor:
    """Owns one account and applies trades to it.

    Reads return copies taken under the state lock. Only one trade may be in
    flight at a time; a concurrent submission is rejected with
    TRADE_IN_FLIGHT rather than validated against state that is about to
    change.
    """

    def __init__(
        self,
        account: Account,
        store: Optional[LedgerStore] = None,
        price_source: Optional[IPriceSource] = None,
        external: Optional["ExternalTradeSource"] = None,
    ) -> None:
        """Initialize executor.

        Args:
            account: Account to own
            store: Durable ledger store; None keeps state in memory only
            price_source: Catalog used for market prices and symbol checks
            external: External trade source; when given it is the ledger authority
        """
        self._account = account
        self._store = store
        self._price_source = price_source
        self._external = external
        self._validator = TradeValidator(price_source)
        self._state_lock = threading.RLock()
        self._trade_lock = threading.Lock()
        self._stale = False
        self.divergence_count = 0

    @classmethod
    def open(
        cls,
        account_id: str,
        initial_cash: Decimal,
        store: Optional[LedgerStore] = None,
        price_source: Optional[IPriceSource] = None,
        external: Optional["ExternalTradeSource"] = None,
    ) -> "TradeExecutor":
        """Load an account from the store (or start a new one) and reconcile it.

        With an external source the account is refreshed from the trade log;
        if the log is unreachable the stored cache is used and marked stale.

        Raises:
            LedgerFormatError: If a stored ledger exists but cannot be read
        """
        account = None
        positions_cached = False
        if store is not None:
            stored = store.load(account_id)
            if stored is not None:
                account = stored.account
                positions_cached = stored.positions_cached
                logger.info(f"Loaded ledger for '{account_id}' with {len(account.ledger)} trades")
        if account is None:
            account = Account(account_id=account_id, initial_cash=initial_cash)
        elif not positions_cached:
            account.positions = compute_positions(account.ledger)

        executor = cls(account, store=store, price_source=price_source, external=external)
        if external is None:
            executor.verify()
        else:
            try:
                executor.refresh()
            except ExternalLedgerError as e:
                logger.warning(f"Could not refresh '{account_id}' from trade log, using cached state: {e}")
                executor._stale = True
        return executor

    @property
    def account_id(self) -> str:
        return self._account.account_id

    @property
    def authority(self) -> LedgerAuthority:
        return LedgerAuthority.LOCAL if self._external is None else LedgerAuthority.EXTERNAL

    @property
    def price_source(self) -> Optional[IPriceSource]:
        return self._price_source

    @property
    def is_stale(self) -> bool:
        """True if the cached view may lag the external log."""
        return self._stale

    def close(self) -> None:
        """Release the external trade log connection, if any."""
        if self._external is not None:
            self._external.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> AccountSnapshot:
        with self._state_lock:
            return self._account.snapshot()

    def get_balance(self) -> Decimal:
        with self._state_lock:
            return self._account.cash_balance

    def get_position(self, symbol: str) -> Optional[Position]:
        with self._state_lock:
            return self._account.positions.get(normalize_symbol(symbol))

    def get_all_positions(self) -> List[Position]:
        """All held positions, ordered by symbol."""
        with self._state_lock:
            return [self._account.positions[s] for s in sorted(self._account.positions)]

    def get_transaction_history(self, limit: Optional[int] = None) -> List[Trade]:
        """Executed trades, newest first (reverse ledger order).

        Args:
            limit: Maximum number of trades to return; None for all
        """
        with self._state_lock:
            history = list(reversed(self._account.ledger))
        if limit is not None:
            history = history[:max(limit, 0)]
        return history

    # ------------------------------------------------------------------
    # Trading
    # ------------------------------------------------------------------

    def submit_trade(
        self,
        direction: Union[TradeDirection, str],
        symbol: str,
        quantity: int,
        price: Any = None,
    ) -> TradeOutcome:
        """Submit a trade. The only mutating entry point.

        Args:
            direction: BUY or SELL (enum or case-insensitive string)
            symbol: Ticker symbol
            quantity: Whole number of shares
            price: Price per share; None uses the catalog's buy/sell price

        Returns:
            TradeOutcome describing what happened
        """
        resolved = coerce_direction(direction)
        if resolved is None:
            return self._rejected(ValidationResult.reject(
                RejectionReason.INVALID_INPUT,
                f"Unknown trade direction {direction!r}",
            ), symbol)

        if not self._trade_lock.acquire(blocking=False):
            return self._rejected(ValidationResult.reject(
                RejectionReason.TRADE_IN_FLIGHT,
                "Another trade is still being processed for this account",
            ), symbol)
        try:
            return self._submit(resolved, symbol, quantity, price)
        finally:
            self._trade_lock.release()

    execute = submit_trade

    def _submit(self, direction: TradeDirection, symbol: Any, quantity: Any, price: Any) -> TradeOutcome:
        if price is None:
            price = self._market_price(direction, symbol)
            if price is None:
                return self._rejected(ValidationResult.reject(
                    RejectionReason.INVALID_INPUT,
                    f"No price available for {symbol}",
                ), symbol)

        check = self._validator.check_input(symbol, quantity, price)
        if not check.ok:
            return self._rejected(check, symbol)

        symbol = normalize_symbol(symbol)
        price = normalize_price(price)

        if self._external is not None:
            # Validate against the authoritative log, not the local cache
            try:
                self._refresh_external()
            except ExternalLedgerError as e:
                return self._external_failure(e, symbol)

        check = self._validator.validate(self.snapshot(), direction, symbol, quantity, price)
        if not check.ok:
            return self._rejected(check, symbol)

        if self._external is not None:
            return self._execute_external(direction, symbol, quantity, price)
        return self._execute_local(direction, symbol, quantity, price)

    def _market_price(self, direction: TradeDirection, symbol: Any) -> Optional[Decimal]:
        if self._price_source is None or not isinstance(symbol, str):
            return None
        quote = self._price_source.get_quote(normalize_symbol(symbol))
        if quote is None:
            return None
        return quote.buy_price if direction is TradeDirection.BUY else quote.sell_price

    def _execute_local(self, direction: TradeDirection, symbol: str, quantity: int, price: Decimal) -> TradeOutcome:
        trade = Trade(symbol=symbol, direction=direction, quantity=quantity, price=price)
        with self._state_lock:
            before = self._account.snapshot()
            pnl = realized_pnl(self._account.positions.get(symbol), trade)
            trade = self._apply(trade)
            if self._store is not None:
                try:
                    self._store.save(self._account)
                except PersistenceError as e:
                    self._account.restore(before)
                    logger.error(f"Rolled back {direction.value} {quantity} {symbol}: {e}")
                    return self._failed(
                        RejectionReason.PERSISTENCE_FAILURE,
                        f"Trade could not be saved and was not applied: {e}",
                        symbol,
                        retryable=True,
                    )
            outcome = self._executed(trade, pnl)
        logger.info(f"Executed {direction.value} {quantity} {symbol} @ {price}")
        return outcome

    def _execute_external(self, direction: TradeDirection, symbol: str, quantity: int, price: Decimal) -> TradeOutcome:
        with self._state_lock:
            position_before = self._account.positions.get(symbol)
            seen = len(self._account.ledger)

        try:
            confirmation = self._external.record_trade(direction, symbol, price, quantity)
        except ExternalLedgerError as e:
            return self._external_failure(e, symbol)

        pending = Trade(symbol=symbol, direction=direction, quantity=quantity, price=price, id=confirmation.tx_hash)
        pnl = realized_pnl(position_before, pending)

        trade = None
        try:
            self._refresh_external()
            trade = self._find_confirmed(pending, seen)
        except ExternalLedgerError as e:
            logger.warning(f"Trade {confirmation.tx_hash} confirmed but refresh failed: {e}")

        if trade is None:
            # Confirmed but not visible yet; the next refresh replaces this
            with self._state_lock:
                trade = self._apply(pending)
                self._stale = True
            self._save_cache()

        with self._state_lock:
            outcome = self._executed(trade, pnl)
        outcome.confirmation = confirmation
        logger.info(f"Executed {direction.value} {quantity} {symbol} @ {price} ({confirmation.tx_hash})")
        return outcome

    def _find_confirmed(self, pending: Trade, seen: int) -> Optional[Trade]:
        """Locate a confirmed trade in the refreshed ledger.

        Matches on the receipt hash first. Logs that return records without a
        hash are matched on content among the records added since ``seen``.
        """
        with self._state_lock:
            for trade in reversed(self._account.ledger):
                if trade.id == pending.id:
                    return trade
            for trade in self._account.ledger[seen:]:
                if (trade.symbol, trade.direction, trade.quantity, trade.price) == \
                        (pending.symbol, pending.direction, pending.quantity, pending.price):
                    return trade
        return None

    def _apply(self, trade: Trade) -> Trade:
        """Apply a validated trade to cash, ledger and positions together."""
        with self._state_lock:
            trade = trade.with_seq(len(self._account.ledger))
            positions = apply_trade(self._account.positions, trade)
            self._account.cash_balance = apply_cash(self._account.cash_balance, trade)
            self._account.ledger.append(trade)
            self._account.positions = positions
        return trade

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def refresh(self) -> None:
        """Rebuild the account from its authoritative source.

        Local authority reloads the ledger from the store and replays it;
        external authority fetches the trade log and replays it.

        Raises:
            ExternalLedgerError: If the external log cannot be read; the
                current view is left as it was
        """
        with self._trade_lock:
            if self._external is not None:
                self._refresh_external()
                return

            if self._store is not None:
                stored = self._store.load(self._account.account_id)
                if stored is not None:
                    with self._state_lock:
                        self._account = stored.account
                        if not stored.positions_cached:
                            self._account.positions = compute_positions(self._account.ledger)
            self.verify()

    def _refresh_external(self) -> None:
        trades = self._external.fetch_trades()
        try:
            positions = compute_positions(trades)
        except LedgerReplayError as e:
            logger.error(f"External history for '{self._account.account_id}' cannot be replayed: {e}")
            raise ExternalLedgerError(f"External trade history is inconsistent: {e}") from e

        with self._state_lock:
            cash = replay_cash(self._account.initial_cash, trades)
            if cash < 0:
                logger.warning(f"External history leaves '{self._account.account_id}' with negative cash {cash}")
            self._account.ledger = trades
            self._account.positions = positions
            self._account.cash_balance = cash
            self._stale = False
        self._save_cache()

    def verify(self) -> bool:
        """Check the cached positions and cash against a fresh ledger replay.

        On mismatch the cache is replaced by the replayed view.

        Returns:
            True if the cache matched
        """
        with self._state_lock:
            expected_positions = compute_positions(self._account.ledger)
            expected_cash = replay_cash(self._account.initial_cash, self._account.ledger)
            if expected_positions == self._account.positions and expected_cash == self._account.cash_balance:
                return True

            self.divergence_count += 1
            logger.warning(
                f"Replay divergence for '{self._account.account_id}': cached "
                f"{len(self._account.positions)} positions / cash {self._account.cash_balance}, "
                f"replay {len(expected_positions)} positions / cash {expected_cash}; using replay"
            )
            self._account.positions = expected_positions
            self._account.cash_balance = expected_cash
        self._save_cache()
        return False

    def _save_cache(self) -> None:
        if self._store is None:
            return
        with self._state_lock:
            try:
                self._store.save(self._account)
            except PersistenceError as e:
                logger.warning(f"Could not persist cache for '{self._account.account_id}': {e}")

    def reset(self, initial_cash: Decimal) -> None:
        """Start the account over with a new cash balance and empty ledger.

        Raises:
            ValueError: Under external authority, where history cannot be erased
            PersistenceError: If the reset could not be saved (state is kept)
        """
        if self._external is not None:
            raise ValueError("Cannot reset an account whose ledger is held externally")
        with self._trade_lock, self._state_lock:
            before = self._account.snapshot()
            self._account = Account(account_id=self._account.account_id, initial_cash=initial_cash)
            if self._store is not None:
                try:
                    self._store.save(self._account)
                except PersistenceError:
                    self._account.restore(before)
                    raise
        logger.info(f"Reset '{self.account_id}' with cash {initial_cash}")

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _executed(self, trade: Trade, pnl: Decimal) -> TradeOutcome:
        verb = "Bought" if trade.is_buy else "Sold"
        return TradeOutcome(
            status=TradeStatus.EXECUTED,
            message=f"{verb} {trade.quantity} {trade.symbol} at {trade.price}",
            cash_balance=self._account.cash_balance,
            position=self._account.positions.get(trade.symbol),
            trade=trade,
            realized_pnl=None if trade.is_buy else pnl,
        )

    def _rejected(self, result: ValidationResult, symbol: Any) -> TradeOutcome:
        logger.info(f"Trade rejected ({result.reason.value}): {result.message}")
        return TradeOutcome(
            status=TradeStatus.REJECTED,
            message=result.message,
            cash_balance=self.get_balance(),
            position=self.get_position(symbol) if isinstance(symbol, str) else None,
            rejection_reason=result.reason,
            detail=dict(result.detail),
            retryable=result.reason is RejectionReason.TRADE_IN_FLIGHT,
        )

    def _failed(self, reason: RejectionReason, message: str, symbol: str, retryable: bool, **detail: Any) -> TradeOutcome:
        return TradeOutcome(
            status=TradeStatus.FAILED,
            message=message,
            cash_balance=self.get_balance(),
            position=self.get_position(symbol),
            rejection_reason=reason,
            detail=detail,
            retryable=retryable,
        )

    def _external_failure(self, error: ExternalLedgerError, symbol: str) -> TradeOutcome:
        logger.warning(f"External trade log failure for {symbol}: {error}")
        message = "Trade log did not respond in time; the trade was not applied" if error.timed_out \
            else f"Trade log rejected the trade: {error}"
        return self._failed(
            RejectionReason.EXTERNAL_FAILURE,
            message,
            symbol,
            retryable=True,
            timed_out=error.timed_out,
            error=str(error),
        )

"""Adapter between the external trade log and the ledger's Trade records."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from stockledger.errors import ExternalLedgerError
from stockledger.trading.models import Trade, TradeDirection
from stockledger.trading.positions import quantize_price

from .trade_log import Confirmation, ITradeLog

logger = logging.getLogger(__name__)

WEI_PER_UNIT = Decimal(10) ** 18


def price_to_wei(price: Decimal) -> int:
    return int(price * WEI_PER_UNIT)


def wei_to_price(wei: Any) -> Decimal:
    return quantize_price(Decimal(int(str(wei))) / WEI_PER_UNIT)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, (int, float)) or (isinstance(value, str) and value.isdigit()):
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_is_buy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "buy")
    return bool(value)


class ExternalTradeSource:
    """Reads and writes trades on an external log for one account reference.

    Records are returned in log order; timestamps come from an untrusted
    source and may tie, so they are never used for ordering.
    """

    def __init__(self, trade_log: ITradeLog, account_ref: str) -> None:
        self._trade_log = trade_log
        self._account_ref = account_ref

    @property
    def account_ref(self) -> str:
        return self._account_ref

    def close(self) -> None:
        self._trade_log.close()

    def normalize(self, record: Dict[str, Any], index: int) -> Trade:
        """Convert one raw log record into a Trade.

        Args:
            record: Raw record from the trade log
            index: Position of the record in the log

        Raises:
            ExternalLedgerError: If the record cannot be interpreted
        """
        try:
            is_buy = _parse_is_buy(record.get("isBuy", record.get("is_buy")))
            tx_hash = record.get("txHash") or record.get("transactionHash")
            return Trade(
                id=str(tx_hash) if tx_hash else f"{self._account_ref}-{index}",
                seq=index,
                symbol=str(record["symbol"]).strip().upper(),
                direction=TradeDirection.BUY if is_buy else TradeDirection.SELL,
                quantity=int(str(record["quantity"])),
                price=wei_to_price(record["price"]),
                timestamp=_parse_timestamp(record["timestamp"]),
            )
        except (KeyError, TypeError, ValueError, OverflowError, OSError, InvalidOperation) as e:
            raise ExternalLedgerError(f"Malformed trade record #{index}: {e}") from e

    def fetch_trades(self) -> List[Trade]:
        """Fetch and normalize the account's full trade history.

        Raises:
            ExternalLedgerError: If the log is unreachable or a record is malformed
        """
        records = self._trade_log.list_trades(self._account_ref)
        trades = [self.normalize(record, index) for index, record in enumerate(records)]
        logger.debug(f"Fetched {len(trades)} trades for {self._account_ref}")
        return trades

    def record_trade(self, direction: TradeDirection, symbol: str, price: Decimal, quantity: int) -> Confirmation:
        """Record a trade on the external log.

        Raises:
            ExternalLedgerError: If the log rejects the write or times out
        """
        confirmation = self._trade_log.record_trade(
            self._account_ref,
            direction is TradeDirection.BUY,
            symbol,
            price_to_wei(price),
            quantity,
        )
        logger.info(f"Recorded {direction.value} {quantity} {symbol} @ {price} as {confirmation.tx_hash}")
        return confirmation

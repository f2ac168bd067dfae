"""Durable ledger store.

Each account is persisted as two keyed blobs:

- ``ledger_<account_id>``: initial cash, cash balance and the ordered trades.
  This is the source of truth.
- ``positions_<account_id>``: the cached position map, verified against a
  replay of the ledger whenever it is loaded.

Both blobs carry a ``version`` field (``LEDGER_FORMAT_VERSION``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from stockledger.errors import LedgerFormatError, PersistenceError
from stockledger.storage.storage import IStorageService

from .models import Account, Position, Trade, TradeDirection

logger = logging.getLogger(__name__)

LEDGER_FORMAT_VERSION = 1


def ledger_key(account_id: str) -> str:
    return f"ledger_{account_id}"


def positions_key(account_id: str) -> str:
    return f"positions_{account_id}"


class LedgerSerializer:
    """Serializer for trades, positions and ledgers to/from JSON-compatible dicts."""

    @staticmethod
    def serialize_trade(trade: Trade) -> dict:
        return {
            "id": trade.id,
            "seq": trade.seq,
            "symbol": trade.symbol,
            "direction": trade.direction.value,
            "quantity": trade.quantity,
            "price": str(trade.price),
            "timestamp": trade.timestamp.isoformat(),
        }

    @staticmethod
    def deserialize_trade(data: dict) -> Trade:
        timestamp = datetime.fromisoformat(data["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return Trade(
            id=data["id"],
            seq=data.get("seq"),
            symbol=data["symbol"],
            direction=TradeDirection(data["direction"]),
            quantity=int(data["quantity"]),
            price=Decimal(data["price"]),
            timestamp=timestamp,
        )

    @staticmethod
    def serialize_position(position: Position) -> dict:
        return {
            "symbol": position.symbol,
            "quantity": position.quantity,
            "average_price": str(position.average_price),
        }

    @staticmethod
    def deserialize_position(data: dict) -> Position:
        return Position(
            symbol=data["symbol"],
            quantity=int(data["quantity"]),
            average_price=Decimal(data["average_price"]),
        )

    @classmethod
    def serialize_ledger(cls, account: Account) -> dict:
        """Serialize an account's ledger blob.

        Args:
            account: Account to serialize

        Returns:
            Dictionary for the ``ledger_<account_id>`` key
        """
        return {
            "version": LEDGER_FORMAT_VERSION,
            "account_id": account.account_id,
            "initial_cash": str(account.initial_cash),
            "cash_balance": str(account.cash_balance),
            "trades": [cls.serialize_trade(t) for t in account.ledger],
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }

    @classmethod
    def serialize_positions(cls, account: Account) -> dict:
        return {
            "version": LEDGER_FORMAT_VERSION,
            "account_id": account.account_id,
            "ledger_length": len(account.ledger),
            "positions": {
                symbol: cls.serialize_position(position)
                for symbol, position in sorted(account.positions.items())
            },
        }

    @staticmethod
    def _check_version(data: Any, key: str) -> None:
        if not isinstance(data, dict):
            raise LedgerFormatError(f"'{key}' is not an object")
        version = data.get("version")
        if version != LEDGER_FORMAT_VERSION:
            raise LedgerFormatError(f"'{key}' has unsupported format version {version!r}")

    @classmethod
    def deserialize_ledger(cls, data: Any, key: str = "ledger") -> Account:
        """Restore an account (without positions) from a ledger blob.

        Raises:
            LedgerFormatError: If the blob has an unknown version or bad fields
        """
        cls._check_version(data, key)
        try:
            trades: List[Trade] = []
            for index, raw in enumerate(data.get("trades", [])):
                trade = cls.deserialize_trade(raw)
                trades.append(trade if trade.seq == index else trade.with_seq(index))
            return Account(
                account_id=data["account_id"],
                initial_cash=Decimal(data["initial_cash"]),
                cash_balance=Decimal(data["cash_balance"]),
                ledger=trades,
            )
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            raise LedgerFormatError(f"'{key}' is malformed: {e}") from e

    @classmethod
    def deserialize_positions(cls, data: Any, key: str = "positions") -> Dict[str, Position]:
        cls._check_version(data, key)
        try:
            return {
                symbol: cls.deserialize_position(raw)
                for symbol, raw in data.get("positions", {}).items()
            }
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            raise LedgerFormatError(f"'{key}' is malformed: {e}") from e


@dataclass
class StoredAccount:
    """An account as read back from storage.

    Attributes:
        account: Account with ledger, cash and (if present) cached positions
        positions_cached: False if no usable positions blob was found
    """
    account: Account
    positions_cached: bool


class LedgerStore:
    """Reads and writes account ledgers through a storage service."""

    def __init__(self, storage: IStorageService) -> None:
        self._storage = storage

    def save(self, account: Account) -> None:
        """Persist an account.

        The ledger blob is written first; failure there raises. A failure
        writing the positions cache is logged only, since the cache is
        rebuilt from the ledger on load.

        Raises:
            PersistenceError: If the ledger blob could not be written
        """
        self._storage.replace(ledger_key(account.account_id), LedgerSerializer.serialize_ledger(account))
        try:
            self._storage.replace(positions_key(account.account_id), LedgerSerializer.serialize_positions(account))
        except PersistenceError as e:
            logger.warning(f"Positions cache for '{account.account_id}' not written: {e}")

    def load(self, account_id: str) -> Optional[StoredAccount]:
        """Load an account.

        Returns:
            StoredAccount, or None if no ledger is stored for the account

        Raises:
            LedgerFormatError: If the ledger blob is unreadable
        """
        raw_ledger = self._storage.load(ledger_key(account_id))
        if raw_ledger is None:
            if self._storage.exists(ledger_key(account_id)):
                raise LedgerFormatError(f"'{ledger_key(account_id)}' exists but cannot be read")
            return None
        account = LedgerSerializer.deserialize_ledger(raw_ledger, ledger_key(account_id))

        raw_positions = self._storage.load(positions_key(account_id))
        if raw_positions is None:
            return StoredAccount(account=account, positions_cached=False)
        try:
            positions = LedgerSerializer.deserialize_positions(raw_positions, positions_key(account_id))
        except LedgerFormatError as e:
            logger.warning(f"Ignoring positions cache for '{account_id}': {e}")
            return StoredAccount(account=account, positions_cached=False)
        if raw_positions.get("ledger_length") != len(account.ledger):
            logger.warning(
                f"Ignoring positions cache for '{account_id}': written for "
                f"{raw_positions.get('ledger_length')} trades, ledger has {len(account.ledger)}"
            )
            return StoredAccount(account=account, positions_cached=False)
        account.positions = positions
        return StoredAccount(account=account, positions_cached=True)

    def delete(self, account_id: str) -> None:
        self._storage.delete(ledger_key(account_id))
        self._storage.delete(positions_key(account_id))

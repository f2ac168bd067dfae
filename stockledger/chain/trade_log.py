"""Clients for the external (on-chain) trade log.

The trade log is an authoritative record kept outside this process, e.g. a
smart contract reached through an HTTP gateway. Records travel in the
contract's own shape::

    {"symbol": "AAPL", "price": "150250000000000000000", "quantity": 10,
     "timestamp": 1700000000, "isBuy": true, "txHash": "0x..."}

where ``price`` is in wei (1e-18 of a unit) and ``timestamp`` is unix seconds.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from stockledger.errors import ExternalLedgerError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Confirmation:
    """Receipt for a trade accepted by the external log.

    Attributes:
        tx_hash: Transaction hash (or other receipt id)
        account_ref: Address/account the trade was recorded against
        raw: Response payload as returned by the log
    """
    tx_hash: str
    account_ref: str
    raw: Dict[str, Any] = field(default_factory=dict)


class ITradeLog(ABC):
    """Interface for an external trade log."""

    @abstractmethod
    def record_trade(self, account_ref: str, is_buy: bool, symbol: str, price_wei: int, quantity: int) -> Confirmation:
        """Record a trade.

        Raises:
            ExternalLedgerError: If the log rejects the write or cannot be reached
        """
        ...

    @abstractmethod
    def list_trades(self, account_ref: str) -> List[Dict[str, Any]]:
        """Full trade history for an account, in log order.

        Raises:
            ExternalLedgerError: If the log cannot be read
        """
        ...

    def close(self) -> None:
        """Release connections held by the log."""


class HttpTradeLog(ITradeLog):
    def __init__(
        self,
        base_url: str,
        timeout_s: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout_s, transport=transport)
        self._lock = threading.Lock()

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            with self._lock:
                r = self._client.request(method, path, **kwargs)
            r.raise_for_status()
            payload = r.json()
        except httpx.TimeoutException as e:
            logger.warning(f"Trade log {method} {path} timed out: {e}")
            raise ExternalLedgerError(f"Trade log timed out: {e}", timed_out=True) from e
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            logger.warning(f"Trade log {method} {path} failed with {e.response.status_code}: {detail}")
            raise ExternalLedgerError(f"Trade log rejected request ({e.response.status_code}): {detail}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Trade log {method} {path} unreachable: {e}")
            raise ExternalLedgerError(f"Trade log unreachable: {e}") from e
        except ValueError as e:
            raise ExternalLedgerError(f"Trade log returned invalid JSON: {e}") from e

        if isinstance(payload, dict) and payload.get("success") is False:
            raise ExternalLedgerError(str(payload.get("error") or "Trade log reported failure"))
        return payload

    def record_trade(self, account_ref: str, is_buy: bool, symbol: str, price_wei: int, quantity: int) -> Confirmation:
        payload = self._request(
            "POST",
            f"/accounts/{account_ref}/trades",
            json={"symbol": symbol, "price": str(price_wei), "quantity": quantity, "isBuy": is_buy},
        )
        if not isinstance(payload, dict):
            raise ExternalLedgerError("Trade log returned an unexpected receipt")
        tx_hash = payload.get("transactionHash") or payload.get("txHash")
        if not tx_hash:
            raise ExternalLedgerError("Trade log receipt has no transaction hash")
        return Confirmation(tx_hash=str(tx_hash), account_ref=account_ref, raw=payload)

    def list_trades(self, account_ref: str) -> List[Dict[str, Any]]:
        payload = self._request("GET", f"/accounts/{account_ref}/trades")
        records = payload.get("transactions") if isinstance(payload, dict) else payload
        if not isinstance(records, list):
            raise ExternalLedgerError("Trade log returned an unexpected trade list")
        return records


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)
    return str(body)


class InMemoryTradeLog(ITradeLog):
    """Simulated contract that keeps records in process memory.

    ``fail_next`` makes the next write raise. With ``land=True`` the write is
    still recorded, which is what a timed-out transaction that was mined
    later looks like to the caller.
    """

    def __init__(self) -> None:
        self._records: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self._pending_failure: Optional[ExternalLedgerError] = None
        self._land_failed_write = False
        self.read_failures = 0

    def fail_next(self, message: str = "Transaction reverted", timed_out: bool = False, land: bool = False) -> None:
        with self._lock:
            self._pending_failure = ExternalLedgerError(message, timed_out=timed_out)
            self._land_failed_write = land

    def record_trade(self, account_ref: str, is_buy: bool, symbol: str, price_wei: int, quantity: int) -> Confirmation:
        tx_hash = "0x" + uuid.uuid4().hex
        record = {
            "symbol": symbol,
            "price": str(price_wei),
            "quantity": quantity,
            "timestamp": int(time.time()),
            "isBuy": is_buy,
            "txHash": tx_hash,
        }
        with self._lock:
            failure = self._pending_failure
            land = self._land_failed_write
            self._pending_failure = None
            self._land_failed_write = False
            if failure is None or land:
                self._records.setdefault(account_ref, []).append(record)
        if failure is not None:
            raise failure
        return Confirmation(tx_hash=tx_hash, account_ref=account_ref, raw=dict(record))

    def list_trades(self, account_ref: str) -> List[Dict[str, Any]]:
        with self._lock:
            if self.read_failures > 0:
                self.read_failures -= 1
                raise ExternalLedgerError("Trade log unavailable")
            return [dict(r) for r in self._records.get(account_ref, [])]

    def append_raw(self, account_ref: str, record: Dict[str, Any]) -> None:
        """Insert a record as if another client had written it."""
        with self._lock:
            self._records.setdefault(account_ref, []).append(dict(record))

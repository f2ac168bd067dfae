"""Price catalog sources.

The ledger never discovers prices itself; it reads a per-symbol buy and sell
quote from whatever catalog the deployment provides.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Quote:
    """Current prices for one listed company.

    Attributes:
        symbol: Ticker symbol
        name: Company display name
        buy_price: Price paid per share when buying
        sell_price: Price received per share when selling
    """
    symbol: str
    name: str
    buy_price: Decimal
    sell_price: Decimal


class IPriceSource(ABC):
    """Interface for price catalogs."""

    @abstractmethod
    def get_quote(self, symbol: str) -> Optional[Quote]:
        """Get the current quote for a symbol.

        Args:
            symbol: Ticker symbol (case-insensitive)

        Returns:
            Quote, or None if the symbol is not listed
        """
        ...

    @abstractmethod
    def symbols(self) -> List[str]:
        """List all listed symbols."""
        ...

    def is_listed(self, symbol: str) -> bool:
        return self.get_quote(symbol) is not None

    def sell_prices(self) -> Dict[str, Decimal]:
        """Snapshot of sell prices, used for valuing holdings."""
        prices: Dict[str, Decimal] = {}
        for symbol in self.symbols():
            quote = self.get_quote(symbol)
            if quote is not None:
                prices[quote.symbol] = quote.sell_price
        return prices


class StaticCatalog(IPriceSource):
    """In-memory catalog with fixed quotes."""

    def __init__(self, quotes: Iterable[Quote] = ()) -> None:
        self._quotes: Dict[str, Quote] = {}
        for quote in quotes:
            self._quotes[quote.symbol.upper()] = quote

    @classmethod
    def from_prices(cls, prices: Mapping[str, object]) -> "StaticCatalog":
        """Build a catalog where buy and sell price are the same.

        Args:
            prices: Mapping of symbol to price (anything Decimal accepts via str)
        """
        quotes = []
        for symbol, price in prices.items():
            value = Decimal(str(price))
            quotes.append(Quote(symbol=symbol.upper(), name=symbol.upper(), buy_price=value, sell_price=value))
        return cls(quotes)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, object]]) -> "StaticCatalog":
        """Build a catalog from company records.

        Each record needs ``symbol``, ``buyPrice`` and ``sellPrice``; ``name``
        is optional. Malformed records are skipped with a warning.
        """
        quotes = []
        for record in records:
            try:
                symbol = str(record["symbol"]).upper()
                quotes.append(Quote(
                    symbol=symbol,
                    name=str(record.get("name") or symbol),
                    buy_price=Decimal(str(record["buyPrice"])),
                    sell_price=Decimal(str(record["sellPrice"])),
                ))
            except (KeyError, InvalidOperation) as e:
                logger.warning(f"Skipping malformed catalog record {record!r}: {e}")
        return cls(quotes)

    @classmethod
    def from_json_file(cls, path: str | Path) -> "StaticCatalog":
        """Load company records from a JSON array file."""
        with Path(path).open("r", encoding="utf-8") as f:
            records = json.load(f)
        if not isinstance(records, list):
            raise ValueError(f"Catalog file {path} must contain a JSON array")
        catalog = cls.from_records(records)
        logger.info(f"Loaded {len(catalog.symbols())} symbols from {path}")
        return catalog

    def get_quote(self, symbol: str) -> Optional[Quote]:
        return self._quotes.get(symbol.upper())

    def symbols(self) -> List[str]:
        return sorted(self._quotes)

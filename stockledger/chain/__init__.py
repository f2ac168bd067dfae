# External trade log module
"""Adapters for an external, authoritative trade log (e.g. a smart contract)."""

from .adapter import ExternalTradeSource, price_to_wei, wei_to_price
from .trade_log import Confirmation, HttpTradeLog, InMemoryTradeLog, ITradeLog

__all__ = [
    "Confirmation",
    "ExternalTradeSource",
    "HttpTradeLog",
    "InMemoryTradeLog",
    "ITradeLog",
    "price_to_wei",
    "wei_to_price",
]

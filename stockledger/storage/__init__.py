# Storage module
"""Persistence services for ledger and application state."""

from stockledger.storage.storage import IStorageService, JsonFileStorage, MemoryStorage

__all__ = ["IStorageService", "JsonFileStorage", "MemoryStorage"]

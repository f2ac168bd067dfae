"""Storage service interfaces and implementations.

Provides an abstract key/value storage interface, a JSON file-based
implementation for durable state and an in-memory implementation.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from stockledger.errors import PersistenceError

logger = logging.getLogger(__name__)


class IStorageService(ABC):
    """Abstract base class for storage services.

    Defines the interface for saving, atomically replacing, loading and
    deleting JSON-compatible data with string keys.
    """

    @abstractmethod
    def save(self, key: str, data: Any) -> None:
        """Save data with the given key.

        Args:
            key: Unique identifier for the data
            data: JSON-serializable data to store

        Raises:
            PersistenceError: If the data could not be written
        """
        ...

    @abstractmethod
    def replace(self, key: str, data: Any) -> None:
        """Atomically replace the data stored under a key.

        Readers see either the old value or the new one, never a partial write.

        Raises:
            PersistenceError: If the data could not be written
        """
        ...

    @abstractmethod
    def load(self, key: str) -> Optional[Any]:
        """Load data for the given key.

        Args:
            key: Unique identifier for the data

        Returns:
            The stored data, or None if not found
        """
        ...

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check whether anything is stored under a key.

        True even when the stored data cannot be read back, which lets
        callers tell a missing value from an unreadable one.
        """
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete data for the given key.

        Args:
            key: Unique identifier for the data to delete
        """
        ...


class JsonFileStorage(IStorageService):
    """JSON file-based storage implementation.

    Stores each key as a separate JSON file in the specified base directory.
    """

    def __init__(self, base_path: str | Path) -> None:
        """Initialize the JSON file storage.

        Args:
            base_path: Directory path where JSON files will be stored
        """
        self._base_path = Path(base_path)
        self._base_path.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base_path

    def _get_file_path(self, key: str) -> Path:
        safe_key = key.replace("/", "_").replace("\\", "_")
        return self._base_path / f"{safe_key}.json"

    def save(self, key: str, data: Any) -> None:
        """Save data to a JSON file.

        Args:
            key: Unique identifier for the data
            data: JSON-serializable data to store

        Raises:
            PersistenceError: If data is not JSON-serializable or the file cannot be written
        """
        file_path = self._get_file_path(key)
        try:
            with file_path.open("w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
        except (TypeError, ValueError, OSError) as e:
            logger.error(f"Failed to save data for key '{key}': {e}")
            raise PersistenceError(f"Failed to save '{key}': {e}") from e

    def replace(self, key: str, data: Any) -> None:
        """Write to a temporary file next to the target, then rename over it.

        Raises:
            PersistenceError: If data is not JSON-serializable or the file cannot be written
        """
        file_path = self._get_file_path(key)
        try:
            payload = json.dumps(data, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error(f"Data for key '{key}' is not serializable: {e}")
            raise PersistenceError(f"Failed to serialize '{key}': {e}") from e

        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{file_path.stem}.", suffix=".tmp", dir=self._base_path)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, file_path)
            tmp_name = None
        except OSError as e:
            logger.error(f"Failed to replace data for key '{key}': {e}")
            raise PersistenceError(f"Failed to replace '{key}': {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def load(self, key: str) -> Optional[Any]:
        """Load data from a JSON file.

        Args:
            key: Unique identifier for the data

        Returns:
            The stored data, or None if file doesn't exist or is corrupted
        """
        file_path = self._get_file_path(key)
        if not file_path.exists():
            return None

        try:
            with file_path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupted data for key '{key}': {e}")
            return None
        except OSError as e:
            logger.error(f"Failed to load data for key '{key}': {e}")
            return None

    def exists(self, key: str) -> bool:
        return self._get_file_path(key).exists()

    def delete(self, key: str) -> None:
        file_path = self._get_file_path(key)
        try:
            if file_path.exists():
                file_path.unlink()
        except OSError as e:
            logger.error(f"Failed to delete data for key '{key}': {e}")


class MemoryStorage(IStorageService):
    """Process-local storage. Values are deep-copied in and out."""

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def save(self, key: str, data: Any) -> None:
        self.replace(key, data)

    def replace(self, key: str, data: Any) -> None:
        try:
            # Same contract as the file store: only JSON-compatible data
            json.dumps(data)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to serialize '{key}': {e}") from e
        with self._lock:
            self._data[key] = copy.deepcopy(data)

    def load(self, key: str) -> Optional[Any]:
        with self._lock:
            value = self._data.get(key)
        return copy.deepcopy(value)

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self):
        with self._lock:
            return sorted(self._data)

"""Application configuration from environment variables with defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping, Optional

from stockledger.trading.executor import LedgerAuthority

ENV_PREFIX = "STOCKLEDGER_"
DEFAULT_DATA_DIR = Path.home() / ".stockledger" / "data"


@dataclass(frozen=True)
class Settings:
    """Runtime settings.

    Attributes:
        data_dir: Directory for JSON ledger files
        account_id: Account used when the caller does not name one
        initial_cash: Starting cash for new accounts
        authority: LOCAL ledger, or EXTERNAL trade log as the source of truth
        trade_log_url: Base URL of the trade log gateway (external authority)
        trade_log_timeout: Seconds to wait for the trade log
        catalog_path: Optional JSON file of company quotes
        log_level: Logging level name
        log_file: Optional log file path
    """
    data_dir: Path = DEFAULT_DATA_DIR
    account_id: str = "default"
    initial_cash: Decimal = Decimal("10000")
    authority: LedgerAuthority = LedgerAuthority.LOCAL
    trade_log_url: Optional[str] = None
    trade_log_timeout: float = 10.0
    catalog_path: Optional[Path] = None
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.authority is LedgerAuthority.EXTERNAL and not self.trade_log_url:
            raise ValueError(f"{ENV_PREFIX}TRADE_LOG_URL is required when authority is external")
        if not self.initial_cash.is_finite():
            raise ValueError("Initial cash must be a finite number")
        if self.initial_cash < 0:
            raise ValueError("Initial cash must not be negative")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``STOCKLEDGER_*`` environment variables.

        Raises:
            ValueError: If a variable has an invalid value
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            return value.strip() if value and value.strip() else None

        authority_raw = (get("AUTHORITY") or LedgerAuthority.LOCAL.value).lower()
        try:
            authority = LedgerAuthority(authority_raw)
        except ValueError:
            raise ValueError(f"{ENV_PREFIX}AUTHORITY must be 'local' or 'external', got {authority_raw!r}") from None

        try:
            initial_cash = Decimal(get("INITIAL_CASH") or "10000")
        except InvalidOperation:
            raise ValueError(f"{ENV_PREFIX}INITIAL_CASH is not a number") from None
        if not initial_cash.is_finite():
            raise ValueError(f"{ENV_PREFIX}INITIAL_CASH must be a finite number")

        data_dir = get("DATA_DIR")
        catalog = get("CATALOG")
        log_file = get("LOG_FILE")
        return cls(
            data_dir=Path(data_dir).expanduser() if data_dir else DEFAULT_DATA_DIR,
            account_id=get("ACCOUNT") or "default",
            initial_cash=initial_cash,
            authority=authority,
            trade_log_url=get("TRADE_LOG_URL"),
            trade_log_timeout=float(get("TRADE_LOG_TIMEOUT") or "10"),
            catalog_path=Path(catalog).expanduser() if catalog else None,
            log_level=(get("LOG_LEVEL") or "INFO").upper(),
            log_file=Path(log_file).expanduser() if log_file else None,
        )

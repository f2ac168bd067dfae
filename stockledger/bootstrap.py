"""Wiring of storage, catalog and trade log into a TradeExecutor."""

from __future__ import annotations

import logging
from typing import Optional

from stockledger.chain.adapter import ExternalTradeSource
from stockledger.chain.trade_log import HttpTradeLog, ITradeLog
from stockledger.config import Settings
from stockledger.data.catalog import IPriceSource, StaticCatalog
from stockledger.storage.storage import IStorageService, JsonFileStorage
from stockledger.trading.executor import LedgerAuthority, TradeExecutor
from stockledger.trading.ledger_store import LedgerStore

logger = logging.getLogger(__name__)


def load_catalog(settings: Settings) -> Optional[IPriceSource]:
    if settings.catalog_path is None:
        return None
    return StaticCatalog.from_json_file(settings.catalog_path)


def build_executor(
    settings: Settings,
    account_id: Optional[str] = None,
    storage: Optional[IStorageService] = None,
    price_source: Optional[IPriceSource] = None,
    trade_log: Optional[ITradeLog] = None,
) -> TradeExecutor:
    """Open the executor for an account as configured.

    Args:
        settings: Runtime settings
        account_id: Account to open; defaults to ``settings.account_id``
        storage: Storage override (defaults to JSON files in ``settings.data_dir``)
        price_source: Catalog override (defaults to ``settings.catalog_path``)
        trade_log: Trade log override for external authority

    Returns:
        TradeExecutor reconciled with its authoritative source
    """
    account_id = account_id or settings.account_id
    if storage is None:
        storage = JsonFileStorage(settings.data_dir)
    if price_source is None:
        price_source = load_catalog(settings)

    external = None
    if settings.authority is LedgerAuthority.EXTERNAL:
        if trade_log is None:
            trade_log = HttpTradeLog(settings.trade_log_url, timeout_s=settings.trade_log_timeout)
        external = ExternalTradeSource(trade_log, account_id)

    logger.info(f"Opening account '{account_id}' with {settings.authority.value} ledger authority")
    try:
        return TradeExecutor.open(
            account_id,
            settings.initial_cash,
            store=LedgerStore(storage),
            price_source=price_source,
            external=external,
        )
    except Exception:
        if external is not None:
            external.close()
        raise

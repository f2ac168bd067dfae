"""Qt bridge that runs trades off the UI thread.

Trades against an external trade log block on network I/O, so the executor
is driven from a worker QObject living on its own QThread. Requests are
delivered through queued signals and therefore run one at a time in
submission order.
"""

from __future__ import annotations

import logging
from typing import Optional

from PySide6.QtCore import QObject, QThread, Signal, Slot

from stockledger.errors import StockLedgerError
from stockledger.trading.executor import TradeExecutor, TradeOutcome

logger = logging.getLogger(__name__)


class TradeWorker(QObject):
    tradeFinished = Signal(object)  # TradeOutcome
    accountChanged = Signal(object)  # AccountSnapshot
    error = Signal(str)

    def __init__(self, executor: TradeExecutor) -> None:
        super().__init__()
        self._executor = executor

    @Slot(str, str, int, object)
    def submit(self, direction: str, symbol: str, quantity: int, price: object) -> None:
        outcome = self._executor.submit_trade(direction, symbol, quantity, price)
        self.tradeFinished.emit(outcome)
        if outcome.success:
            self.accountChanged.emit(self._executor.snapshot())

    @Slot()
    def refresh(self) -> None:
        try:
            self._executor.refresh()
        except StockLedgerError as e:
            logger.warning(f"Refresh failed: {e}")
            self.error.emit(str(e))
            return
        self.accountChanged.emit(self._executor.snapshot())


class TradingBridge(QObject):
    """UI-facing facade over a TradeExecutor.

    Signals:
        tradeFinished: Emitted with the TradeOutcome of every submission
        accountChanged: Emitted with a fresh AccountSnapshot after a change
        error: Emitted with a message when a refresh fails
        busyChanged: Emitted with True while submissions are pending
    """

    requestTrade = Signal(str, str, int, object)
    requestRefresh = Signal()
    tradeFinished = Signal(object)
    accountChanged = Signal(object)
    error = Signal(str)
    busyChanged = Signal(bool)

    def __init__(self, executor: TradeExecutor, parent: Optional[QObject] = None, threaded: bool = True) -> None:
        """Initialize the bridge.

        Args:
            executor: Executor to drive
            parent: Optional Qt parent
            threaded: Run the worker on its own QThread (False runs it inline)
        """
        super().__init__(parent)
        self._executor = executor
        self._pending = 0
        self._worker = TradeWorker(executor)
        self._thread: Optional[QThread] = None
        if threaded:
            self._thread = QThread(self)
            self._worker.moveToThread(self._thread)
            self._thread.start()

        self.requestTrade.connect(self._worker.submit)
        self.requestRefresh.connect(self._worker.refresh)
        self._worker.tradeFinished.connect(self._on_trade_finished)
        self._worker.accountChanged.connect(self.accountChanged)
        self._worker.error.connect(self.error)

    @property
    def executor(self) -> TradeExecutor:
        return self._executor

    @property
    def busy(self) -> bool:
        return self._pending > 0

    def submit_trade(self, direction: str, symbol: str, quantity: int, price: object = None) -> None:
        """Queue a trade; the outcome arrives through ``tradeFinished``."""
        self._pending += 1
        if self._pending == 1:
            self.busyChanged.emit(True)
        self.requestTrade.emit(direction, symbol, quantity, price)

    def refresh(self) -> None:
        self.requestRefresh.emit()

    def shutdown(self) -> None:
        if self._thread is not None:
            self._thread.quit()
            self._thread.wait(2000)
            self._thread = None

    @Slot(object)
    def _on_trade_finished(self, outcome: TradeOutcome) -> None:
        self._pending = max(self._pending - 1, 0)
        self.tradeFinished.emit(outcome)
        if self._pending == 0:
            self.busyChanged.emit(False)

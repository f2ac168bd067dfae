from __future__ import annotations

from decimal import Decimal

from PySide6.QtCore import QEventLoop, QTimer

from stockledger.chain import ExternalTradeSource, InMemoryTradeLog
from stockledger.storage import MemoryStorage
from stockledger.trading import LedgerStore, RejectionReason, TradeExecutor
from stockledger.ui.bridge import TradingBridge


def make_executor(catalog=None, external=None) -> TradeExecutor:
    return TradeExecutor.open(
        "acct",
        Decimal("1000"),
        store=LedgerStore(MemoryStorage()),
        price_source=catalog,
        external=external,
    )


class TestTradingBridge:
    def test_inline_submission_emits_outcome_and_snapshot(self, catalog):
        bridge = TradingBridge(make_executor(catalog), threaded=False)
        outcomes, snapshots, busy = [], [], []
        bridge.tradeFinished.connect(outcomes.append)
        bridge.accountChanged.connect(snapshots.append)
        bridge.busyChanged.connect(busy.append)

        bridge.submit_trade("BUY", "AAPL", 2)

        assert len(outcomes) == 1
        assert outcomes[0].success
        assert outcomes[0].trade.price == Decimal("150.25")
        assert busy == [True, False]
        assert not bridge.busy
        assert snapshots[-1].cash_balance == Decimal("1000") - Decimal("300.50")

    def test_rejection_does_not_emit_account_change(self):
        bridge = TradingBridge(make_executor(), threaded=False)
        outcomes, snapshots = [], []
        bridge.tradeFinished.connect(outcomes.append)
        bridge.accountChanged.connect(snapshots.append)

        bridge.submit_trade("SELL", "AAPL", 1, Decimal("10"))

        assert outcomes[0].rejection_reason is RejectionReason.NO_POSITION
        assert snapshots == []

    def test_refresh_failure_emits_error(self):
        trade_log = InMemoryTradeLog()
        bridge = TradingBridge(make_executor(external=ExternalTradeSource(trade_log, "0xabc")), threaded=False)
        errors, snapshots = [], []
        bridge.error.connect(errors.append)
        bridge.accountChanged.connect(snapshots.append)

        trade_log.read_failures = 1
        bridge.refresh()
        bridge.refresh()

        assert len(errors) == 1
        assert len(snapshots) == 1

    def test_threaded_submission_delivers_outcome(self):
        bridge = TradingBridge(make_executor())
        outcomes = []
        loop = QEventLoop()
        bridge.tradeFinished.connect(outcomes.append)
        bridge.tradeFinished.connect(loop.quit)
        QTimer.singleShot(5000, loop.quit)

        try:
            bridge.submit_trade("BUY", "MSFT", 1, Decimal("300"))
            if not outcomes:
                loop.exec()
        finally:
            bridge.shutdown()

        assert len(outcomes) == 1
        assert outcomes[0].success
        assert bridge.executor.get_balance() == Decimal("700")

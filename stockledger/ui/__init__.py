# UI integration module
"""Qt integration for driving the ledger from a desktop UI."""

# Note: Imports are done lazily so the ledger can be used without Qt loaded.
# Import directly from submodules when needed:
#   from stockledger.ui.bridge import TradingBridge, TradeWorker

"""Command-line interface for a stock ledger account.

Examples:
    python -m stockledger buy AAPL 10 --price 150.25
    python -m stockledger sell AAPL 5
    python -m stockledger positions
    python -m stockledger history --limit 10
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from stockledger.bootstrap import build_executor
from stockledger.config import Settings
from stockledger.errors import StockLedgerError
from stockledger.trading.analytics import PortfolioAnalytics
from stockledger.trading.executor import TradeExecutor
from stockledger.util.logging import setup_logging

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stockledger", description="Personal stock ledger")
    parser.add_argument("--account", help="Account id (default: STOCKLEDGER_ACCOUNT or 'default')")
    parser.add_argument("--data-dir", type=Path, help="Directory for ledger files")
    parser.add_argument("--catalog", type=Path, help="JSON file of company quotes")
    parser.add_argument("--log-level", help="Logging level (default: STOCKLEDGER_LOG_LEVEL or INFO)")

    sub = parser.add_subparsers(dest="command", required=True)

    for name in ("buy", "sell"):
        p = sub.add_parser(name, help=f"{name.capitalize()} shares")
        p.add_argument("symbol")
        p.add_argument("quantity", type=int)
        p.add_argument("--price", help="Price per share (default: catalog price)")

    sub.add_parser("positions", help="List held positions")

    p = sub.add_parser("history", help="Show recent trades, newest first")
    p.add_argument("--limit", type=int, default=10)

    sub.add_parser("summary", help="Cash, holdings value and profit/loss")
    sub.add_parser("refresh", help="Rebuild positions from the authoritative ledger")

    p = sub.add_parser("export", help="Write the ledger to a CSV file")
    p.add_argument("path", type=Path)
    return parser


def _print_positions(executor: TradeExecutor) -> None:
    positions = executor.get_all_positions()
    if not positions:
        print("No positions held.")
        return
    print(f"{'SYMBOL':<8} {'QTY':>8} {'AVG PRICE':>14} {'COST':>14}")
    for p in positions:
        print(f"{p.symbol:<8} {p.quantity:>8} {p.average_price:>14.2f} {p.total_cost:>14.2f}")


def _print_history(executor: TradeExecutor, limit: int) -> None:
    trades = executor.get_transaction_history(limit)
    if not trades:
        print("No transaction history.")
        return
    for t in trades:
        print(f"{t.timestamp:%Y-%m-%d %H:%M:%S}  {t.direction.value:<4} {t.symbol:<8} {t.quantity:>6} @ {t.price:.2f}  = {t.total_value:.2f}")


def _print_summary(executor: TradeExecutor) -> None:
    catalog = executor.price_source
    prices = catalog.sell_prices() if catalog is not None else {}
    summary = PortfolioAnalytics().summarize(executor.get_balance(), executor.get_all_positions(), prices)
    metrics = PortfolioAnalytics().calculate_metrics(executor.snapshot().ledger)
    print(f"Cash balance:    {summary.cash_balance:.2f}")
    print(f"Portfolio value: {summary.portfolio_value:.2f}")
    print(f"Unrealized P/L:  {summary.unrealized_pnl:+.2f}")
    print(f"Realized P/L:    {metrics.realized_pnl:+.2f}")
    print(f"Total assets:    {summary.total_assets:.2f}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        settings = Settings.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    overrides = {}
    if args.data_dir:
        overrides["data_dir"] = args.data_dir
    if args.catalog:
        overrides["catalog_path"] = args.catalog
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    settings = replace(settings, **overrides)
    setup_logging(settings.log_level, settings.log_file)

    try:
        executor = build_executor(settings, account_id=args.account)
    except StockLedgerError as e:
        logger.error(f"Could not open account: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        if args.command in ("buy", "sell"):
            outcome = executor.submit_trade(args.command, args.symbol, args.quantity, args.price)
            print(outcome.message)
            if not outcome.success:
                return 1
            print(f"Cash balance: {outcome.cash_balance:.2f}")
            if outcome.realized_pnl is not None:
                print(f"Realized P/L: {outcome.realized_pnl:+.2f}")
        elif args.command == "positions":
            _print_positions(executor)
        elif args.command == "history":
            _print_history(executor, args.limit)
        elif args.command == "summary":
            _print_summary(executor)
        elif args.command == "refresh":
            executor.refresh()
            print(f"Refreshed {len(executor.get_all_positions())} positions.")
        elif args.command == "export":
            history = executor.snapshot().ledger
            PortfolioAnalytics().export_to_csv(history, str(args.path))
            print(f"Exported {len(history)} trades to {args.path}")
    except StockLedgerError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        executor.close()
    return 0

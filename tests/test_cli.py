from __future__ import annotations

import csv
import json

import pytest

from stockledger import cli


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    catalog = tmp_path / "companies.json"
    catalog.write_text(json.dumps([
        {"symbol": "AAPL", "name": "Apple Inc.", "buyPrice": "150.25", "sellPrice": "149.75"},
        {"symbol": "MSFT", "name": "Microsoft Corporation", "buyPrice": "300", "sellPrice": "298.50"},
    ]), encoding="utf-8")

    for name in ("ACCOUNT", "AUTHORITY", "TRADE_LOG_URL", "INITIAL_CASH", "LOG_FILE", "LOG_LEVEL", "TRADE_LOG_TIMEOUT"):
        monkeypatch.delenv(f"STOCKLEDGER_{name}", raising=False)
    monkeypatch.setenv("STOCKLEDGER_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("STOCKLEDGER_CATALOG", str(catalog))
    # Keep log records flowing to pytest's handlers
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)
    return tmp_path


def test_buy_then_list_positions(cli_env, capsys):
    assert cli.main(["buy", "AAPL", "10"]) == 0
    out = capsys.readouterr().out
    assert "Bought 10 AAPL at 150.25" in out
    assert "Cash balance: 8497.50" in out

    assert cli.main(["positions"]) == 0
    out = capsys.readouterr().out
    assert "AAPL" in out
    assert "150.25" in out


def test_oversell_fails(cli_env, capsys):
    cli.main(["buy", "AAPL", "10"])
    capsys.readouterr()

    assert cli.main(["sell", "AAPL", "20"]) == 1
    assert "You only own 10 shares of AAPL" in capsys.readouterr().out


def test_sell_reports_realized_pnl(cli_env, capsys):
    cli.main(["buy", "MSFT", "2", "--price", "250"])
    capsys.readouterr()

    assert cli.main(["sell", "MSFT", "1"]) == 0
    assert "Realized P/L: +48.50" in capsys.readouterr().out


def test_history_newest_first(cli_env, capsys):
    cli.main(["buy", "AAPL", "1"])
    cli.main(["buy", "MSFT", "1"])
    capsys.readouterr()

    assert cli.main(["history", "--limit", "1"]) == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 1
    assert "MSFT" in lines[0]


def test_summary_and_export(cli_env, capsys):
    cli.main(["buy", "AAPL", "10"])
    capsys.readouterr()

    assert cli.main(["summary"]) == 0
    out = capsys.readouterr().out
    assert "Portfolio value: 1497.50" in out
    assert "Unrealized P/L:  -5.00" in out

    target = cli_env / "ledger.csv"
    assert cli.main(["export", str(target)]) == 0
    with target.open(newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert [row["symbol"] for row in rows] == ["AAPL"]


def test_empty_account(cli_env, capsys):
    assert cli.main(["--account", "nobody", "positions"]) == 0
    assert "No positions held." in capsys.readouterr().out


def test_configuration_error(cli_env, monkeypatch, capsys):
    monkeypatch.setenv("STOCKLEDGER_AUTHORITY", "sideways")

    assert cli.main(["positions"]) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_unreadable_ledger_is_an_error(cli_env, capsys):
    cli.main(["buy", "AAPL", "10"])
    capsys.readouterr()
    (cli_env / "data" / "ledger_default.json").write_text("{\"version\"", encoding="utf-8")

    assert cli.main(["buy", "AAPL", "1"]) == 1
    assert "cannot be read" in capsys.readouterr().err
    assert (cli_env / "data" / "ledger_default.json").read_text(encoding="utf-8") == "{\"version\""


def test_non_finite_initial_cash_is_a_configuration_error(cli_env, monkeypatch, capsys):
    monkeypatch.setenv("STOCKLEDGER_INITIAL_CASH", "nan")

    assert cli.main(["positions"]) == 2
    assert "Configuration error" in capsys.readouterr().err

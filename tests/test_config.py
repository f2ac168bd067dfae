from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from stockledger.config import Settings
from stockledger.trading import LedgerAuthority


def test_defaults_without_environment():
    settings = Settings.from_env({})

    assert settings.account_id == "default"
    assert settings.initial_cash == Decimal("10000")
    assert settings.authority is LedgerAuthority.LOCAL
    assert settings.catalog_path is None


def test_values_from_environment(tmp_path):
    settings = Settings.from_env({
        "STOCKLEDGER_DATA_DIR": str(tmp_path),
        "STOCKLEDGER_ACCOUNT": "alice",
        "STOCKLEDGER_INITIAL_CASH": "2500.50",
        "STOCKLEDGER_AUTHORITY": "External",
        "STOCKLEDGER_TRADE_LOG_URL": "http://localhost:8545",
        "STOCKLEDGER_TRADE_LOG_TIMEOUT": "3",
        "STOCKLEDGER_LOG_LEVEL": "debug",
    })

    assert settings.data_dir == Path(tmp_path)
    assert settings.account_id == "alice"
    assert settings.initial_cash == Decimal("2500.50")
    assert settings.authority is LedgerAuthority.EXTERNAL
    assert settings.trade_log_timeout == 3.0
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("environ", [
    {"STOCKLEDGER_AUTHORITY": "external"},
    {"STOCKLEDGER_AUTHORITY": "blockchain"},
    {"STOCKLEDGER_INITIAL_CASH": "lots"},
    {"STOCKLEDGER_INITIAL_CASH": "-5"},
    {"STOCKLEDGER_INITIAL_CASH": "nan"},
    {"STOCKLEDGER_INITIAL_CASH": "Infinity"},
    {"STOCKLEDGER_TRADE_LOG_TIMEOUT": "soon"},
])
def test_invalid_values_raise(environ):
    with pytest.raises(ValueError):
        Settings.from_env(environ)


def test_non_finite_initial_cash_rejected_directly():
    with pytest.raises(ValueError):
        Settings(initial_cash=Decimal("sNaN"))

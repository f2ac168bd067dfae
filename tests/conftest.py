from __future__ import annotations

from decimal import Decimal

import pytest
from PySide6.QtCore import QCoreApplication

from stockledger.data.catalog import Quote, StaticCatalog


@pytest.fixture(scope="session", autouse=True)
def _qt_app():
    # Signals and QThread need an application object; no GUI required
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def catalog() -> StaticCatalog:
    return StaticCatalog([
        Quote("AAPL", "Apple Inc.", Decimal("150.25"), Decimal("149.75")),
        Quote("MSFT", "Microsoft Corporation", Decimal("300"), Decimal("298.50")),
        Quote("TSLA", "Tesla, Inc.", Decimal("200"), Decimal("195")),
    ])

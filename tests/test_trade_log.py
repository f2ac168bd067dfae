from __future__ import annotations

import json

import httpx
import pytest

from stockledger.chain.trade_log import HttpTradeLog
from stockledger.errors import ExternalLedgerError


def make_log(handler) -> HttpTradeLog:
    return HttpTradeLog("https://gateway.test/", transport=httpx.MockTransport(handler))


def test_record_trade_posts_wei_price():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "transactionHash": "0xfeed"})

    log = make_log(handler)
    confirmation = log.record_trade("0xabc", True, "AAPL", 150250000000000000000, 10)

    assert seen["method"] == "POST"
    assert seen["path"] == "/accounts/0xabc/trades"
    assert seen["body"] == {"symbol": "AAPL", "price": "150250000000000000000", "quantity": 10, "isBuy": True}
    assert confirmation.tx_hash == "0xfeed"
    assert confirmation.account_ref == "0xabc"
    log.close()


@pytest.mark.parametrize("payload", [
    [{"symbol": "AAPL", "price": "1", "quantity": 1, "timestamp": 1, "isBuy": True}],
    {"success": True, "transactions": [{"symbol": "AAPL", "price": "1", "quantity": 1, "timestamp": 1, "isBuy": True}]},
])
def test_list_trades_accepts_both_shapes(payload):
    log = make_log(lambda request: httpx.Response(200, json=payload))

    records = log.list_trades("0xabc")

    assert len(records) == 1
    assert records[0]["symbol"] == "AAPL"


def test_server_error_carries_detail():
    log = make_log(lambda request: httpx.Response(500, json={"error": "execution reverted"}))

    with pytest.raises(ExternalLedgerError) as exc_info:
        log.record_trade("0xabc", False, "AAPL", 1, 1)

    assert "execution reverted" in str(exc_info.value)
    assert not exc_info.value.timed_out


def test_timeout_is_flagged():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ExternalLedgerError) as exc_info:
        make_log(handler).record_trade("0xabc", True, "AAPL", 1, 1)

    assert exc_info.value.timed_out


def test_unreachable_gateway():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExternalLedgerError) as exc_info:
        make_log(handler).list_trades("0xabc")

    assert not exc_info.value.timed_out


def test_reported_failure_raises():
    log = make_log(lambda request: httpx.Response(200, json={"success": False, "error": "Insufficient shares"}))

    with pytest.raises(ExternalLedgerError, match="Insufficient shares"):
        log.record_trade("0xabc", False, "AAPL", 1, 1)


def test_receipt_without_hash_raises():
    log = make_log(lambda request: httpx.Response(200, json={"success": True}))

    with pytest.raises(ExternalLedgerError):
        log.record_trade("0xabc", True, "AAPL", 1, 1)


def test_invalid_json_raises():
    log = make_log(lambda request: httpx.Response(200, content=b"<html>"))

    with pytest.raises(ExternalLedgerError):
        log.list_trades("0xabc")

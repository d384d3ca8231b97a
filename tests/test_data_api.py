"""Tests for the Data API client (requests mocked)."""

import pytest
import requests
from decimal import Decimal

from mirrorbot.clients import data_api
from mirrorbot.clients.data_api import DataApiClient, DataApiError


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


@pytest.fixture
def capture(monkeypatch):
    """Patch requests.get and record calls."""
    calls = []
    responses = []

    def fake_get(url, params=None, headers=None, timeout=None):
        calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        return responses.pop(0)

    monkeypatch.setattr(data_api.requests, "get", fake_get)
    return calls, responses


TRADE = {
    "proxyWallet": "0xAbC",
    "timestamp": 1700000000,
    "conditionId": "0xcond",
    "type": "TRADE",
    "size": 100,
    "usdcSize": 40.0,
    "transactionHash": "0xtx",
    "price": 0.4,
    "asset": "123",
    "side": "buy",
    "outcomeIndex": 0,
    "title": "Will it rain?",
}


class TestGetTrades:

    def test_params_and_parsing(self, capture):
        calls, responses = capture
        responses.append(FakeResponse([TRADE]))
        client = DataApiClient("https://data-api.example.com/")

        trades = client.get_trades("0xabc", start=1699999000, end=1700000100)

        assert calls[0]["url"] == "https://data-api.example.com/activity"
        assert calls[0]["params"] == {
            "user": "0xabc",
            "type": "TRADE",
            "limit": 100,
            "sortDirection": "ASC",
            "start": 1699999000,
            "end": 1700000100,
        }
        assert calls[0]["timeout"] == 30
        assert calls[0]["headers"]["User-Agent"] == "mirrorbot"

        trade = trades[0]
        assert trade.side == "BUY"
        assert trade.price == Decimal("0.4")
        assert trade.usdc_size == Decimal("40.0")
        assert trade.trader == "0xabc"
        assert trade.fingerprint().key == "0xtx:123:BUY:100:0.4"

    def test_fingerprint_ignores_number_formatting(self, capture):
        _, responses = capture
        responses.append(FakeResponse([
            dict(TRADE, size=100.0, price=0.40),
            dict(TRADE, size="100.00", price="0.4000"),
        ]))

        first, second = DataApiClient().get_trades("0xabc")

        assert first.fingerprint().key == "0xtx:123:BUY:100:0.4"
        assert second.fingerprint().key == first.fingerprint().key

    def test_http_error_raises(self, capture):
        _, responses = capture
        responses.append(FakeResponse([], status=503))
        with pytest.raises(DataApiError):
            DataApiClient().get_trades("0xabc")

    def test_invalid_json_raises(self, capture):
        _, responses = capture
        responses.append(FakeResponse(ValueError("Expecting value")))
        with pytest.raises(DataApiError):
            DataApiClient().get_trades("0xabc")

    def test_malformed_rows_skipped(self, capture):
        _, responses = capture
        responses.append(FakeResponse([{"side": "BUY"}, TRADE]))
        assert len(DataApiClient().get_trades("0xabc")) == 1


class TestGetPositions:

    def test_redeemable_flag(self, capture):
        calls, responses = capture
        responses.append(FakeResponse([{
            "conditionId": "0xcond",
            "asset": "123",
            "outcomeIndex": 1,
            "size": 5.5,
            "curPrice": 1,
            "redeemable": True,
            "negativeRisk": True,
        }]))

        positions = DataApiClient().get_positions("0xabc", redeemable=True)

        assert calls[0]["params"] == {"user": "0xabc", "limit": 200, "redeemable": "true"}
        assert positions[0].negative_risk is True
        assert positions[0].size == Decimal("5.5")

    def test_no_redeemable_param_by_default(self, capture):
        calls, responses = capture
        responses.append(FakeResponse([]))
        DataApiClient().get_positions("0xabc")
        assert "redeemable" not in calls[0]["params"]

    def test_transport_error_raises(self, monkeypatch):
        def boom(*args, **kwargs):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr(data_api.requests, "get", boom)
        with pytest.raises(DataApiError):
            DataApiClient().get_positions("0xabc")

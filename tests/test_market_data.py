"""Tests for quote fetching and symbol helpers (yfinance is mocked)."""

from decimal import Decimal
from unittest import mock

import pandas as pd
import pytest

from services.common import currency_for_market, infer_market_type, normalize_symbol
from services.market_data import MarketDataService, StockQuote

D = Decimal


@pytest.fixture(autouse=True)
def clear_quote_cache():
    MarketDataService.clear_cache()
    yield
    MarketDataService.clear_cache()


class TestSymbols:

    @pytest.mark.parametrize("symbol,market,expected", [
        ("NVDA", "US", "NVDA"),
        ("0700", "HK", "0700.HK"),
        ("0700.HK", "HK", "0700.HK"),
        ("600519", "CN", "600519.SS"),
        ("000001.SZ", "CN", "000001.SZ"),
        ("cba", "AU", "CBA.AX"),
        ("XYZ", "MARS", "XYZ"),
    ])
    def test_normalize_symbol(self, symbol, market, expected):
        assert normalize_symbol(symbol, market) == expected

    def test_infer_market_type(self):
        assert infer_market_type("AAPL") == "US"
        assert infer_market_type("0005") == "HK"
        assert infer_market_type("BHP.AX") == "AU"

    def test_currency(self):
        assert currency_for_market("HK") == "HKD"
        assert currency_for_market("unknown") == "USD"


class TestGetQuote:

    def test_price_from_info(self):
        info = {"currentPrice": 189.84, "previousClose": 187.5, "currency": "USD", "volume": 1000}
        with mock.patch("services.market_data.yf.Ticker") as ticker:
            ticker.return_value.info = info
            quote = MarketDataService.get_quote("AAPL", "US")

        assert quote.price == D("189.84")
        assert quote.previous_close == D("187.5")
        assert quote.change == D("2.34")
        assert quote.volume == 1000
        ticker.assert_called_once_with("AAPL")

    def test_history_fallback(self):
        with mock.patch("services.market_data.yf.Ticker") as ticker:
            ticker.return_value.info = {}
            ticker.return_value.history.return_value = pd.DataFrame({"Close": [10.5, 11.0]})
            quote = MarketDataService.get_quote("0700", "HK")

        assert quote.price == D("11.0")
        assert quote.previous_close == D("10.5")
        assert quote.currency == "HKD"
        ticker.assert_called_with("0700.HK")

    def test_no_price(self):
        with mock.patch("services.market_data.yf.Ticker") as ticker:
            ticker.return_value.info = {}
            ticker.return_value.history.return_value = pd.DataFrame({"Close": []})
            assert MarketDataService.get_quote("GONE", "US") is None

    def test_errors_become_none(self):
        with mock.patch.object(MarketDataService, "_fetch_ticker_info", side_effect=RuntimeError("boom")):
            assert MarketDataService.get_current_price("AAPL", "US") is None

    def test_quotes_are_cached(self):
        with mock.patch("services.market_data.yf.Ticker") as ticker:
            ticker.return_value.info = {"currentPrice": 10, "previousClose": 9}
            first = MarketDataService.get_current_price("AAPL", "US")
            second = MarketDataService.get_current_price("AAPL", "US")

        assert first == second == D("10")
        assert ticker.call_count == 1


class TestStockQuote:

    def test_change_percent(self):
        quote = StockQuote(symbol="X", price=D("110"), previous_close=D("100"))
        assert quote.change == D("10")
        assert quote.change_percent == D("10")

    def test_without_previous_close(self):
        quote = StockQuote(symbol="X", price=D("110"))
        assert quote.change is None
        assert quote.change_percent is None

"""Tests for the valuation enricher (no database, stub quotes)."""

import logging
from decimal import Decimal
from unittest import mock

from models import Holding, Security
from services.valuation import ValuationEnricher

D = Decimal


def make_holding(shares="10", cost="180"):
    return Holding(
        id=1,
        portfolio_id=1,
        security_id=1,
        total_shares=D(shares),
        average_cost=None if cost is None else D(cost),
    )


def make_security():
    return Security(id=1, symbol="AAPL", name="Apple Inc.", security_type="Stock", market_type="US")


class TestValuationEnricher:

    def test_gain_and_percent(self):
        enricher = ValuationEnricher(quote_provider=lambda symbol, market: D("200"))

        view = enricher.enrich(make_holding(), make_security())

        assert view.current_price == D("200.00")
        assert view.current_value == D("2000.00")
        assert view.total_cost == D("1800.00")
        assert view.unrealized_gain_loss == D("200.00")
        assert view.unrealized_gain_loss_percent == D("11.11")

    def test_rounding_only_in_presentation(self):
        """Inputs keep full precision; only the presented figures are rounded."""
        holding = make_holding("3", "181.8333333333")
        enricher = ValuationEnricher(quote_provider=lambda symbol, market: D("190.005"))

        view = enricher.enrich(holding, make_security())

        assert view.average_cost == D("181.8333333333")
        assert view.current_price == D("190.01")
        assert view.current_value == D("570.02")
        assert view.total_cost == D("545.50")

    def test_float_quotes_accepted(self):
        enricher = ValuationEnricher(quote_provider=lambda symbol, market: 200.1)
        view = enricher.enrich(make_holding(), make_security())
        assert view.current_value == D("2001.00")

    def test_empty_holding(self):
        """A depleted holding has a value of zero and no cost figures."""
        enricher = ValuationEnricher(quote_provider=lambda symbol, market: D("200"))

        view = enricher.enrich(make_holding("0", None), make_security())

        assert view.current_value == D("0.00")
        assert view.total_cost is None
        assert view.unrealized_gain_loss is None

    def test_provider_failure_is_logged_not_raised(self, caplog):
        def broken(symbol, market):
            raise RuntimeError("quote service down")

        enricher = ValuationEnricher(quote_provider=broken)
        with caplog.at_level(logging.WARNING, logger="services.valuation"):
            view = enricher.enrich(make_holding(), make_security())

        assert view.current_price is None
        assert view.total_shares == D("10")
        assert "AAPL" in caplog.text

    def test_missing_quote(self):
        enricher = ValuationEnricher(quote_provider=lambda symbol, market: None)
        view = enricher.enrich(make_holding(), make_security())
        assert view.current_value is None

    def test_disabled_skips_provider(self):
        provider = mock.Mock(return_value=D("1"))
        enricher = ValuationEnricher(quote_provider=provider, enabled=False)

        view = enricher.enrich(make_holding(), make_security())

        provider.assert_not_called()
        assert view.current_price is None

    def test_provider_gets_market_type(self):
        provider = mock.Mock(return_value=D("1"))
        ValuationEnricher(quote_provider=provider).enrich(make_holding(), make_security())
        provider.assert_called_once_with("AAPL", "US")

    def test_to_dict(self):
        view = ValuationEnricher(quote_provider=lambda s, m: None).enrich(make_holding(), make_security())
        data = view.to_dict()
        assert data["symbol"] == "AAPL"
        assert data["total_shares"] == D("10")

"""Tests for portfolio, security and holding management."""

from decimal import Decimal

import pytest

from conftest import OWNER, STRANGER
from errors import (
    DuplicateHolding,
    DuplicatePortfolio,
    DuplicateSecurity,
    InvalidOpeningPosition,
    NotAuthorized,
    NotFound,
)
from repositories.position_store import SqlPositionStore
from services.holding_service import HoldingService
from services.valuation import ValuationEnricher

D = Decimal


class TestPortfoliosAndSecurities:

    def test_create_portfolio(self, holding_service):
        portfolio = holding_service.create_portfolio(OWNER, "Retirement")
        assert portfolio.id is not None
        assert [p.id for p in holding_service.list_portfolios(OWNER)] == [portfolio.id]
        assert holding_service.list_portfolios(STRANGER) == []

    def test_duplicate_portfolio_name(self, holding_service, portfolio):
        with pytest.raises(DuplicatePortfolio) as exc_info:
            holding_service.create_portfolio(OWNER, " Main ")
        assert exc_info.value.http_status == 409
        assert holding_service.create_portfolio(STRANGER, "Main").user_id == STRANGER

    def test_update_portfolio(self, holding_service, portfolio):
        updated = holding_service.update_portfolio(OWNER, portfolio.id, name="Core")
        assert updated.name == "Core"
        assert updated.description == "Long-term account"

        updated = holding_service.update_portfolio(OWNER, portfolio.id, name="Core", description="Index funds")
        assert updated.description == "Index funds"

    def test_rename_onto_existing_name(self, holding_service, portfolio):
        holding_service.create_portfolio(OWNER, "Trading")
        with pytest.raises(DuplicatePortfolio):
            holding_service.update_portfolio(OWNER, portfolio.id, name="Trading")

    def test_stranger_cannot_update_portfolio(self, holding_service, portfolio):
        with pytest.raises(NotAuthorized):
            holding_service.update_portfolio(STRANGER, portfolio.id, name="Mine now")

    def test_delete_portfolio_cascades(self, holding_service, tx_service, portfolio, holding):
        tx_service.create_transaction(OWNER, holding.id, "Buy", 10, "100")

        assert holding_service.delete_portfolio(OWNER, portfolio.id)

        assert holding_service.list_portfolios(OWNER) == []
        assert SqlPositionStore().load_holding_for_update(holding.id) is None
        assert SqlPositionStore().load_ledger(holding.id) == []

    def test_stranger_cannot_delete_portfolio(self, holding_service, portfolio):
        with pytest.raises(NotAuthorized):
            holding_service.delete_portfolio(STRANGER, portfolio.id)
        assert len(holding_service.list_portfolios(OWNER)) == 1

    def test_security_symbol_normalized(self, holding_service):
        security = holding_service.create_security(" msft ", "Microsoft")
        assert security.symbol == "MSFT"
        assert security.market_type == "US"

    def test_market_type_inferred(self, holding_service):
        assert holding_service.create_security("0700.HK", "Tencent").market_type == "HK"
        assert holding_service.create_security("CBA.AX", "Commonwealth Bank").market_type == "AU"
        assert holding_service.create_security("600519", "Kweichow Moutai").market_type == "CN"

    def test_duplicate_security(self, holding_service, security):
        with pytest.raises(DuplicateSecurity) as exc_info:
            holding_service.create_security("aapl", "Apple again")
        assert exc_info.value.http_status == 409


class TestOpenHolding:
    """Opening a holding validates the opening position and ownership."""

    def test_open_empty(self, holding_service, portfolio, security):
        holding = holding_service.open_holding(OWNER, portfolio.id, security.id)
        assert holding.total_shares == D("0")
        assert holding.average_cost is None
        assert holding.version == 1

    def test_open_with_position(self, holding_service, portfolio, security):
        holding = holding_service.open_holding(OWNER, portfolio.id, security.id, "10", "180.00")
        assert holding.total_shares == D("10")
        assert holding.average_cost == D("180")
        assert holding.opening_shares == D("10")

    def test_duplicate_holding(self, holding_service, portfolio, security, holding):
        with pytest.raises(DuplicateHolding, match="AAPL already exists"):
            holding_service.open_holding(OWNER, portfolio.id, security.id)

    def test_same_security_in_two_portfolios(self, holding_service, portfolio, security, holding):
        second = holding_service.create_portfolio(OWNER, "Second")
        other = holding_service.open_holding(OWNER, second.id, security.id)
        assert other.id != holding.id

    @pytest.mark.parametrize("shares,cost", [
        ("10", None),
        ("0", "5"),
        ("-1", "5"),
        ("10", "-5"),
        ("0.0000001", "5"),
    ])
    def test_invalid_opening_position(self, holding_service, portfolio, security, shares, cost):
        with pytest.raises(InvalidOpeningPosition):
            holding_service.open_holding(OWNER, portfolio.id, security.id, shares, cost)

    def test_unknown_security(self, holding_service, portfolio):
        with pytest.raises(NotFound, match="Security 77 not found"):
            holding_service.open_holding(OWNER, portfolio.id, 77)

    def test_strangers_portfolio(self, holding_service, portfolio, security):
        with pytest.raises(NotAuthorized):
            holding_service.open_holding(STRANGER, portfolio.id, security.id)


class TestReadAndDelete:

    def test_get_holding_without_quotes(self, holding_service, tx_service, holding):
        tx_service.create_transaction(OWNER, holding.id, "Buy", 10, "180")

        view = holding_service.get_holding(OWNER, holding.id)

        assert view.symbol == "AAPL"
        assert view.security_name == "Apple Inc."
        assert view.total_shares == D("10")
        assert view.current_price is None

    def test_get_holding_with_quotes(self, settings, tx_service, holding):
        service = HoldingService(
            settings=settings,
            enricher=ValuationEnricher(quote_provider=lambda symbol, market: D("200"))
        )
        tx_service.create_transaction(OWNER, holding.id, "Buy", 10, "180")

        view = service.get_holding(OWNER, holding.id)

        assert view.current_value == D("2000.00")
        assert view.unrealized_gain_loss == D("200.00")

    def test_stranger_cannot_read(self, holding_service, holding):
        with pytest.raises(NotAuthorized):
            holding_service.get_holding(STRANGER, holding.id)
        with pytest.raises(NotAuthorized):
            holding_service.list_portfolio_holdings(STRANGER, holding.portfolio_id)

    def test_missing_holding(self, holding_service, settings):
        with pytest.raises(NotFound):
            holding_service.get_holding(OWNER, 404)

    def test_list_sorted_by_symbol(self, holding_service, portfolio, holding):
        amzn = holding_service.create_security("AMZN", "Amazon")
        zm = holding_service.create_security("ZM", "Zoom")
        holding_service.open_holding(OWNER, portfolio.id, zm.id)
        holding_service.open_holding(OWNER, portfolio.id, amzn.id)

        symbols = [h.symbol for h in holding_service.list_portfolio_holdings(OWNER, portfolio.id)]

        assert symbols == ["AAPL", "AMZN", "ZM"]

    def test_delete_holding_removes_transactions(self, holding_service, tx_service, holding):
        tx_service.create_transaction(OWNER, holding.id, "Buy", 10, "180")
        tx_service.create_transaction(OWNER, holding.id, "Sell", 2, "190")

        assert holding_service.delete_holding(OWNER, holding.id) is True

        assert SqlPositionStore().load_ledger(holding.id) == []
        with pytest.raises(NotFound):
            holding_service.get_holding(OWNER, holding.id)

    def test_stranger_cannot_delete(self, holding_service, holding):
        with pytest.raises(NotAuthorized):
            holding_service.delete_holding(STRANGER, holding.id)
        assert holding_service.get_holding(OWNER, holding.id).holding_id == holding.id

"""Tests for the SQL position store."""

from datetime import date
from decimal import Decimal

import pytest

from conftest import OWNER
from errors import NotFound, PersistenceConflict
from models import Transaction, TransactionType
from repositories.holding_repository import HoldingRepository
from repositories.position_store import SqlPositionStore

D = Decimal


def make_transaction(holding_id, shares="1", price="10", tx_type=TransactionType.BUY, day=date(2024, 1, 1)):
    shares, price = D(shares), D(price)
    return Transaction(
        holding_id=holding_id,
        transaction_type=tx_type,
        shares=shares,
        price_per_share=price,
        fees=D("0"),
        total_amount=shares * price,
        transaction_date=day,
    )


class TestSaveHoldingAndTransaction:
    """Both rows are written together, guarded by the holding version."""

    def test_insert_bumps_version(self, settings, holding):
        store = SqlPositionStore()
        current = store.load_holding_for_update(holding.id)
        current.total_shares = D("1")
        current.average_cost = D("10")

        saved, tx = store.save_holding_and_transaction(current, make_transaction(holding.id))

        assert tx.id is not None
        assert saved.version == 2
        assert saved.total_shares == D("1")

    def test_stale_version_conflicts(self, settings, holding):
        """A holding read before someone else's write cannot be saved."""
        store = SqlPositionStore()
        first = store.load_holding_for_update(holding.id)
        second = store.load_holding_for_update(holding.id)

        first.total_shares, first.average_cost = D("1"), D("10")
        store.save_holding_and_transaction(first, make_transaction(holding.id))

        second.total_shares, second.average_cost = D("2"), D("10")
        with pytest.raises(PersistenceConflict) as exc_info:
            store.save_holding_and_transaction(second, make_transaction(holding.id, shares="2"))

        assert exc_info.value.expected_version == 1
        assert store.load_holding_for_update(holding.id).total_shares == D("1")
        assert len(store.load_ledger(holding.id)) == 1

    def test_replace_missing_transaction(self, settings, holding):
        store = SqlPositionStore()
        current = store.load_holding_for_update(holding.id)
        ghost = make_transaction(holding.id)
        ghost.id = 12345

        with pytest.raises(NotFound):
            store.save_holding_and_transaction(current, ghost)
        assert store.load_holding_for_update(holding.id).version == 1

    def test_values_quantized_on_write(self, settings, holding):
        store = SqlPositionStore()
        current = store.load_holding_for_update(holding.id)
        current.total_shares = D("1.23456789")
        current.average_cost = D("10.123456789012")

        saved, tx = store.save_holding_and_transaction(current, make_transaction(holding.id, price="10.12345"))

        assert saved.total_shares == D("1.234568")
        assert saved.average_cost == D("10.1234567890")
        assert tx.price_per_share == D("10.1234")


class TestDeleteAndSave:

    def test_delete_transaction(self, settings, holding):
        store = SqlPositionStore()
        current = store.load_holding_for_update(holding.id)
        current.total_shares, current.average_cost = D("1"), D("10")
        _, tx = store.save_holding_and_transaction(current, make_transaction(holding.id))

        current = store.load_holding_for_update(holding.id)
        current.total_shares, current.average_cost = D("0"), None
        saved = store.delete_transaction_and_save_holding(tx, current)

        assert saved.total_shares == D("0")
        assert saved.average_cost is None
        assert saved.version == 3
        assert store.load_transaction(tx.id) is None

    def test_delete_with_stale_holding_keeps_transaction(self, settings, holding):
        store = SqlPositionStore()
        stale = store.load_holding_for_update(holding.id)
        current = store.load_holding_for_update(holding.id)
        current.total_shares, current.average_cost = D("1"), D("10")
        _, tx = store.save_holding_and_transaction(current, make_transaction(holding.id))

        with pytest.raises(PersistenceConflict):
            store.delete_transaction_and_save_holding(tx, stale)
        assert store.load_transaction(tx.id) is not None


class TestReads:

    def test_ledger_order(self, settings, holding):
        """Ledger is ordered by trade date, then creation order."""
        store = SqlPositionStore()
        ids = []
        for day in (date(2024, 3, 1), date(2024, 1, 1), date(2024, 3, 1)):
            current = store.load_holding_for_update(holding.id)
            _, tx = store.save_holding_and_transaction(current, make_transaction(holding.id, day=day))
            ids.append(tx.id)

        assert [tx.id for tx in store.load_ledger(holding.id)] == [ids[1], ids[0], ids[2]]
        assert [tx.id for tx in store.list_transactions(holding_id=holding.id)] == [ids[2], ids[0], ids[1]]

    def test_missing_rows(self, settings):
        store = SqlPositionStore()
        assert store.load_holding_for_update(1) is None
        assert store.load_transaction(1) is None
        assert store.list_transactions(portfolio_id=1) == []

    def test_opening_position_recorded(self, holding_service, portfolio, security):
        holding = holding_service.open_holding(OWNER, portfolio.id, security.id, "10", "180")
        stored = HoldingRepository.get_by_id(holding.id)
        assert stored.opening_shares == D("10")
        assert stored.opening_average_cost == D("180")

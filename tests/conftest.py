"""Shared fixtures: a throwaway SQLite ledger per test."""

from decimal import Decimal

import pytest

from config import reload_settings
from db_engine import dispose_engine, init_db
from services.holding_service import HoldingService
from services.transaction_service import TransactionService

OWNER = "user-owner"
STRANGER = "user-stranger"

COST_TOLERANCE = Decimal("0.000001")


@pytest.fixture
def settings(tmp_path, monkeypatch):
    """Point the engine at a fresh database file and create the tables."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'ledger.db'}")
    monkeypatch.setenv("CONFLICT_RETRY_WAIT_MIN", "0")
    monkeypatch.setenv("CONFLICT_RETRY_WAIT_MAX", "0")
    monkeypatch.setenv("VALUATION_ENABLED", "false")
    dispose_engine()
    current = reload_settings()
    init_db()
    yield current
    dispose_engine()


@pytest.fixture
def replay_settings(settings):
    return settings.model_copy(update={"position_recompute_mode": "replay"})


@pytest.fixture
def holding_service(settings):
    return HoldingService(settings=settings)


@pytest.fixture
def tx_service(settings):
    return TransactionService(settings=settings)


@pytest.fixture
def portfolio(holding_service):
    return holding_service.create_portfolio(OWNER, "Main", "Long-term account")


@pytest.fixture
def security(holding_service):
    return holding_service.create_security("AAPL", "Apple Inc.")


@pytest.fixture
def holding(holding_service, portfolio, security):
    """An empty holding owned by OWNER."""
    return holding_service.open_holding(OWNER, portfolio.id, security.id)


def cost_approx(expected) -> object:
    """Average costs are stored at 10 decimals; compare with a small tolerance."""
    return pytest.approx(Decimal(str(expected)), abs=COST_TOLERANCE)

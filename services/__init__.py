"""
Services package for Portfolio Ledger.
Provides the position algebra and the business logic around it,
separated from the data layer.
"""

from services.common import normalize_symbol, infer_market_type, currency_for_market
from services.position_algebra import (
    PositionState,
    TransactionEffect,
    apply,
    reverse,
    replay_position,
    build_effect,
)
from services.ownership import OwnershipGuard, PortfolioOwnershipGuard, FunctionGuard, as_guard
from services.market_data import MarketDataService, StockQuote
from services.valuation import ValuationEnricher, HoldingValuation
from services.transaction_service import TransactionService, ReconcileReport
from services.holding_service import HoldingService
from services.portfolio import PortfolioService, PortfolioSummary

__all__ = [
    # Common utilities
    'normalize_symbol',
    'infer_market_type',
    'currency_for_market',
    # Position algebra
    'PositionState',
    'TransactionEffect',
    'apply',
    'reverse',
    'replay_position',
    'build_effect',
    # Authorization
    'OwnershipGuard',
    'PortfolioOwnershipGuard',
    'FunctionGuard',
    'as_guard',
    # Services
    'MarketDataService',
    'StockQuote',
    'ValuationEnricher',
    'HoldingValuation',
    'TransactionService',
    'ReconcileReport',
    'HoldingService',
    'PortfolioService',
    'PortfolioSummary',
]

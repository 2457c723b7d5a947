"""
Repositories package for Portfolio Ledger.
Provides data access layer for all database operations.
"""

from repositories.security_repository import SecurityRepository
from repositories.portfolio_repository import PortfolioRepository
from repositories.holding_repository import HoldingRepository
from repositories.transaction_repository import TransactionRepository
from repositories.position_store import PositionStore, SqlPositionStore

__all__ = [
    'SecurityRepository',
    'PortfolioRepository',
    'HoldingRepository',
    'TransactionRepository',
    'PositionStore',
    'SqlPositionStore',
]

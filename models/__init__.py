"""
Database models for Portfolio Ledger.
All SQLModel table definitions are centralized here.
"""

from models.portfolio import Portfolio
from models.security import Security
from models.holding import Holding
from models.transaction import Transaction, TransactionType

__all__ = [
    'Portfolio',
    'Security',
    'Holding',
    'Transaction',
    'TransactionType',
]

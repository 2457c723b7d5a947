"""
Transaction model - a buy/sell event affecting a holding.
"""

from enum import Enum
from typing import Optional
from decimal import Decimal
from datetime import date, datetime, timezone
from sqlmodel import SQLModel, Field

from models.types import shares_column, money_column


class TransactionType(str, Enum):
    """Kind of trade recorded against a holding."""
    BUY = "Buy"
    SELL = "Sell"


class Transaction(SQLModel, table=True):
    """Represents a buy/sell transaction for a holding."""
    id: Optional[int] = Field(default=None, primary_key=True)
    holding_id: int = Field(foreign_key="holding.id", index=True)
    transaction_type: TransactionType
    shares: Decimal = Field(sa_column=shares_column(nullable=False))
    price_per_share: Decimal = Field(sa_column=money_column(nullable=False))
    fees: Decimal = Field(default=Decimal("0"), sa_column=money_column(nullable=False))
    total_amount: Decimal = Field(sa_column=money_column(nullable=False))  # shares * price + fees
    transaction_date: date = Field(index=True)
    notes: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

"""
Holding model - the aggregate position in one security within one portfolio.
total_shares and average_cost are a materialized view over the transaction log.
"""

from typing import Optional
from decimal import Decimal
from datetime import datetime, timezone
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field

from models.types import shares_column, cost_column


class Holding(SQLModel, table=True):
    """
    Current position (quantity + weighted-average cost) in a security.

    average_cost is None exactly when total_shares is zero. The opening_*
    columns record the position the holding was opened with; replaying the
    transaction log starts from them. version is bumped on every write and
    guards the row against lost updates.
    """
    __table_args__ = (
        UniqueConstraint("portfolio_id", "security_id", name="uq_holding_portfolio_security"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    portfolio_id: int = Field(foreign_key="portfolio.id", index=True)
    security_id: int = Field(foreign_key="security.id")
    total_shares: Decimal = Field(
        default=Decimal("0"), sa_column=shares_column(nullable=False)
    )
    average_cost: Optional[Decimal] = Field(
        default=None, sa_column=cost_column(nullable=True)
    )
    opening_shares: Decimal = Field(
        default=Decimal("0"), sa_column=shares_column(nullable=False)
    )
    opening_average_cost: Optional[Decimal] = Field(
        default=None, sa_column=cost_column(nullable=True)
    )
    version: int = Field(default=1)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

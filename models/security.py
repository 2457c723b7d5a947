"""
Security model - a tradable instrument that holdings refer to.
"""

from typing import Optional
from sqlmodel import SQLModel, Field


class Security(SQLModel, table=True):
    """Represents a stock/ETF that can be held in a portfolio."""
    id: Optional[int] = Field(default=None, primary_key=True)
    symbol: str = Field(index=True, unique=True, max_length=20)  # e.g., "AAPL", "0700.HK"
    name: str = Field(max_length=200)
    security_type: str = Field(default="Stock", max_length=50)  # "Stock", "ETF", ...
    market_type: str = Field(default="US", max_length=5)  # "US", "HK", "CN", "AU"

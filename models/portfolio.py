"""
Portfolio model - a named collection of holdings owned by one user.
"""

from typing import Optional
from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class Portfolio(SQLModel, table=True):
    """Represents a user's portfolio."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=64)  # Opaque subject from the auth layer
    name: str = Field(max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

"""
Fixed-point decimal column types.

Share quantities use numeric(18,6), prices and fees numeric(18,4) and the
running average cost numeric(28,10). SQLite has no native decimal, so there
the value is stored as its canonical string and never passes through a float.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import Column, Numeric, String
from sqlalchemy.types import TypeDecorator

SHARES_SCALE = 6
MONEY_SCALE = 4
COST_SCALE = 10


class FixedNumeric(TypeDecorator):
    """Decimal column quantized to a fixed scale on write."""

    impl = Numeric
    cache_ok = True

    def __init__(self, precision: int, scale: int):
        super().__init__(precision=precision, scale=scale, asdecimal=True)
        self.precision = precision
        self.scale = scale
        self._quantum = Decimal(1).scaleb(-scale)

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(self.precision + 2))
        return dialect.type_descriptor(Numeric(self.precision, self.scale, asdecimal=True))

    def process_bind_param(self, value, dialect) -> Optional[object]:
        if value is None:
            return None
        quantized = Decimal(value).quantize(self._quantum)
        if dialect.name == "sqlite":
            return str(quantized)
        return quantized

    def process_result_value(self, value, dialect) -> Optional[Decimal]:
        if value is None:
            return None
        return Decimal(value)


def shares_column(**kwargs) -> Column:
    """numeric(18,6) column for share quantities."""
    return Column(FixedNumeric(18, SHARES_SCALE), **kwargs)


def money_column(**kwargs) -> Column:
    """numeric(18,4) column for prices, fees and amounts."""
    return Column(FixedNumeric(18, MONEY_SCALE), **kwargs)


def cost_column(**kwargs) -> Column:
    """numeric(28,10) column for a running average cost per share."""
    return Column(FixedNumeric(28, COST_SCALE), **kwargs)

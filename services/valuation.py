"""
Valuation enricher - decorates holdings with market value for display.

Nothing here feeds back into the ledger. A missing or failing quote leaves
the valuation fields empty; it never fails the request.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Optional

from models import Holding, Security
from services.market_data import MarketDataService

logger = logging.getLogger(__name__)

# (symbol, market_type) -> price or None
QuoteProvider = Callable[[str, str], Optional[Decimal]]

CENT = Decimal("0.01")


@dataclass
class HoldingValuation:
    """A holding as shown to the user, with market valuation when available."""
    holding_id: int
    portfolio_id: int
    security_id: int
    symbol: str
    security_name: str
    security_type: str
    total_shares: Decimal
    average_cost: Optional[Decimal]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    current_price: Optional[Decimal] = None
    current_value: Optional[Decimal] = None
    total_cost: Optional[Decimal] = None
    unrealized_gain_loss: Optional[Decimal] = None
    unrealized_gain_loss_percent: Optional[Decimal] = None

    def to_dict(self) -> Dict:
        return asdict(self)


def _round(value: Optional[Decimal]) -> Optional[Decimal]:
    return None if value is None else value.quantize(CENT, rounding=ROUND_HALF_UP)


class ValuationEnricher:
    """
    Adds current price, value and unrealized gain/loss to holdings.

    Args:
        quote_provider: Callable (symbol, market_type) -> Decimal price or None;
            defaults to MarketDataService.get_current_price
        enabled: When False holdings are returned without quotes
    """

    def __init__(self, quote_provider: Optional[QuoteProvider] = None, enabled: bool = True):
        self.quote_provider = quote_provider or MarketDataService.get_current_price
        self.enabled = enabled

    def enrich(self, holding: Holding, security: Security) -> HoldingValuation:
        valuation = HoldingValuation(
            holding_id=holding.id,
            portfolio_id=holding.portfolio_id,
            security_id=holding.security_id,
            symbol=security.symbol,
            security_name=security.name,
            security_type=security.security_type,
            total_shares=holding.total_shares,
            average_cost=holding.average_cost,
            created_at=holding.created_at,
            updated_at=holding.updated_at
        )
        if not self.enabled:
            return valuation

        try:
            price = self.quote_provider(security.symbol, security.market_type)
        except Exception as e:
            logger.warning(f"Failed to fetch current price for {security.symbol}: {e}")
            return valuation

        if price is None:
            logger.warning(f"No current price for {security.symbol}")
            return valuation

        price = Decimal(str(price))
        current_value = price * holding.total_shares
        valuation.current_price = _round(price)
        valuation.current_value = _round(current_value)

        if holding.average_cost is not None:
            total_cost = holding.average_cost * holding.total_shares
            gain_loss = current_value - total_cost
            percent = gain_loss / total_cost * 100 if total_cost != 0 else Decimal("0")
            valuation.total_cost = _round(total_cost)
            valuation.unrealized_gain_loss = _round(gain_loss)
            valuation.unrealized_gain_loss_percent = _round(percent)

        return valuation

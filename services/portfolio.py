"""
Portfolio service for portfolio-level totals and position history.
Totals are built from valued holdings; history replays a holding's
transaction log and returns it as a pandas DataFrame.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

import pandas as pd

from services.holding_service import HoldingService
from services.position_algebra import PositionState, TransactionEffect, apply
from services.transaction_service import TransactionService
from services.valuation import HoldingValuation

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

HISTORY_COLUMNS = [
    'transaction_id',
    'transaction_date',
    'transaction_type',
    'shares',
    'price_per_share',
    'fees',
    'total_shares',
    'average_cost',
    'cost_basis',
]


@dataclass
class PortfolioSummary:
    """Totals across the holdings of one portfolio."""
    portfolio_id: int
    holdings: List[HoldingValuation] = field(default_factory=list)
    total_cost: Decimal = Decimal("0")
    total_value: Decimal = Decimal("0")
    unrealized_gain_loss: Decimal = Decimal("0")
    unrealized_gain_loss_percent: Decimal = Decimal("0")
    priced_holdings: int = 0

    @property
    def fully_priced(self) -> bool:
        """True when every holding with shares got a quote."""
        return self.priced_holdings == sum(1 for h in self.holdings if h.total_shares > 0)


class PortfolioService:
    """
    Service for portfolio calculations.

    Args:
        holding_service: HoldingService used for valued holdings
        transaction_service: TransactionService used to read ledgers
    """

    def __init__(
        self,
        holding_service: Optional[HoldingService] = None,
        transaction_service: Optional[TransactionService] = None
    ):
        self.holding_service = holding_service or HoldingService()
        self.transaction_service = transaction_service or TransactionService()

    def summarize(self, user_id: str, portfolio_id: int) -> PortfolioSummary:
        """
        Calculate portfolio totals.

        Only holdings that could be priced count towards value and gain/loss;
        total_cost covers every holding.
        """
        holdings = self.holding_service.list_portfolio_holdings(user_id, portfolio_id)
        summary = PortfolioSummary(portfolio_id=portfolio_id, holdings=holdings)

        priced_cost = Decimal("0")
        for h in holdings:
            if h.total_cost is not None:
                summary.total_cost += h.total_cost
            if h.current_value is None:
                continue
            summary.priced_holdings += 1 if h.total_shares > 0 else 0
            summary.total_value += h.current_value
            if h.total_cost is not None:
                priced_cost += h.total_cost
                summary.unrealized_gain_loss += h.unrealized_gain_loss

        if priced_cost != 0:
            summary.unrealized_gain_loss_percent = (
                summary.unrealized_gain_loss / priced_cost * 100
            ).quantize(CENT, rounding=ROUND_HALF_UP)

        logger.debug(
            f"Portfolio {portfolio_id}: {len(holdings)} holdings, value {summary.total_value}, "
            f"cost {summary.total_cost}"
        )
        return summary

    def holdings_frame(self, user_id: str, portfolio_id: int) -> pd.DataFrame:
        """Valued holdings of a portfolio as a DataFrame, one row per holding."""
        holdings = self.holding_service.list_portfolio_holdings(user_id, portfolio_id)
        if not holdings:
            return pd.DataFrame(columns=list(HoldingValuation.__dataclass_fields__))
        return pd.DataFrame([h.to_dict() for h in holdings])

    def position_history(self, user_id: str, holding_id: int) -> pd.DataFrame:
        """
        Replay a holding's transactions and record the position after each.

        The first row (transaction_id None) is the opening position. Values
        are Decimal (object dtype) so nothing passes through floats.

        Returns:
            DataFrame with HISTORY_COLUMNS
        """
        holding, ledger = self.transaction_service.get_ledger(user_id, holding_id)

        state = PositionState.opening_of(holding)
        rows = [self._history_row(None, state)]
        for tx in ledger:
            state = apply(state, TransactionEffect.from_transaction(tx))
            rows.append(self._history_row(tx, state))

        return pd.DataFrame(rows, columns=HISTORY_COLUMNS)

    @staticmethod
    def _history_row(tx, state: PositionState) -> dict:
        return {
            'transaction_id': tx.id if tx is not None else None,
            'transaction_date': tx.transaction_date if tx is not None else None,
            'transaction_type': tx.transaction_type.value if tx is not None else None,
            'shares': tx.shares if tx is not None else None,
            'price_per_share': tx.price_per_share if tx is not None else None,
            'fees': tx.fees if tx is not None else None,
            'total_shares': state.total_shares,
            'average_cost': state.average_cost,
            'cost_basis': state.cost_basis,
        }

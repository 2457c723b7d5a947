"""
Holding service - portfolios, securities and holdings around the ledger.

Positions only change through TransactionService; this service opens and
closes holdings and presents them with their market valuation.
"""

import logging
from decimal import Decimal
from typing import Callable, List, Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from config import Settings, get_settings
from db_engine import get_session
from errors import (
    DuplicateHolding,
    DuplicatePortfolio,
    DuplicateSecurity,
    InvalidOpeningPosition,
    NotAuthorized,
    NotFound,
    StorageFailure,
)
from models import Holding, Portfolio, Security
from repositories.holding_repository import HoldingRepository
from repositories.portfolio_repository import PortfolioRepository
from repositories.security_repository import SecurityRepository
from services.common import infer_market_type
from services.ownership import OwnershipGuard, as_guard
from services.position_algebra import Number, PositionState, to_decimal
from services.valuation import HoldingValuation, ValuationEnricher

logger = logging.getLogger(__name__)


class HoldingService:
    """
    Service for portfolio, security and holding management.

    Args:
        guard: OwnershipGuard or callable (user_id, portfolio_id) -> bool
        enricher: ValuationEnricher used to present holdings
        settings: Settings override, mostly for tests
    """

    def __init__(
        self,
        guard: Union[OwnershipGuard, Callable[[str, int], bool], None] = None,
        enricher: Optional[ValuationEnricher] = None,
        settings: Optional[Settings] = None
    ):
        self.settings = settings if settings is not None else get_settings()
        self.guard = as_guard(guard)
        self.enricher = enricher if enricher is not None else ValuationEnricher(
            enabled=self.settings.valuation_enabled
        )

    def create_portfolio(self, user_id: str, name: str, description: Optional[str] = None) -> Portfolio:
        """
        Create a portfolio owned by user_id.

        Raises:
            DuplicatePortfolio: the user already has a portfolio with this name
        """
        name = self._check_portfolio_name(user_id, name)
        try:
            portfolio = PortfolioRepository.add(user_id, name, description)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create portfolio {name!r}: {e}")
            raise StorageFailure("Could not create portfolio") from e
        logger.info(f"Created portfolio {portfolio.id} for user {user_id}")
        return portfolio

    def list_portfolios(self, user_id: str) -> List[Portfolio]:
        """All portfolios owned by user_id."""
        return PortfolioRepository.get_by_user(user_id)

    def update_portfolio(
        self,
        user_id: str,
        portfolio_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> Portfolio:
        """Rename a portfolio or change its description. None keeps the stored value."""
        self._authorize(user_id, portfolio_id)
        if name is not None:
            name = self._check_portfolio_name(user_id, name, portfolio_id)
        try:
            portfolio = PortfolioRepository.update(portfolio_id, name, description)
        except SQLAlchemyError as e:
            logger.error(f"Failed to update portfolio {portfolio_id}: {e}")
            raise StorageFailure(f"Could not update portfolio {portfolio_id}") from e
        if portfolio is None:
            raise NotFound("Portfolio", portfolio_id)
        logger.info(f"Updated portfolio {portfolio_id}")
        return portfolio

    def delete_portfolio(self, user_id: str, portfolio_id: int) -> bool:
        """Delete a portfolio together with its holdings and their transactions."""
        self._authorize(user_id, portfolio_id)
        try:
            deleted = PortfolioRepository.delete(portfolio_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete portfolio {portfolio_id}: {e}")
            raise StorageFailure(f"Could not delete portfolio {portfolio_id}") from e
        if deleted:
            logger.info(f"Deleted portfolio {portfolio_id} of user {user_id}")
        return deleted

    def create_security(
        self,
        symbol: str,
        name: str,
        security_type: str = "Stock",
        market_type: Optional[str] = None
    ) -> Security:
        """
        Register a tradable security.

        Args:
            symbol: Ticker symbol, stored upper-case
            name: Display name
            security_type: "Stock", "ETF", ...
            market_type: US, HK, CN or AU; inferred from the symbol when omitted

        Raises:
            DuplicateSecurity: symbol already registered
        """
        symbol = symbol.strip().upper()
        if not symbol:
            raise ValueError("Symbol must not be empty")
        if SecurityRepository.get_by_symbol(symbol) is not None:
            raise DuplicateSecurity(f"Security {symbol} already exists")

        try:
            security = SecurityRepository.add(
                symbol, name, security_type, market_type or infer_market_type(symbol)
            )
        except IntegrityError as e:
            raise DuplicateSecurity(f"Security {symbol} already exists") from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to create security {symbol}: {e}")
            raise StorageFailure("Could not create security") from e
        logger.info(f"Created security {security.id} ({symbol})")
        return security

    def open_holding(
        self,
        user_id: str,
        portfolio_id: int,
        security_id: int,
        total_shares: Number = Decimal("0"),
        average_cost: Optional[Number] = None
    ) -> Holding:
        """
        Open a holding of a security in a portfolio.

        The opening position is the baseline the transaction log is replayed
        from; later changes must go through transactions.

        Raises:
            NotAuthorized: caller does not own the portfolio
            NotFound: security does not exist
            DuplicateHolding: portfolio already holds the security
            InvalidOpeningPosition: negative shares, negative cost, or a cost
                that is present without shares (or missing with shares)
        """
        self._authorize(user_id, portfolio_id)

        opening = PositionState(
            total_shares=to_decimal(total_shares, "total_shares"),
            average_cost=None if average_cost is None else to_decimal(average_cost, "average_cost")
        ).quantized()
        if not opening.is_consistent or (opening.average_cost is not None and opening.average_cost < 0):
            raise InvalidOpeningPosition(
                f"Opening position of {opening.total_shares} shares at cost "
                f"{opening.average_cost} is invalid: cost is required exactly when shares are held."
            )

        security = SecurityRepository.get_by_id(security_id)
        if security is None:
            raise NotFound("Security", security_id)
        if HoldingRepository.get_by_portfolio_and_security(portfolio_id, security_id) is not None:
            raise DuplicateHolding(f"Holding for security {security.symbol} already exists in this portfolio")

        try:
            holding = HoldingRepository.add(
                portfolio_id, security_id, opening.total_shares, opening.average_cost
            )
        except IntegrityError as e:
            raise DuplicateHolding(
                f"Holding for security {security.symbol} already exists in this portfolio"
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to open holding of {security.symbol} in portfolio {portfolio_id}: {e}")
            raise StorageFailure("Could not open holding") from e

        logger.info(
            f"Created holding {holding.id} for security {security.symbol} in portfolio {portfolio_id}"
        )
        return holding

    def get_holding(self, user_id: str, holding_id: int) -> HoldingValuation:
        """Fetch one holding with its valuation."""
        holding = self._load_owned_holding(user_id, holding_id)
        security = SecurityRepository.get_by_id(holding.security_id)
        return self.enricher.enrich(holding, security)

    def list_portfolio_holdings(self, user_id: str, portfolio_id: int) -> List[HoldingValuation]:
        """All holdings of a portfolio with their valuation, ordered by symbol."""
        self._authorize(user_id, portfolio_id)
        with get_session() as session:
            holdings = HoldingRepository.get_by_portfolio(portfolio_id, session=session)
            securities = {
                h.security_id: SecurityRepository.get_by_id(h.security_id, session=session)
                for h in holdings
            }
        return [self.enricher.enrich(h, securities[h.security_id]) for h in holdings]

    def delete_holding(self, user_id: str, holding_id: int) -> bool:
        """Delete a holding together with its transactions."""
        holding = self._load_owned_holding(user_id, holding_id)
        try:
            deleted = HoldingRepository.delete(holding.id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete holding {holding_id}: {e}")
            raise StorageFailure(f"Could not delete holding {holding_id}") from e
        if deleted:
            logger.info(f"Deleted holding {holding_id} from portfolio {holding.portfolio_id}")
        return deleted

    def _authorize(self, user_id: str, portfolio_id: int) -> None:
        if not self.guard.authorize(user_id, portfolio_id):
            logger.warning(f"Portfolio {portfolio_id} not found for user {user_id}")
            raise NotAuthorized(user_id, portfolio_id)

    def _check_portfolio_name(self, user_id: str, name: str, portfolio_id: Optional[int] = None) -> str:
        name = name.strip()
        if not name:
            raise ValueError("Portfolio name must not be empty")
        existing = PortfolioRepository.get_by_user_and_name(user_id, name)
        if existing is not None and existing.id != portfolio_id:
            logger.warning(f"User {user_id} already has a portfolio named {name!r}")
            raise DuplicatePortfolio(f"You already have a portfolio named '{name}'")
        return name

    def _load_owned_holding(self, user_id: str, holding_id: int) -> Holding:
        holding = HoldingRepository.get_by_id(holding_id)
        if holding is None:
            raise NotFound("Holding", holding_id)
        self._authorize(user_id, holding.portfolio_id)
        return holding

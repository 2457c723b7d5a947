"""
Ownership guard - decides whether a user may touch a portfolio's data.

The orchestrator asks the guard before it reads any transaction data or
mutates anything. Any object with authorize(user_id, portfolio_id) -> bool
will do; plain callables are wrapped with as_guard().
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Union

from sqlalchemy.exc import SQLAlchemyError

from errors import StorageFailure
from repositories.portfolio_repository import PortfolioRepository

logger = logging.getLogger(__name__)


class OwnershipGuard(ABC):
    """Authorization port consumed by the transaction orchestrator."""

    @abstractmethod
    def authorize(self, user_id: str, portfolio_id: int) -> bool:
        """Return True if user_id owns portfolio_id."""


class PortfolioOwnershipGuard(OwnershipGuard):
    """Grants access when the portfolio row names the user as its owner."""

    def authorize(self, user_id: str, portfolio_id: int) -> bool:
        try:
            return PortfolioRepository.get_by_id_and_user(portfolio_id, user_id) is not None
        except SQLAlchemyError as e:
            logger.error(f"Ownership lookup failed for portfolio {portfolio_id}: {e}")
            raise StorageFailure(f"Could not check ownership of portfolio {portfolio_id}") from e


class FunctionGuard(OwnershipGuard):
    """Adapts a plain callable to the OwnershipGuard interface."""

    def __init__(self, fn: Callable[[str, int], bool]):
        self._fn = fn

    def authorize(self, user_id: str, portfolio_id: int) -> bool:
        return bool(self._fn(user_id, portfolio_id))


def as_guard(guard: Union[OwnershipGuard, Callable[[str, int], bool], None]) -> OwnershipGuard:
    """Return guard as an OwnershipGuard, defaulting to PortfolioOwnershipGuard."""
    if guard is None:
        return PortfolioOwnershipGuard()
    if isinstance(guard, OwnershipGuard):
        return guard
    if callable(guard):
        return FunctionGuard(guard)
    raise TypeError(f"Unsupported ownership guard: {guard!r}")

"""
Error taxonomy for the position-reconciliation engine.

Client errors (bad input, over-sell) also subclass ValueError so callers that
already map ValueError to a 400 keep working. Every error carries the status
an HTTP layer should answer with and a message safe to show to the user.
"""

from decimal import Decimal
from typing import Optional


class LedgerError(Exception):
    """Base class for all engine errors."""

    http_status = 500
    retryable = False

    @property
    def public_message(self) -> str:
        """Message safe to return to a client."""
        return str(self)


class InvalidTransactionType(LedgerError, ValueError):
    """Transaction type is not Buy or Sell."""

    http_status = 400

    def __init__(self, value: object = None):
        self.value = value
        super().__init__("Transaction type must be Buy or Sell.")


class InvalidTransactionAmount(LedgerError, ValueError):
    """Shares, price or fees outside their allowed range."""

    http_status = 400

    def __init__(self, field: str, value: object, requirement: str):
        self.field = field
        self.value = value
        super().__init__(f"{field} must be {requirement}, got {value}.")


class InsufficientShares(LedgerError, ValueError):
    """A sell asks for more shares than the holding has."""

    http_status = 400

    def __init__(self, requested: Decimal, available: Decimal):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Cannot sell {_fmt(requested)} shares. Only {_fmt(available)} shares available."
        )


class InvalidOpeningPosition(LedgerError, ValueError):
    """An opening position breaks the null-cost-iff-zero-shares rule."""

    http_status = 400


class DuplicateHolding(LedgerError, ValueError):
    """The portfolio already holds this security."""

    http_status = 409


class DuplicateSecurity(LedgerError, ValueError):
    """A security with this symbol already exists."""

    http_status = 409


class DuplicatePortfolio(LedgerError, ValueError):
    """The user already has a portfolio with this name."""

    http_status = 409


class NotFound(LedgerError):
    """Holding, transaction, portfolio or security does not exist."""

    http_status = 404

    def __init__(self, kind: str, ident: object):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} {ident} not found")


class NotAuthorized(LedgerError):
    """
    The user does not own the portfolio.

    Answered as 404 so that the existence of another user's data never leaks.
    """

    http_status = 404

    def __init__(self, user_id: object, portfolio_id: object):
        self.user_id = user_id
        self.portfolio_id = portfolio_id
        super().__init__(f"User {user_id} does not have access to portfolio {portfolio_id}")

    @property
    def public_message(self) -> str:
        return "Not found"


class PersistenceConflict(LedgerError):
    """The holding row changed between read and write."""

    http_status = 503
    retryable = True

    def __init__(self, holding_id: object, expected_version: Optional[int] = None):
        self.holding_id = holding_id
        self.expected_version = expected_version
        super().__init__(
            f"Holding {holding_id} was modified concurrently (expected version {expected_version})"
        )

    @property
    def public_message(self) -> str:
        return "The request could not be completed, please try again."


class StorageFailure(LedgerError):
    """Underlying database error."""

    http_status = 500

    @property
    def public_message(self) -> str:
        return "Internal storage error."


def _fmt(value: Decimal) -> str:
    """Render a quantity without trailing zeros (10.000000 -> 10)."""
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return format(value.normalize(), "f")

"""
Position algebra: pure functions folding buy/sell effects into a holding.

apply() adds one transaction's effect to a position and reverse() removes it
again. Both work on immutable PositionState values and never touch storage,
so the orchestrator can compute, check and only then persist.

Weighted-average cost accounting:
    buy:  avg' = (shares * avg + qty * price + fees) / (shares + qty)
    sell: avg' = avg, or None once the position is depleted to zero

reverse(apply(s, e), e) == s for every legal (s, e) except a sell that drove
the position to zero: apply() discarded the cost basis at that point and
reverse() has nothing to restore it from. replay_position() rebuilds a
position from its opening state and ordered log and is always exact.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Tuple, Union

from models import Holding, Transaction, TransactionType
from models.types import COST_SCALE, MONEY_SCALE, SHARES_SCALE
from errors import InsufficientShares, InvalidTransactionAmount, InvalidTransactionType

ZERO = Decimal("0")

SHARES_QUANTUM = Decimal(1).scaleb(-SHARES_SCALE)
MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_SCALE)
COST_QUANTUM = Decimal(1).scaleb(-COST_SCALE)

Number = Union[Decimal, int, str, float]


@dataclass(frozen=True)
class PositionState:
    """Quantity and weighted-average cost of a holding at one point in time."""
    total_shares: Decimal = ZERO
    average_cost: Optional[Decimal] = None

    @classmethod
    def from_holding(cls, holding: Holding) -> "PositionState":
        return cls(total_shares=holding.total_shares, average_cost=holding.average_cost)

    @classmethod
    def opening_of(cls, holding: Holding) -> "PositionState":
        """The position the holding was opened with (replay baseline)."""
        return cls(total_shares=holding.opening_shares, average_cost=holding.opening_average_cost)

    @property
    def is_consistent(self) -> bool:
        """True when shares are non-negative and cost is None iff shares are zero."""
        if self.total_shares < 0:
            return False
        return (self.average_cost is None) == (self.total_shares == 0)

    @property
    def cost_basis(self) -> Decimal:
        return self.total_shares * (self.average_cost or ZERO)

    def quantized(self) -> "PositionState":
        """Round to the precision the holding row stores."""
        return PositionState(
            total_shares=self.total_shares.quantize(SHARES_QUANTUM),
            average_cost=(
                None if self.average_cost is None
                else self.average_cost.quantize(COST_QUANTUM)
            ),
        )


@dataclass(frozen=True)
class TransactionEffect:
    """The part of a transaction that affects the position."""
    transaction_type: TransactionType
    shares: Decimal
    price_per_share: Decimal
    fees: Decimal = ZERO

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> "TransactionEffect":
        return cls(
            transaction_type=coerce_transaction_type(transaction.transaction_type),
            shares=transaction.shares,
            price_per_share=transaction.price_per_share,
            fees=transaction.fees,
        )

    @property
    def gross_amount(self) -> Decimal:
        """shares * price + fees; the cost added by a buy."""
        return self.shares * self.price_per_share + self.fees


def to_decimal(value: Number, field: str = "value") -> Decimal:
    """
    Convert user input to Decimal without passing through binary floats.

    Floats are converted through their shortest repr, so 0.1 becomes
    Decimal('0.1') rather than the exact binary expansion.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise InvalidTransactionAmount(field, value, "a number")
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except ArithmeticError:
            raise InvalidTransactionAmount(field, value, "a number")
    else:
        raise InvalidTransactionAmount(field, value, "a number")

    if not result.is_finite():
        raise InvalidTransactionAmount(field, value, "a finite number")
    return result


def coerce_transaction_type(value: object) -> TransactionType:
    """
    Parse a transaction type, accepting the enum or its name/value in any case.

    Raises:
        InvalidTransactionType: for anything other than Buy or Sell
    """
    if isinstance(value, TransactionType):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        for member in TransactionType:
            if normalized in (member.value.lower(), member.name.lower()):
                return member
    raise InvalidTransactionType(value)


def build_effect(
    transaction_type: object,
    shares: Number,
    price_per_share: Number,
    fees: Number = ZERO,
) -> TransactionEffect:
    """
    Validate raw input and build a TransactionEffect.

    Raises:
        InvalidTransactionType: type is not Buy or Sell
        InvalidTransactionAmount: shares <= 0, price <= 0 or fees < 0
    """
    tx_type = coerce_transaction_type(transaction_type)
    return TransactionEffect(tx_type, *validate_amounts(shares, price_per_share, fees))


def validate_amounts(
    shares: Number,
    price_per_share: Number,
    fees: Optional[Number] = ZERO,
) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Convert the quantities of a trade to the scale they are stored at and
    range-check the rounded values.

    Shares keep 6 decimals, price and fees 4. An amount that only looks
    positive before rounding (shares of 0.0000001) is rejected.

    Raises:
        InvalidTransactionAmount: shares <= 0, price <= 0 or fees < 0
    """
    raw_shares, raw_price = shares, price_per_share
    shares = to_decimal(shares, "shares").quantize(SHARES_QUANTUM)
    price_per_share = to_decimal(price_per_share, "price_per_share").quantize(MONEY_QUANTUM)
    fees = to_decimal(fees if fees is not None else ZERO, "fees").quantize(MONEY_QUANTUM)

    if shares <= 0:
        raise InvalidTransactionAmount("shares", raw_shares, f"at least {SHARES_QUANTUM}")
    if price_per_share <= 0:
        raise InvalidTransactionAmount("price_per_share", raw_price, f"at least {MONEY_QUANTUM}")
    if fees < 0:
        raise InvalidTransactionAmount("fees", fees, "0 or greater")
    if fees.is_zero():
        # -0.00001 rounds to -0.0000
        fees = abs(fees)
    return shares, price_per_share, fees


def check_sell(state: PositionState, effect: TransactionEffect) -> None:
    """Raise InsufficientShares if effect is a sell larger than the position."""
    if effect.transaction_type == TransactionType.SELL and effect.shares > state.total_shares:
        raise InsufficientShares(requested=effect.shares, available=state.total_shares)


def apply(state: PositionState, effect: TransactionEffect) -> PositionState:
    """
    Fold one transaction into a position.

    Args:
        state: Current position
        effect: Buy or sell to add

    Returns:
        New position

    Raises:
        InsufficientShares: sell larger than the current position
        InvalidTransactionType: effect type is not Buy or Sell
    """
    if effect.transaction_type == TransactionType.BUY:
        current_value = state.total_shares * (state.average_cost or ZERO)
        added_value = effect.gross_amount
        new_total = state.total_shares + effect.shares
        new_cost = (current_value + added_value) / new_total if new_total > 0 else ZERO
        return PositionState(total_shares=new_total, average_cost=new_cost)

    if effect.transaction_type == TransactionType.SELL:
        check_sell(state, effect)
        new_total = state.total_shares - effect.shares
        return PositionState(
            total_shares=new_total,
            average_cost=None if new_total == 0 else state.average_cost,
        )

    raise InvalidTransactionType(effect.transaction_type)


def reverse(state: PositionState, effect: TransactionEffect) -> PositionState:
    """
    Remove one previously applied transaction from a position.

    Reversing a buy takes its shares and gross cost back out of the basis.
    Reversing a sell only returns the shares; the cost basis is carried
    through unchanged, which leaves it None when the sell had depleted the
    position.

    Raises:
        InvalidTransactionType: effect type is not Buy or Sell
    """
    if effect.transaction_type == TransactionType.BUY:
        current_value = state.total_shares * (state.average_cost or ZERO)
        removed_value = effect.gross_amount
        new_total = state.total_shares - effect.shares
        new_cost = (current_value - removed_value) / new_total if new_total > 0 else None
        return PositionState(total_shares=new_total, average_cost=new_cost)

    if effect.transaction_type == TransactionType.SELL:
        return PositionState(
            total_shares=state.total_shares + effect.shares,
            average_cost=state.average_cost,
        )

    raise InvalidTransactionType(effect.transaction_type)


def replay_position(
    opening: PositionState,
    effects: Iterable[TransactionEffect],
) -> PositionState:
    """
    Rebuild a position by applying an ordered log to its opening state.

    Raises:
        InsufficientShares: some sell in the log exceeds the position at that point
    """
    state = opening
    for effect in effects:
        state = apply(state, effect)
    return state

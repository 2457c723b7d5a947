"""
Transaction service - creates, edits and removes trades and keeps the
holding they belong to consistent with them.

Every write follows the same path: validate the input, load the holding,
ask the ownership guard, compute the new position with the position algebra
and hand both rows to the PositionStore, which commits them together. A lost
race on the holding row surfaces as PersistenceConflict and the whole
read-compute-write cycle is retried.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Tuple, Union

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config import Settings, get_settings
from errors import (
    InsufficientShares,
    InvalidTransactionAmount,
    NotAuthorized,
    NotFound,
    PersistenceConflict,
)
from models import Holding, Transaction
from models.types import MONEY_SCALE
from repositories.position_store import PositionStore, SqlPositionStore
from services.ownership import OwnershipGuard, as_guard
from services.position_algebra import (
    Number,
    PositionState,
    TransactionEffect,
    apply,
    build_effect,
    replay_position,
    reverse,
    validate_amounts,
)

logger = logging.getLogger(__name__)

NOTES_MAX_LENGTH = 500

# Stored and replayed average cost may differ by rounding noise from
# incremental writes; anything larger is reported as drift.
DRIFT_TOLERANCE = Decimal("0.000001")


@dataclass
class ReconcileReport:
    """Result of comparing a holding against a replay of its transactions."""
    holding_id: int
    stored: PositionState
    replayed: PositionState
    drift: bool
    repaired: bool = False


class TransactionService:
    """
    Orchestrates transaction writes against holdings.

    Args:
        store: Persistence adapter (SqlPositionStore by default)
        guard: OwnershipGuard or callable (user_id, portfolio_id) -> bool
        settings: Settings override, mostly for tests
    """

    def __init__(
        self,
        store: Optional[PositionStore] = None,
        guard: Union[OwnershipGuard, Callable[[str, int], bool], None] = None,
        settings: Optional[Settings] = None
    ):
        self.store = store if store is not None else SqlPositionStore()
        self.guard = as_guard(guard)
        self.settings = settings if settings is not None else get_settings()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create_transaction(
        self,
        user_id: str,
        holding_id: int,
        transaction_type: object,
        shares: Number,
        price_per_share: Number,
        fees: Optional[Number] = None,
        transaction_date: Union[date, datetime, str, None] = None,
        notes: Optional[str] = None
    ) -> Transaction:
        """
        Record a buy or sell against a holding and update its position.

        Args:
            user_id: Caller's user identifier
            holding_id: Holding the trade belongs to
            transaction_type: "Buy" or "Sell" (or TransactionType)
            shares: Quantity traded, > 0
            price_per_share: Execution price, > 0
            fees: Commission, >= 0 (defaults to 0)
            transaction_date: Trade date (defaults to today)
            notes: Free text, at most 500 characters

        Returns:
            The persisted Transaction

        Raises:
            InvalidTransactionType, InvalidTransactionAmount: bad input
            NotFound: holding does not exist
            NotAuthorized: caller does not own the holding's portfolio
            InsufficientShares: sell exceeds the position
            PersistenceConflict: retries exhausted
            StorageFailure: database error
        """
        effect = build_effect(transaction_type, shares, price_per_share, fees)
        trade_date = _coerce_date(transaction_date)
        notes = _check_notes(notes)

        holding = self._load_holding(holding_id)
        self._authorize(user_id, holding.portfolio_id)

        def _attempt() -> Transaction:
            current = self._load_holding(holding_id)
            transaction = Transaction(
                holding_id=holding_id,
                transaction_type=effect.transaction_type,
                shares=effect.shares,
                price_per_share=effect.price_per_share,
                fees=effect.fees,
                total_amount=_money(effect.gross_amount),
                transaction_date=trade_date,
                notes=notes
            )

            if self.settings.uses_replay:
                ledger = self.store.load_ledger(holding_id) + [transaction]
                new_state = _replay(current, ledger)
            else:
                new_state = apply(PositionState.from_holding(current), effect)

            _set_position(current, new_state)
            _, saved = self.store.save_holding_and_transaction(current, transaction)
            return saved

        saved = self._with_retry(_attempt)
        logger.info(
            f"Created {saved.transaction_type.value} transaction {saved.id} "
            f"of {saved.shares} @ {saved.price_per_share} on holding {holding_id}"
        )
        return saved

    def update_transaction(
        self,
        user_id: str,
        transaction_id: int,
        shares: Optional[Number] = None,
        price_per_share: Optional[Number] = None,
        fees: Optional[Number] = None,
        transaction_date: Union[date, datetime, str, None] = None,
        notes: Optional[str] = None
    ) -> Transaction:
        """
        Edit a transaction and recompute its holding.

        The transaction type cannot change. Arguments left as None keep the
        stored value. The old effect is reversed, the edited effect is checked
        against the reversed position and applied.

        Returns:
            The updated Transaction

        Raises:
            Same as create_transaction, with NotFound for a missing transaction.
        """
        transaction = self._load_transaction(transaction_id)
        holding = self._load_holding(transaction.holding_id)
        self._authorize(user_id, holding.portfolio_id)

        new_shares, new_price, new_fees = validate_amounts(
            shares if shares is not None else transaction.shares,
            price_per_share if price_per_share is not None else transaction.price_per_share,
            fees if fees is not None else transaction.fees
        )
        new_date = (
            _coerce_date(transaction_date) if transaction_date is not None
            else transaction.transaction_date
        )
        new_notes = _check_notes(notes) if notes is not None else transaction.notes

        def _attempt() -> Transaction:
            stored = self._load_transaction(transaction_id)
            current = self._load_holding(stored.holding_id)
            old_effect = TransactionEffect.from_transaction(stored)
            new_effect = TransactionEffect(old_effect.transaction_type, new_shares, new_price, new_fees)

            stored.shares = new_shares
            stored.price_per_share = new_price
            stored.fees = new_fees
            stored.total_amount = _money(new_effect.gross_amount)
            stored.transaction_date = new_date
            stored.notes = new_notes

            if self.settings.uses_replay:
                ledger = [
                    stored if tx.id == stored.id else tx
                    for tx in self.store.load_ledger(current.id)
                ]
                new_state = _replay(current, ledger)
            else:
                without = self._reverse_or_rebuild(current, stored.id, old_effect)
                new_state = apply(without, new_effect)

            _set_position(current, new_state)
            _, saved = self.store.save_holding_and_transaction(current, stored)
            return saved

        saved = self._with_retry(_attempt)
        logger.info(
            f"Updated transaction {saved.id} to {saved.shares} @ {saved.price_per_share} "
            f"on holding {saved.holding_id}"
        )
        return saved

    def delete_transaction(self, user_id: str, transaction_id: int) -> Holding:
        """
        Remove a transaction and take its effect out of the holding.

        Returns:
            The holding as saved after the removal
        """
        transaction = self._load_transaction(transaction_id)
        holding = self._load_holding(transaction.holding_id)
        self._authorize(user_id, holding.portfolio_id)

        def _attempt() -> Holding:
            stored = self._load_transaction(transaction_id)
            current = self._load_holding(stored.holding_id)

            if self.settings.uses_replay:
                ledger = [tx for tx in self.store.load_ledger(current.id) if tx.id != stored.id]
                new_state = _replay(current, ledger)
            else:
                new_state = self._reverse_or_rebuild(
                    current, stored.id, TransactionEffect.from_transaction(stored)
                )

            _set_position(current, new_state)
            return self.store.delete_transaction_and_save_holding(stored, current)

        saved = self._with_retry(_attempt)
        logger.info(f"Deleted transaction {transaction_id} from holding {saved.id}")
        return saved

    def list_transactions(
        self,
        user_id: str,
        holding_id: Optional[int] = None,
        portfolio_id: Optional[int] = None
    ) -> List[Transaction]:
        """
        List the transactions of one holding or of a whole portfolio, newest first.

        Exactly one of holding_id and portfolio_id must be given.
        """
        if (holding_id is None) == (portfolio_id is None):
            raise ValueError("Pass exactly one of holding_id or portfolio_id")

        if holding_id is not None:
            holding = self._load_holding(holding_id)
            self._authorize(user_id, holding.portfolio_id)
            return self.store.list_transactions(holding_id=holding_id)

        self._authorize(user_id, portfolio_id)
        return self.store.list_transactions(portfolio_id=portfolio_id)

    def get_transaction(self, user_id: str, transaction_id: int) -> Transaction:
        """Fetch a single transaction the caller owns."""
        transaction = self._load_transaction(transaction_id)
        holding = self._load_holding(transaction.holding_id)
        self._authorize(user_id, holding.portfolio_id)
        return transaction

    def get_ledger(self, user_id: str, holding_id: int) -> Tuple[Holding, List[Transaction]]:
        """
        Fetch a holding and its transactions in replay order (oldest first).

        Returns:
            (holding, transactions)
        """
        holding = self._load_holding(holding_id)
        self._authorize(user_id, holding.portfolio_id)
        ledger = sorted(self.store.load_ledger(holding_id), key=ledger_order)
        return holding, ledger

    def reconcile_holding(
        self,
        user_id: str,
        holding_id: int,
        repair: bool = False
    ) -> ReconcileReport:
        """
        Compare a holding with a replay of its transaction log.

        Args:
            user_id: Caller's user identifier
            holding_id: Holding to check
            repair: Write the replayed position when drift is found

        Returns:
            ReconcileReport with the stored and replayed positions
        """
        holding = self._load_holding(holding_id)
        self._authorize(user_id, holding.portfolio_id)

        def _attempt() -> ReconcileReport:
            current = self._load_holding(holding_id)
            stored = PositionState.from_holding(current)
            replayed = _replay(current, self.store.load_ledger(holding_id)).quantized()
            report = ReconcileReport(
                holding_id=holding_id,
                stored=stored,
                replayed=replayed,
                drift=not _same_position(stored, replayed)
            )
            if report.drift and repair:
                _set_position(current, replayed)
                self.store.save_holding(current)
                report.repaired = True
            return report

        report = self._with_retry(_attempt)
        if report.drift:
            logger.warning(
                f"Holding {holding_id} drifted: stored {report.stored}, replayed {report.replayed}"
                f"{' (repaired)' if report.repaired else ''}"
            )
        return report

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _with_retry(self, fn: Callable):
        retryer = Retrying(
            stop=stop_after_attempt(max(1, self.settings.conflict_retry_attempts)),
            wait=wait_exponential(
                multiplier=self.settings.conflict_retry_wait_min,
                min=self.settings.conflict_retry_wait_min,
                max=self.settings.conflict_retry_wait_max
            ),
            retry=retry_if_exception_type(PersistenceConflict),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True
        )
        try:
            return retryer(fn)
        except PersistenceConflict as e:
            logger.warning(f"Giving up on holding {e.holding_id} after repeated conflicts")
            raise

    def _authorize(self, user_id: str, portfolio_id: int) -> None:
        if not self.guard.authorize(user_id, portfolio_id):
            logger.warning(f"User {user_id} denied access to portfolio {portfolio_id}")
            raise NotAuthorized(user_id, portfolio_id)

    def _load_holding(self, holding_id: int) -> Holding:
        holding = self.store.load_holding_for_update(holding_id)
        if holding is None:
            raise NotFound("Holding", holding_id)
        return holding

    def _load_transaction(self, transaction_id: int) -> Transaction:
        transaction = self.store.load_transaction(transaction_id)
        if transaction is None:
            raise NotFound("Transaction", transaction_id)
        return transaction

    def _reverse_or_rebuild(
        self,
        holding: Holding,
        transaction_id: int,
        effect: TransactionEffect
    ) -> PositionState:
        """
        Take one transaction out of a holding's position.

        Reversal cannot restore the cost basis a sell-to-zero discarded, and
        cannot remove a buy whose shares were sold later. Both leave an
        inconsistent state; the position is then rebuilt from the rest of
        the log when repair_depletion_gap is on.
        """
        current = PositionState.from_holding(holding)
        reversed_state = reverse(current, effect)
        if _is_sound(reversed_state):
            return reversed_state

        if self.settings.repair_depletion_gap:
            logger.info(
                f"Rebuilding holding {holding.id} from its log: reversing transaction "
                f"{transaction_id} gave {reversed_state}"
            )
            ledger = [tx for tx in self.store.load_ledger(holding.id) if tx.id != transaction_id]
            return _replay(holding, ledger)

        if reversed_state.total_shares < 0:
            raise InsufficientShares(requested=effect.shares, available=current.total_shares)
        return reversed_state


def ledger_order(tx: Transaction) -> tuple:
    """
    Sort key for replay: trade date, then creation time, then id.

    A transaction not yet inserted (id None) goes last among its date.
    created_at is compared without tzinfo: SQLite hands it back naive.
    """
    created = tx.created_at.replace(tzinfo=None) if tx.created_at is not None else datetime.max
    return (tx.transaction_date, tx.id is None, created, tx.id or 0)


def _replay(holding: Holding, ledger: Iterable[Transaction]) -> PositionState:
    """Replay ledger onto the holding's opening position."""
    ordered = sorted(ledger, key=ledger_order)
    return replay_position(
        PositionState.opening_of(holding),
        [TransactionEffect.from_transaction(tx) for tx in ordered]
    )


def _is_sound(state: PositionState) -> bool:
    if not state.is_consistent:
        return False
    return state.average_cost is None or state.average_cost >= 0


def _same_position(stored: PositionState, replayed: PositionState) -> bool:
    if stored.total_shares != replayed.total_shares:
        return False
    if stored.average_cost is None or replayed.average_cost is None:
        return stored.average_cost is None and replayed.average_cost is None
    return abs(stored.average_cost - replayed.average_cost) <= DRIFT_TOLERANCE


def _set_position(holding: Holding, state: PositionState) -> None:
    state = state.quantized()
    holding.total_shares = state.total_shares
    holding.average_cost = state.average_cost


def _money(value: Decimal) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-MONEY_SCALE))


def _coerce_date(value: Union[date, datetime, str, None]) -> date:
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise InvalidTransactionAmount("transaction_date", value, "a date (YYYY-MM-DD)")


def _check_notes(notes: Optional[str]) -> Optional[str]:
    if notes is not None and len(notes) > NOTES_MAX_LENGTH:
        raise InvalidTransactionAmount(
            "notes", f"{len(notes)} characters", f"at most {NOTES_MAX_LENGTH} characters"
        )
    return notes

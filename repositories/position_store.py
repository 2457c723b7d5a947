"""
Position Store - persistence boundary of the reconciliation engine.

Every write that changes a holding's position also writes the transaction row
that caused it, in one database transaction. The holding row is guarded by
its version column: a write only lands if the row still carries the version
the caller read, otherwise PersistenceConflict is raised and nothing commits.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from db_engine import get_engine
from models import Holding, Transaction
from repositories.holding_repository import HoldingRepository
from repositories.transaction_repository import TransactionRepository
from errors import LedgerError, NotFound, PersistenceConflict, StorageFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PositionStore(ABC):
    """Persistence interface consumed by the transaction orchestrator."""

    @abstractmethod
    def load_holding_for_update(self, holding_id: int) -> Optional[Holding]:
        """Read a holding together with the version a later write must match."""

    @abstractmethod
    def load_transaction(self, transaction_id: int) -> Optional[Transaction]:
        """Read a single transaction."""

    @abstractmethod
    def load_ledger(self, holding_id: int) -> List[Transaction]:
        """Read a holding's transactions in replay order."""

    @abstractmethod
    def list_transactions(
        self,
        holding_id: Optional[int] = None,
        portfolio_id: Optional[int] = None
    ) -> List[Transaction]:
        """List transactions of one holding or one portfolio, newest first."""

    @abstractmethod
    def save_holding_and_transaction(
        self,
        holding: Holding,
        transaction: Transaction
    ) -> Tuple[Holding, Transaction]:
        """Atomically write the holding's new position and insert/replace the transaction."""

    @abstractmethod
    def delete_transaction_and_save_holding(
        self,
        transaction: Transaction,
        holding: Holding
    ) -> Holding:
        """Atomically remove the transaction and write the holding's new position."""

    @abstractmethod
    def save_holding(self, holding: Holding) -> Holding:
        """Write the holding's position alone (used when repairing drift)."""


class SqlPositionStore(PositionStore):
    """
    SQLModel implementation of PositionStore.

    Holdings passed to the write methods carry the new position in
    total_shares / average_cost and, in version, the version they were read
    with.
    """

    def __init__(self, engine=None):
        self._engine = engine

    def _session(self) -> Session:
        return Session(self._engine if self._engine is not None else get_engine())

    def _read(self, what: str, fn: Callable[[Session], T]) -> T:
        try:
            with self._session() as session:
                return fn(session)
        except SQLAlchemyError as e:
            logger.error(f"Storage failure while reading {what}: {e}")
            raise StorageFailure(f"Could not read {what}") from e

    def _write(self, holding: Holding, work: Callable[[Session], T]) -> Tuple[Holding, T]:
        """
        Run work() and the holding compare-and-swap in one unit of work.
        Nothing is committed unless both succeed.
        """
        try:
            with self._session() as session:
                swapped = HoldingRepository.compare_and_swap(
                    holding.id,
                    holding.version,
                    holding.total_shares,
                    holding.average_cost,
                    session=session
                )
                if not swapped:
                    session.rollback()
                    raise PersistenceConflict(holding.id, holding.version)

                result = work(session)
                session.commit()

                saved = session.get(Holding, holding.id)
                if result is not None:
                    session.refresh(result)
                return saved, result
        except LedgerError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Storage failure while writing holding {holding.id}: {e}")
            raise StorageFailure(f"Could not write holding {holding.id}") from e

    def load_holding_for_update(self, holding_id: int) -> Optional[Holding]:
        return self._read(
            f"holding {holding_id}",
            lambda sess: HoldingRepository.get_by_id(holding_id, session=sess)
        )

    def load_transaction(self, transaction_id: int) -> Optional[Transaction]:
        return self._read(
            f"transaction {transaction_id}",
            lambda sess: TransactionRepository.get_by_id(transaction_id, session=sess)
        )

    def load_ledger(self, holding_id: int) -> List[Transaction]:
        return self._read(
            f"ledger of holding {holding_id}",
            lambda sess: TransactionRepository.get_ledger(holding_id, session=sess)
        )

    def list_transactions(
        self,
        holding_id: Optional[int] = None,
        portfolio_id: Optional[int] = None
    ) -> List[Transaction]:
        if holding_id is not None:
            return self._read(
                f"transactions of holding {holding_id}",
                lambda sess: TransactionRepository.get_by_holding(holding_id, session=sess)
            )
        return self._read(
            f"transactions of portfolio {portfolio_id}",
            lambda sess: TransactionRepository.get_by_portfolio(portfolio_id, session=sess)
        )

    def save_holding_and_transaction(
        self,
        holding: Holding,
        transaction: Transaction
    ) -> Tuple[Holding, Transaction]:
        def _persist(sess: Session) -> Transaction:
            if transaction.id is None:
                sess.add(transaction)
                persisted = transaction
            else:
                if sess.get(Transaction, transaction.id) is None:
                    raise NotFound("Transaction", transaction.id)
                persisted = sess.merge(transaction)
            sess.flush()
            return persisted

        return self._write(holding, _persist)

    def delete_transaction_and_save_holding(
        self,
        transaction: Transaction,
        holding: Holding
    ) -> Holding:
        def _remove(sess: Session) -> None:
            persisted = sess.get(Transaction, transaction.id)
            if persisted is None:
                raise NotFound("Transaction", transaction.id)
            sess.delete(persisted)
            sess.flush()
            return None

        saved, _ = self._write(holding, _remove)
        return saved

    def save_holding(self, holding: Holding) -> Holding:
        saved, _ = self._write(holding, lambda sess: None)
        return saved

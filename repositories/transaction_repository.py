"""
Transaction Repository - read access to the transaction log.
Writes that touch a holding's position go through PositionStore so the
transaction row and the holding row commit together.
"""

from typing import Optional, List
from sqlmodel import Session, select

from db_engine import get_engine
from models import Holding, Transaction


class TransactionRepository:
    """Repository for Transaction queries."""

    @staticmethod
    def get_by_id(transaction_id: int, session: Optional[Session] = None) -> Optional[Transaction]:
        """
        Retrieve a transaction by its ID.

        Args:
            transaction_id: Transaction ID to look up
            session: Optional existing session for transaction reuse

        Returns:
            Transaction object or None if not found
        """
        def _get_by_id(sess: Session) -> Optional[Transaction]:
            return sess.get(Transaction, transaction_id)

        if session is not None:
            return _get_by_id(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_id(session)

    @staticmethod
    def get_by_holding(holding_id: int, session: Optional[Session] = None) -> List[Transaction]:
        """Retrieve all transactions of a holding, newest trade date first."""
        def _get_by_holding(sess: Session) -> List[Transaction]:
            statement = (
                select(Transaction)
                .where(Transaction.holding_id == holding_id)
                .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
            )
            return list(sess.exec(statement).all())

        if session is not None:
            return _get_by_holding(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_holding(session)

    @staticmethod
    def get_by_portfolio(portfolio_id: int, session: Optional[Session] = None) -> List[Transaction]:
        """Retrieve all transactions across a portfolio's holdings, newest first."""
        def _get_by_portfolio(sess: Session) -> List[Transaction]:
            statement = (
                select(Transaction)
                .join(Holding, Transaction.holding_id == Holding.id)
                .where(Holding.portfolio_id == portfolio_id)
                .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
            )
            return list(sess.exec(statement).all())

        if session is not None:
            return _get_by_portfolio(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_portfolio(session)

    @staticmethod
    def get_ledger(holding_id: int, session: Optional[Session] = None) -> List[Transaction]:
        """
        Retrieve a holding's transactions in replay order:
        trade date, then creation time, then id.
        """
        def _get_ledger(sess: Session) -> List[Transaction]:
            statement = (
                select(Transaction)
                .where(Transaction.holding_id == holding_id)
                .order_by(
                    Transaction.transaction_date,
                    Transaction.created_at,
                    Transaction.id
                )
            )
            return list(sess.exec(statement).all())

        if session is not None:
            return _get_ledger(session)
        else:
            with Session(get_engine()) as session:
                return _get_ledger(session)

"""
Holding Repository - data access layer for Holding model.
Optimized with optional session parameter for transaction reuse.
"""

from typing import Optional, List
from decimal import Decimal
from datetime import datetime, timezone
from sqlalchemy import update
from sqlmodel import Session, select

from db_engine import get_engine
from models import Holding, Security, Transaction


class HoldingRepository:
    """Repository for Holding CRUD operations."""

    @staticmethod
    def add(
        portfolio_id: int,
        security_id: int,
        total_shares: Decimal = Decimal("0"),
        average_cost: Optional[Decimal] = None,
        session: Optional[Session] = None
    ) -> Holding:
        """
        Open a new holding. The opening position doubles as the replay baseline.

        Args:
            portfolio_id: Portfolio the holding belongs to
            security_id: Security held
            total_shares: Opening quantity
            average_cost: Opening cost per share (None when total_shares is zero)
            session: Optional existing session for transaction reuse

        Returns:
            Created Holding object
        """
        def _create_holding(sess: Session) -> Holding:
            holding = Holding(
                portfolio_id=portfolio_id,
                security_id=security_id,
                total_shares=total_shares,
                average_cost=average_cost,
                opening_shares=total_shares,
                opening_average_cost=average_cost
            )
            sess.add(holding)
            sess.commit()
            sess.refresh(holding)
            return holding

        if session is not None:
            return _create_holding(session)
        else:
            with Session(get_engine()) as session:
                return _create_holding(session)

    @staticmethod
    def get_by_id(holding_id: int, session: Optional[Session] = None) -> Optional[Holding]:
        """Retrieve a holding by its ID."""
        def _get_by_id(sess: Session) -> Optional[Holding]:
            return sess.get(Holding, holding_id)

        if session is not None:
            return _get_by_id(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_id(session)

    @staticmethod
    def get_by_portfolio(portfolio_id: int, session: Optional[Session] = None) -> List[Holding]:
        """Retrieve all holdings of a portfolio ordered by symbol."""
        def _get_by_portfolio(sess: Session) -> List[Holding]:
            statement = (
                select(Holding)
                .join(Security, Holding.security_id == Security.id)
                .where(Holding.portfolio_id == portfolio_id)
                .order_by(Security.symbol)
            )
            return list(sess.exec(statement).all())

        if session is not None:
            return _get_by_portfolio(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_portfolio(session)

    @staticmethod
    def get_by_portfolio_and_security(
        portfolio_id: int,
        security_id: int,
        session: Optional[Session] = None
    ) -> Optional[Holding]:
        """Retrieve the holding of a security within a portfolio, if any."""
        def _get_pair(sess: Session) -> Optional[Holding]:
            statement = select(Holding).where(
                Holding.portfolio_id == portfolio_id,
                Holding.security_id == security_id
            )
            return sess.exec(statement).first()

        if session is not None:
            return _get_pair(session)
        else:
            with Session(get_engine()) as session:
                return _get_pair(session)

    @staticmethod
    def get_all(session: Optional[Session] = None) -> List[Holding]:
        """Retrieve every holding."""
        def _get_all(sess: Session) -> List[Holding]:
            return list(sess.exec(select(Holding).order_by(Holding.id)).all())

        if session is not None:
            return _get_all(session)
        else:
            with Session(get_engine()) as session:
                return _get_all(session)

    @staticmethod
    def compare_and_swap(
        holding_id: int,
        expected_version: int,
        total_shares: Decimal,
        average_cost: Optional[Decimal],
        session: Session
    ) -> bool:
        """
        Write a new position only if the row still carries expected_version.
        Does not commit; the caller owns the unit of work.

        Returns:
            True if the row was updated, False if another writer got there first
        """
        statement = (
            update(Holding)
            .where(Holding.id == holding_id, Holding.version == expected_version)
            .values(
                total_shares=total_shares,
                average_cost=average_cost,
                version=expected_version + 1,
                updated_at=datetime.now(timezone.utc)
            )
        )
        result = session.connection().execute(statement)
        return result.rowcount == 1

    @staticmethod
    def delete(holding_id: int, session: Optional[Session] = None) -> bool:
        """
        Delete a holding and all its transactions.

        Args:
            holding_id: Holding ID to delete
            session: Optional existing session for transaction reuse

        Returns:
            True if successful, False if the holding does not exist
        """
        def _delete(sess: Session) -> bool:
            try:
                holding = sess.get(Holding, holding_id)
                if holding is None:
                    return False
                statement = select(Transaction).where(Transaction.holding_id == holding_id)
                for tx in sess.exec(statement).all():
                    sess.delete(tx)
                # Transactions must go before the holding they reference
                sess.flush()
                sess.delete(holding)
                sess.commit()
                return True
            except Exception as e:
                sess.rollback()
                raise e

        if session is not None:
            return _delete(session)
        else:
            with Session(get_engine()) as session:
                return _delete(session)

"""
Portfolio Repository - data access layer for Portfolio model.
"""

from typing import Optional, List
from sqlmodel import Session, select

from db_engine import get_engine
from models import Holding, Portfolio, Transaction


class PortfolioRepository:
    """Repository for Portfolio CRUD operations."""

    @staticmethod
    def add(
        user_id: str,
        name: str,
        description: Optional[str] = None,
        session: Optional[Session] = None
    ) -> Portfolio:
        """
        Add a new portfolio owned by user_id.

        Args:
            user_id: Owner's opaque user identifier
            name: Portfolio name
            description: Optional description
            session: Optional existing session for transaction reuse

        Returns:
            Created Portfolio object
        """
        def _create_portfolio(sess: Session) -> Portfolio:
            portfolio = Portfolio(user_id=user_id, name=name, description=description)
            sess.add(portfolio)
            sess.commit()
            sess.refresh(portfolio)
            return portfolio

        if session is not None:
            return _create_portfolio(session)
        else:
            with Session(get_engine()) as session:
                return _create_portfolio(session)

    @staticmethod
    def get_by_id_and_user(
        portfolio_id: int,
        user_id: str,
        session: Optional[Session] = None
    ) -> Optional[Portfolio]:
        """Retrieve a portfolio only if it belongs to user_id."""
        def _get_owned(sess: Session) -> Optional[Portfolio]:
            statement = select(Portfolio).where(
                Portfolio.id == portfolio_id,
                Portfolio.user_id == user_id
            )
            return sess.exec(statement).first()

        if session is not None:
            return _get_owned(session)
        else:
            with Session(get_engine()) as session:
                return _get_owned(session)

    @staticmethod
    def get_by_user(user_id: str, session: Optional[Session] = None) -> List[Portfolio]:
        """Retrieve all portfolios of a user."""
        def _get_by_user(sess: Session) -> List[Portfolio]:
            statement = select(Portfolio).where(Portfolio.user_id == user_id).order_by(Portfolio.id)
            return list(sess.exec(statement).all())

        if session is not None:
            return _get_by_user(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_user(session)

    @staticmethod
    def get_by_user_and_name(
        user_id: str,
        name: str,
        session: Optional[Session] = None
    ) -> Optional[Portfolio]:
        """Retrieve a user's portfolio by exact name."""
        def _get_by_name(sess: Session) -> Optional[Portfolio]:
            statement = select(Portfolio).where(
                Portfolio.user_id == user_id,
                Portfolio.name == name
            )
            return sess.exec(statement).first()

        if session is not None:
            return _get_by_name(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_name(session)

    @staticmethod
    def update(
        portfolio_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        session: Optional[Session] = None
    ) -> Optional[Portfolio]:
        """
        Change a portfolio's name and/or description.

        Args:
            portfolio_id: Portfolio ID to update
            name: New name, None to keep it
            description: New description, None to keep it
            session: Optional existing session for transaction reuse

        Returns:
            Updated Portfolio object or None if not found
        """
        def _update(sess: Session) -> Optional[Portfolio]:
            portfolio = sess.get(Portfolio, portfolio_id)
            if portfolio is None:
                return None
            if name is not None:
                portfolio.name = name
            if description is not None:
                portfolio.description = description
            sess.add(portfolio)
            sess.commit()
            sess.refresh(portfolio)
            return portfolio

        if session is not None:
            return _update(session)
        else:
            with Session(get_engine()) as session:
                return _update(session)

    @staticmethod
    def delete(portfolio_id: int, session: Optional[Session] = None) -> bool:
        """
        Delete a portfolio with its holdings and their transactions.

        Returns:
            True if successful, False if the portfolio does not exist
        """
        def _delete(sess: Session) -> bool:
            try:
                portfolio = sess.get(Portfolio, portfolio_id)
                if portfolio is None:
                    return False
                holding_ids = select(Holding.id).where(Holding.portfolio_id == portfolio_id)
                for tx in sess.exec(select(Transaction).where(Transaction.holding_id.in_(holding_ids))).all():
                    sess.delete(tx)
                sess.flush()
                for holding in sess.exec(select(Holding).where(Holding.portfolio_id == portfolio_id)).all():
                    sess.delete(holding)
                sess.flush()
                sess.delete(portfolio)
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

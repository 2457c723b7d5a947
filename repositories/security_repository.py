"""
Security Repository - data access layer for Security model.
Optimized with optional session parameter for transaction reuse.
"""

from typing import Optional
from sqlmodel import Session, select

from db_engine import get_engine
from models import Security


class SecurityRepository:
    """Repository for Security CRUD operations."""

    @staticmethod
    def add(
        symbol: str,
        name: str,
        security_type: str = "Stock",
        market_type: str = "US",
        session: Optional[Session] = None
    ) -> Security:
        """
        Add a new security to the database.

        Args:
            symbol: Ticker symbol
            name: Security name
            security_type: "Stock", "ETF", ...
            market_type: Market type (US, HK, CN)
            session: Optional existing session for transaction reuse

        Returns:
            Created Security object
        """
        def _create_security(sess: Session) -> Security:
            security = Security(
                symbol=symbol.upper(),
                name=name,
                security_type=security_type,
                market_type=market_type
            )
            sess.add(security)
            sess.commit()
            sess.refresh(security)
            return security

        if session is not None:
            return _create_security(session)
        else:
            with Session(get_engine()) as session:
                return _create_security(session)

    @staticmethod
    def get_by_id(security_id: int, session: Optional[Session] = None) -> Optional[Security]:
        """Retrieve a security by its ID."""
        def _get_by_id(sess: Session) -> Optional[Security]:
            return sess.get(Security, security_id)

        if session is not None:
            return _get_by_id(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_id(session)

    @staticmethod
    def get_by_symbol(symbol: str, session: Optional[Session] = None) -> Optional[Security]:
        """Retrieve a security by symbol (case-insensitive)."""
        def _get_by_symbol(sess: Session) -> Optional[Security]:
            statement = select(Security).where(Security.symbol.ilike(symbol))
            return sess.exec(statement).first()

        if session is not None:
            return _get_by_symbol(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_symbol(session)

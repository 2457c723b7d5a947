"""
Database engine and session management for Portfolio Ledger.

The engine is built lazily from Settings. On SQLite every pooled connection
is switched to WAL journaling with a busy timeout, so a writer that finds
the file locked waits for its turn and the holding version check decides
who wins.
"""

from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from typing import Optional
import logging

from config import get_settings

logger = logging.getLogger(__name__)

SQLITE_BUSY_TIMEOUT_MS = 5000

_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        settings = get_settings()
        if settings.is_sqlite:
            _engine = create_engine(
                settings.database_url,
                echo=settings.db_echo,
                connect_args={"check_same_thread": False}
            )
            event.listen(_engine, "connect", _configure_sqlite_connection)
            logger.info(f"SQLite engine created (WAL, busy timeout {SQLITE_BUSY_TIMEOUT_MS} ms)")
        else:
            _engine = create_engine(settings.database_url, echo=settings.db_echo, pool_pre_ping=True)
    return _engine


def _configure_sqlite_connection(dbapi_connection, connection_record):
    """Per-connection pragmas; busy_timeout does not carry across connections."""
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    finally:
        cursor.close()


def dispose_engine():
    """Dispose of the engine so the next call rebuilds it from settings."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None


def init_db():
    """Initialize the database and create all tables."""
    from models import Portfolio, Security, Holding, Transaction  # noqa: F401

    engine = get_engine()
    SQLModel.metadata.create_all(engine)
    logger.info("Database initialized")


def get_session() -> Session:
    """Get a new database session."""
    return Session(get_engine())

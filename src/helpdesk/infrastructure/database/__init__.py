"""
Database Infrastructure
=======================

Manages database connections, session lifecycle, and engine configuration.

Uses SQLAlchemy 2.0 with synchronous sessions: the workflow, automation and
SLA services run one call at a time and never suspend on I/O.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from helpdesk.config import Settings, get_settings


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    SQLAlchemy 2.0 style using DeclarativeBase.
    All models inherit from this class.
    """
    pass


# Global engine and session maker
_engine: Engine | None = None
_session_maker: sessionmaker[Session] | None = None


def get_engine() -> Engine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If engine has not been initialized
    """
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def build_engine(database_url: str, settings: Optional[Settings] = None) -> Engine:
    """
    Create an engine for the given URL.

    SQLite connections get pysqlite's implicit transaction handling turned
    off so that SAVEPOINTs (used by the unit of work) behave correctly.
    """
    settings = settings or get_settings()

    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, echo=settings.debug)

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

        return engine

    return create_engine(
        database_url,
        echo=settings.debug,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,  # Verify connections before using
    )


def init_database(settings: Optional[Settings] = None) -> Engine:
    """
    Initialize the database engine and session maker.

    Should be called during application startup.
    """
    global _engine, _session_maker

    settings = settings or get_settings()
    _engine = build_engine(settings.database_url, settings)
    _session_maker = sessionmaker(
        bind=_engine,
        expire_on_commit=False,
        autoflush=False,
    )
    return _engine


def close_database() -> None:
    """
    Dispose of the engine's connections.

    Should be called during application shutdown.
    """
    global _engine, _session_maker

    if _engine is not None:
        _engine.dispose()
        _engine = None
        _session_maker = None


@contextmanager
def get_session_context() -> Iterator[Session]:
    """
    Context manager for database sessions.

    Commits on success and rolls back on error.

    Usage:
        with get_session_context() as session:
            helpdesk = build_helpdesk(session, config_manager)
            helpdesk.workflow.transition(ticket, TicketStatus.RESOLVED)
    """
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    with _session_maker() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


def create_tables(engine: Optional[Engine] = None) -> None:
    """
    Create all database tables.

    This should only be used for development/testing.
    Production should use migrations (Alembic).
    """
    # Import models so their tables are registered on Base.metadata
    import helpdesk.tickets.infrastructure.models  # noqa: F401
    import helpdesk.automation.infrastructure.models  # noqa: F401

    Base.metadata.create_all(engine or get_engine())

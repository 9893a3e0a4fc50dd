"""Database configuration and session management.

This module configures the SQLAlchemy engine used by the attendance store.
SQLite is the default backend; any SQLAlchemy URL works.

SQLite Configuration Choices:
    - **WAL (Write-Ahead Logging)**: Lets the stats endpoint read while a
      check-in commits. Without WAL, a writer blocks every reader.

    - **Foreign Keys**: Disabled by default in SQLite. Attendee rows rely on
      ``ON DELETE CASCADE`` from both Event and User, so they must be on.

    - **check_same_thread=False**: FastAPI may hand a session to a worker
      thread other than the one that opened the connection.
"""

from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine

from guestlist.core.config import settings

is_sqlite = settings.database_url.startswith("sqlite")
connect_args = {"check_same_thread": False} if is_sqlite else {}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,  # Log SQL statements when DEBUG=true
    pool_pre_ping=True,
)


def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection.

    These settings are connection-level, not database-level, so they must
    be set each time a new connection is established from the pool.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    # Attendee cascades depend on this.
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


if is_sqlite:
    sa_event.listen(engine, "connect", set_sqlite_pragma)


def create_db_and_tables():
    """Create all database tables."""
    SQLModel.metadata.create_all(engine)


def get_session():
    """Dependency for getting database session."""
    with Session(engine) as session:
        yield session

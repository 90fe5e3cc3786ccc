"""Database setup and session management for the appointment system."""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .exceptions import DatabaseConnectionError

# Execution option naming the SQLite BEGIN mode for one transaction.
SQLITE_BEGIN_OPTION = "sqlite_begin"
# Execution option overriding the SQLite busy timeout for one transaction.
SQLITE_BUSY_TIMEOUT_OPTION = "sqlite_busy_timeout_ms"


class Base(DeclarativeBase):
    """Base class for all ORM models."""


def _install_sqlite_transaction_hooks(engine: Engine, busy_timeout_ms: int) -> None:
    """Let SQLAlchemy emit BEGIN itself so writers can take the lock up front.

    pysqlite otherwise defers BEGIN until the first write, which lets two
    transactions read the same snapshot before either of them writes.
    The lock is database-wide, so SQLite writers queue behind each other
    whichever doctor they touch.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        options = conn.get_execution_options()
        timeout_ms = int(options.get(SQLITE_BUSY_TIMEOUT_OPTION, busy_timeout_ms))
        conn.exec_driver_sql(f"PRAGMA busy_timeout = {timeout_ms}")
        mode = options.get(SQLITE_BEGIN_OPTION, "IMMEDIATE")
        conn.exec_driver_sql(f"BEGIN {mode}")


def create_database_engine(database_url: str, busy_timeout: float = 5.0) -> Engine:
    """Create an engine and verify the connection."""
    url = make_url(database_url)
    is_sqlite = url.drivername.startswith("sqlite")
    if is_sqlite and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    try:
        engine = create_engine(url, echo=False)
        if is_sqlite:
            _install_sqlite_transaction_hooks(engine, int(busy_timeout * 1000))
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return engine
    except SQLAlchemyError as exc:
        raise DatabaseConnectionError("Failed to connect to the database.") from exc


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create database tables."""
    # Registers the mapped tables on Base.metadata.
    from . import models  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as exc:
        raise DatabaseConnectionError("Failed to initialize database schema.") from exc


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""
    session: Session = session_factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise
    finally:
        session.close()

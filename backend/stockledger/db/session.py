"""Database engine and session management."""

from collections.abc import Generator
from typing import Annotated, Any, Optional

from fastapi import Depends
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from stockledger.core.config import settings


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _engine_options(url: str, lock_timeout: float) -> dict[str, Any]:
    if _is_sqlite(url):
        return {
            "connect_args": {"check_same_thread": False, "timeout": lock_timeout},
            "pool_pre_ping": True,
        }
    # Posting relies on row locks (SELECT ... FOR UPDATE) on top of this level
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "isolation_level": settings.db_isolation_level,
    }


def build_engine(url: str, lock_timeout: Optional[float] = None) -> Engine:
    """Create an engine for *url*.

    SQLite has no row locks and ignores ``FOR UPDATE``, and pysqlite on its
    own defers ``BEGIN`` until the first write, so reads would run outside
    any transaction. SQLite engines therefore take over transaction control
    and open every transaction with ``BEGIN IMMEDIATE``: a unit of work holds
    the database write lock before its first read, and a second writer waits
    up to *lock_timeout* seconds before failing.
    """
    if lock_timeout is None:
        lock_timeout = settings.sqlite_lock_timeout
    new_engine = create_engine(url, echo=settings.debug, **_engine_options(url, lock_timeout))

    if _is_sqlite(url):
        @event.listens_for(new_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            # Stop pysqlite from issuing its own BEGIN / COMMIT
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(new_engine, "begin")
        def begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return new_engine


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Type alias for dependency injection
DbSession = Annotated[Session, Depends(get_db)]

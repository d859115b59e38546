"""Engine, session factory, and transaction helpers shared by the services."""
from __future__ import annotations

import random
from typing import Any, Dict

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from .config import get_settings

settings = get_settings()

SERIALIZABLE = "SERIALIZABLE"

# PostgreSQL serialization_failure and deadlock_detected.
_RETRYABLE_SQLSTATES = {"40001", "40P01"}
_RETRYABLE_ERROR_SNIPPETS = (
    "could not serialize access",
    "deadlock detected",
    "database is locked",
)


class Base(DeclarativeBase):
    pass


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _install_sqlite_transaction_hooks(db_engine: Engine) -> None:
    """Make SQLAlchemy, not pysqlite, emit BEGIN.

    pysqlite defers BEGIN until the first write, so a SELECT followed by an
    INSERT is not atomic. Serializable units of work open with BEGIN IMMEDIATE,
    which takes the database write lock before the first read.
    """

    @event.listens_for(db_engine, "connect")
    def _disable_driver_begin(dbapi_connection, _connection_record):  # type: ignore[no-untyped-def]
        dbapi_connection.isolation_level = None

    @event.listens_for(db_engine, "begin")
    def _emit_begin(conn):  # type: ignore[no-untyped-def]
        if conn.get_execution_options().get("isolation_level") == SERIALIZABLE:
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def build_engine(url: str) -> Engine:
    connect_args: Dict[str, Any] = {}
    if _is_sqlite(url):
        connect_args = {"check_same_thread": False, "timeout": settings.sqlite_busy_timeout}
    db_engine = create_engine(url, connect_args=connect_args, pool_pre_ping=not _is_sqlite(url))
    if _is_sqlite(url):
        _install_sqlite_transaction_hooks(db_engine)
    return db_engine


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def is_serialization_failure(exc: DBAPIError) -> bool:
    """True when the storage layer aborted a transaction that may succeed on retry."""

    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in _RETRYABLE_SQLSTATES:
        return True
    message = str(exc).lower()
    return any(snippet in message for snippet in _RETRYABLE_ERROR_SNIPPETS)


def retry_delay(attempt: int, base_delay: float) -> float:
    """Exponential backoff with a little jitter; ``attempt`` starts at 1."""

    base = base_delay * (2 ** (attempt - 1))
    return base + random.uniform(0, base_delay * attempt)

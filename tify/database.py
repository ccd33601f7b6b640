"""Database helpers for Tify Events."""

from __future__ import annotations

import math
import time
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import scoped_session, sessionmaker

from .config import settings
from .errors import TransactionTimeout

# Execution option asking SQLite to take the write lock when the transaction
# opens instead of on its first write.
WRITE_LOCK_OPTION = "tify_write_lock"


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.transaction_max_wait_seconds,
            }
        }
    return {"pool_timeout": settings.transaction_max_wait_seconds}


def configure_engine(engine: Engine) -> Engine:
    """Take over transaction control from pysqlite so BEGIN IMMEDIATE works."""
    if engine.dialect.name != "sqlite":
        return engine

    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        if conn.get_execution_options().get(WRITE_LOCK_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

    return engine


DATABASE_URL = settings.resolved_database_url
engine = configure_engine(
    create_engine(DATABASE_URL, future=True, **_engine_kwargs(DATABASE_URL))
)
SessionLocal = scoped_session(
    sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        future=True,
        expire_on_commit=False,
    )
)


@contextmanager
def get_session():
    """Context manager returning a SQLAlchemy session."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class Deadline:
    """Wall-clock budget for a multi-statement transaction."""

    def __init__(self, seconds: float | None = None):
        self.seconds = (
            settings.transaction_timeout_seconds if seconds is None else seconds
        )
        self._expires_at = time.monotonic() + self.seconds

    def check(self, step: str) -> None:
        if time.monotonic() > self._expires_at:
            raise TransactionTimeout(
                f"Transaction exceeded {self.seconds:g}s while {step}"
            )


def lock_wait_statements(dialect_name: str) -> list[str]:
    """Statements bounding how long a locked transaction waits on row locks.

    SQLite gets its bound from the driver busy timeout instead.
    """
    wait_ms = int(settings.transaction_max_wait_seconds * 1000)
    if dialect_name == "postgresql":
        statement_ms = int(settings.transaction_timeout_seconds * 1000)
        return [
            f"SET LOCAL lock_timeout = {wait_ms}",
            f"SET LOCAL statement_timeout = {statement_ms}",
        ]
    if dialect_name in {"mysql", "mariadb"}:
        # innodb_lock_wait_timeout only takes whole seconds.
        seconds = max(1, math.ceil(settings.transaction_max_wait_seconds))
        return [f"SET SESSION innodb_lock_wait_timeout = {seconds}"]
    return []


@contextmanager
def transaction(*, lock: bool = False, deadline: Deadline | None = None):
    """Run a unit of work in its own session, committing only if nothing raised.

    ``lock`` takes the database write lock up front (SQLite) so concurrent
    writers queue behind each other for up to ``transaction_max_wait_seconds``.
    Other dialects bound the row lock wait with ``lock_wait_statements``.
    The session is independent of the thread-scoped ``SessionLocal`` registry.
    """
    session = SessionLocal.session_factory()
    try:
        if lock:
            connection = session.connection(
                execution_options={WRITE_LOCK_OPTION: True}
            )
            for statement in lock_wait_statements(connection.dialect.name):
                connection.exec_driver_sql(statement)
        yield session
        if deadline is not None:
            deadline.check("committing")
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

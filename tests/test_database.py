from __future__ import annotations

from dataclasses import replace

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import scoped_session, sessionmaker

from tify import database
from tify.errors import TransactionTimeout
from tify.models import Base, Meta
from tify.utils import utcnow


def test_deadline_raises_with_step_name():
    database.Deadline(60).check("starting")
    with pytest.raises(TransactionTimeout) as excinfo:
        database.Deadline(-1).check("locking seats")
    assert "while locking seats" in str(excinfo.value)


def test_transaction_rolls_back_on_error():
    with pytest.raises(RuntimeError):
        with database.transaction() as session:
            session.add(Meta(key="k", value="v", updated_at=utcnow()))
            session.flush()
            raise RuntimeError("boom")

    with database.get_session() as session:
        assert session.scalar(select(func.count()).select_from(Meta)) == 0


def test_locked_transaction_blocks_second_writer(monkeypatch, tmp_path):
    engine = database.configure_engine(
        create_engine(
            f"sqlite:///{tmp_path / 'lock.sqlite'}",
            connect_args={"check_same_thread": False, "timeout": 0.2},
            future=True,
        )
    )
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(
        database, "SessionLocal", scoped_session(sessionmaker(bind=engine))
    )

    with database.transaction(lock=True) as holder:
        holder.add(Meta(key="held", value="1", updated_at=utcnow()))
        holder.flush()
        with pytest.raises(OperationalError) as excinfo:
            with database.transaction(lock=True):
                pass
        assert "locked" in str(excinfo.value)

    with database.transaction() as session:
        assert session.get(Meta, "held").value == "1"
    engine.dispose()


def test_lock_wait_statements_bound_row_lock_waits(monkeypatch):
    monkeypatch.setattr(
        database,
        "settings",
        replace(
            database.settings,
            transaction_max_wait_seconds=2.5,
            transaction_timeout_seconds=20.0,
        ),
    )
    assert database.lock_wait_statements("postgresql") == [
        "SET LOCAL lock_timeout = 2500",
        "SET LOCAL statement_timeout = 20000",
    ]
    assert database.lock_wait_statements("mysql") == [
        "SET SESSION innodb_lock_wait_timeout = 3"
    ]
    assert database.lock_wait_statements("sqlite") == []


def test_locked_transaction_issues_lock_wait_statements(monkeypatch):
    issued = []
    monkeypatch.setattr(
        database, "lock_wait_statements", lambda name: issued.append(name) or []
    )
    with database.transaction(lock=True):
        pass
    with database.transaction():
        pass
    assert issued == ["sqlite"]

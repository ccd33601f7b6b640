"""Schema management, the root admin token, and SQLite maintenance."""

from __future__ import annotations

import logging
import secrets
import shutil
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.orm import Session

from .config import settings
from .database import engine, get_session
from .models import Meta
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")

MIGRATIONS_DIR = Path(__file__).resolve().parent / "alembic"


def init_db() -> None:
    upgrade_database(make_backup=False)
    ensure_root_token()


def _alembic_config() -> Config:
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    # configparser interpolates "%", which URL-escaped characters contain.
    url = engine.url.render_as_string(hide_password=False)
    config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return config


def _current_revision() -> str | None:
    with engine.connect() as connection:
        return MigrationContext.configure(connection).get_current_revision()


def _backup_sqlite_file() -> Path | None:
    db_path = Path(settings.database_path)
    if engine.dialect.name != "sqlite" or not db_path.exists():
        return None
    backup_path = db_path.with_suffix(db_path.suffix + ".bak")
    shutil.copy(db_path, backup_path)
    return backup_path


def upgrade_database(*, make_backup: bool = True) -> list[str]:
    """Bring the schema to the latest Alembic revision.

    Returns the actions taken; an empty list means the schema was current.
    """
    config = _alembic_config()
    head = ScriptDirectory.from_config(config).get_current_head()
    inspector = inspect(engine)
    tracked = inspector.has_table("alembic_version")

    if tracked and _current_revision() == head:
        return []

    actions: list[str] = []
    if make_backup:
        backup_path = _backup_sqlite_file()
        if backup_path is not None:
            actions.append(f"Backup created at {backup_path}")

    if not tracked and inspector.has_table("events"):
        # Tables made by metadata.create_all: record them as already at head.
        command.stamp(config, "head")
        actions.append("Stamped existing database to Alembic head")
    elif not tracked:
        command.upgrade(config, "head")
        actions.append("Ran Alembic upgrade to head (fresh database)")
    else:
        command.upgrade(config, "head")
        actions.append("Applied Alembic migrations to head")

    logger.info("Database schema at %s: %s", head, "; ".join(actions))
    return actions


def _store_root_token(session: Session, token: str) -> str:
    session.merge(Meta(key=settings.root_token_key, value=token, updated_at=utcnow()))
    return token


def ensure_root_token() -> str:
    """Return the root admin token, creating it on first use."""
    with get_session() as session:
        existing = session.get(Meta, settings.root_token_key)
        if existing:
            return existing.value
        return _store_root_token(session, secrets.token_urlsafe(32))


def rotate_root_token() -> str:
    with get_session() as session:
        token = _store_root_token(session, secrets.token_urlsafe(32))
    logger.info("Root admin token rotated")
    return token


def fetch_root_token() -> str:
    with get_session() as session:
        meta = session.get(Meta, settings.root_token_key)
        if meta:
            return meta.value
    return ensure_root_token()


def vacuum_database() -> bool:
    """Run SQLite VACUUM; other backends manage their own storage."""
    if engine.dialect.name != "sqlite":
        return False
    # VACUUM cannot run inside a transaction, so bypass the session machinery.
    raw = engine.raw_connection()
    try:
        cursor = raw.cursor()
        cursor.execute("VACUUM")
        cursor.close()
    finally:
        raw.close()
    logger.info("SQLite VACUUM complete")
    return True

"""SQLite engine creation and lightweight schema migration."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

# Import models so SQLModel registers them
from stylebridge.storage import models as _models  # noqa: F401

logger = logging.getLogger(__name__)


def _migrate_if_needed(db_path: Path) -> None:
    """Add any missing columns to existing tables (lightweight migration).

    Databases created before optimistic concurrency lack the ``revision``
    column; they get it with every row starting at revision 0.
    """
    if not db_path.exists():
        return

    conn = sqlite3.connect(str(db_path))
    try:
        cursor = conn.execute("PRAGMA table_info(preferencerecord)")
        existing_cols = {row[1] for row in cursor.fetchall()}
        if not existing_cols:
            return

        migrations = [
            ("preferencerecord", "revision", "INTEGER DEFAULT 0"),
            ("preferencerecord", "schema_version", "INTEGER DEFAULT 1"),
        ]

        for table, col, col_type in migrations:
            if col not in existing_cols:
                logger.info("Adding column %s.%s", table, col)
                conn.execute(f"ALTER TABLE {table} ADD COLUMN {col} {col_type}")

        conn.commit()
    finally:
        conn.close()


def create_store_engine(db_path: Path) -> Engine:
    """Create a SQLAlchemy engine for ``db_path`` with tables in place."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    _migrate_if_needed(db_path)
    engine = create_engine(f"sqlite:///{db_path}", echo=False)
    SQLModel.metadata.create_all(engine)
    return engine

"""Durable key-value store for version-tagged preference records.

Each key holds one JSON record plus a revision counter. Writes may pass the
revision they read; if another writer got there first the write fails with
``ConflictError`` instead of silently overwriting.

The ``schema_version`` column records the version a record was written at:
its own ``version`` tag if it has one, otherwise the current schema. Rows
carried over from databases that predate the column default to version 1.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from stylebridge.errors import ConflictError, PersistenceError
from stylebridge.storage.migrations import SCHEMA_VERSION, migrate_record, record_version
from stylebridge.storage.models import PreferenceRecord

logger = logging.getLogger(__name__)

_table = PreferenceRecord.__table__


@dataclass
class StoredRecord:
    record: dict
    revision: int


class PreferenceStore:
    """Load and save JSON records by key, migrating old versions on read."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def load(self, key: str) -> dict | None:
        stored = self.load_versioned(key)
        return stored.record if stored else None

    def load_versioned(self, key: str) -> StoredRecord | None:
        query = select(_table.c.payload_json, _table.c.revision, _table.c.schema_version).where(
            _table.c.key == key
        )
        try:
            with self._engine.connect() as conn:
                row = conn.execute(query).first()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read '{key}': {exc}") from exc
        if row is None:
            return None

        try:
            record = json.loads(row.payload_json)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Stored record '{key}' is not valid JSON") from exc
        if not isinstance(record, dict):
            raise PersistenceError(f"Stored record '{key}' is not a JSON object")

        version = record_version(record, default=row.schema_version or 1)
        if version != SCHEMA_VERSION:
            record = migrate_record(record, version=version)
        return StoredRecord(record=record, revision=row.revision or 0)

    def save(self, key: str, record: dict, *, expected_revision: int | None = None) -> int:
        """Write ``record`` under ``key`` and return the new revision.

        ``expected_revision`` of ``None`` writes unconditionally; ``0`` means
        the key must not exist yet; any other value must match the stored
        revision.
        """
        try:
            payload = json.dumps(record)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"Record for '{key}' is not JSON-serializable: {exc}") from exc
        version = record_version(record, default=SCHEMA_VERSION)
        now = datetime.now(timezone.utc)

        try:
            with self._engine.begin() as conn:
                current = conn.execute(
                    select(_table.c.revision).where(_table.c.key == key)
                ).first()
                current_revision = (current.revision or 0) if current else 0

                if expected_revision is not None and expected_revision != current_revision:
                    raise ConflictError(key, expected_revision, current_revision)

                new_revision = current_revision + 1
                values = {
                    "schema_version": version,
                    "revision": new_revision,
                    "payload_json": payload,
                    "updated_at": now,
                }
                if current is None:
                    conn.execute(insert(_table).values(key=key, **values))
                else:
                    result = conn.execute(
                        update(_table)
                        .where(_table.c.key == key, _table.c.revision == current.revision)
                        .values(**values)
                    )
                    if result.rowcount != 1:
                        raise ConflictError(key, current_revision, None)
        except IntegrityError as exc:
            raise ConflictError(key, expected_revision, None) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to write '{key}': {exc}") from exc

        logger.debug("Saved '%s' at revision %d", key, new_revision)
        return new_revision

    def delete(self, key: str) -> bool:
        try:
            with self._engine.begin() as conn:
                result = conn.execute(delete(_table).where(_table.c.key == key))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to delete '{key}': {exc}") from exc
        return result.rowcount > 0

"""Schema migrations applied to preference records when they are read.

Version 1 records come from the original desktop app: flat camelCase JSON
objects, with preferences tagged ``"version": "1.0.0"`` and document records
untagged. Version 2 wraps snake_case model data in an envelope::

    {"version": 2, "kind": "preferences" | "document", "data": {...}}
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable

from stylebridge.errors import PersistenceError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

KIND_PREFERENCES = "preferences"
KIND_DOCUMENT = "document"

# Mappings whose keys are user content, not field names.
_OPAQUE_KEYS = {"preferredWords", "additionalPreferWords", "preferWords"}

_DECISION_RENAMES = {
    "cell_index": "paragraph_index",
    "suggested_edit": "suggested_text",
    "critique_analysis": "critique",
}

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _snake_keys(value: Any) -> Any:
    if isinstance(value, dict):
        converted = {}
        for key, item in value.items():
            if key in _OPAQUE_KEYS and isinstance(item, dict):
                converted[_snake(key)] = dict(item)
            else:
                converted[_snake(key)] = _snake_keys(item)
        return converted
    if isinstance(value, list):
        return [_snake_keys(item) for item in value]
    return value


def _v1_to_v2(record: dict) -> dict:
    data = _snake_keys({k: v for k, v in record.items() if k != "version"})

    if "document_id" not in data:
        return {"version": 2, "kind": KIND_PREFERENCES, "data": data}

    history = []
    for entry in data.get("edit_history", []):
        entry = {_DECISION_RENAMES.get(k, k): v for k, v in entry.items()}
        entry.setdefault("document_id", data["document_id"])
        history.append(entry)
    data["edit_history"] = history
    data.setdefault("decision_count", len(history))

    adjustments = data.get("adjustments", {})
    adjustments["diff_patterns"] = [
        {("kind" if k == "type" else k): v for k, v in pattern.items()}
        for pattern in adjustments.get("diff_patterns", [])
    ]
    for example in adjustments.get("edit_examples", []):
        example["feedback"] = example.get("feedback") or []
    data["adjustments"] = adjustments
    return {"version": 2, "kind": KIND_DOCUMENT, "data": data}


MIGRATIONS: dict[int, Callable[[dict], dict]] = {
    1: _v1_to_v2,
}


def record_version(record: dict, default: int = 1) -> int:
    """Integer schema version of a record.

    Untagged records take ``default``: version 1 for exported files and
    legacy rows, the stored column value inside the store.
    """
    raw = record.get("version")
    if raw is None:
        return default
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).split(".")[0])
    except ValueError as exc:
        raise PersistenceError(f"Unrecognized record version: {raw!r}") from exc


def migrate_record(record: dict, version: int | None = None) -> dict:
    """Upgrade ``record`` from ``version`` to ``SCHEMA_VERSION``. Returns a new dict."""
    if version is None:
        version = record_version(record)
    if version > SCHEMA_VERSION:
        raise PersistenceError(
            f"Record has schema version {version}, newer than supported {SCHEMA_VERSION}"
        )
    migrated = record
    while version < SCHEMA_VERSION:
        logger.info("Migrating preference record from schema v%d", version)
        migrated = MIGRATIONS[version](migrated)
        version += 1
    return migrated

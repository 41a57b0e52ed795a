"""SQLModel database models."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


class PreferenceRecord(SQLModel, table=True):
    """One version-tagged JSON record in the preference store."""

    key: str = Field(primary_key=True)
    schema_version: int = 1
    revision: int = 0  # bumped on every write, checked for optimistic concurrency
    payload_json: str = "{}"
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

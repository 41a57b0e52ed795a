"""Typed access to the preference store.

Maps ``UserPreferences`` and ``DocumentPreferences`` onto store keys and
handles read-modify-write cycles with optimistic concurrency.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError
from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt

from stylebridge.errors import ConflictError, PersistenceError
from stylebridge.storage.migrations import KIND_DOCUMENT, KIND_PREFERENCES, SCHEMA_VERSION
from stylebridge.storage.store import PreferenceStore
from stylebridge.style.models import DocumentPreferences, UserPreferences

logger = logging.getLogger(__name__)

PREFERENCES_KEY = "preferences"

M = TypeVar("M", bound=BaseModel)
R = TypeVar("R")


def document_key(document_id: str) -> str:
    return f"document:{document_id}"


def retry_on_conflict(operation: Callable[[], R], attempts: int) -> R:
    """Run a read-modify-write ``operation``, rerunning it on ConflictError.

    The last ConflictError is re-raised once ``attempts`` are used up.
    """
    retrying = Retrying(
        retry=retry_if_exception_type(ConflictError),
        stop=stop_after_attempt(attempts),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
        reraise=True,
    )
    return retrying(operation)


@dataclass
class Versioned(Generic[M]):
    """A model plus the store revision it was read at (0 if never saved)."""

    value: M
    revision: int


def _envelope(kind: str, model: BaseModel) -> dict:
    return {"version": SCHEMA_VERSION, "kind": kind, "data": model.model_dump(mode="json")}


def _unwrap(key: str, record: dict, kind: str, model: type[M]) -> M:
    if record.get("kind") != kind:
        raise PersistenceError(f"Record '{key}' has kind {record.get('kind')!r}, expected {kind!r}")
    try:
        return model.model_validate(record.get("data", {}))
    except SchemaError as exc:
        raise PersistenceError(f"Record '{key}' is malformed: {exc.error_count()} errors") from exc


class PreferenceRepository:
    def __init__(self, store: PreferenceStore, *, conflict_retries: int = 3) -> None:
        self._store = store
        self.conflict_retries = conflict_retries

    # -- global preferences --

    def load_preferences(self) -> Versioned[UserPreferences]:
        stored = self._store.load_versioned(PREFERENCES_KEY)
        if stored is None:
            return Versioned(UserPreferences(), 0)
        prefs = _unwrap(PREFERENCES_KEY, stored.record, KIND_PREFERENCES, UserPreferences)
        return Versioned(prefs, stored.revision)

    def save_preferences(
        self, prefs: UserPreferences, *, expected_revision: int | None = None
    ) -> int:
        return self._store.save(
            PREFERENCES_KEY,
            _envelope(KIND_PREFERENCES, prefs),
            expected_revision=expected_revision,
        )

    # -- per-document preferences --

    def load_document(self, document_id: str) -> Versioned[DocumentPreferences] | None:
        key = document_key(document_id)
        stored = self._store.load_versioned(key)
        if stored is None:
            return None
        prefs = _unwrap(key, stored.record, KIND_DOCUMENT, DocumentPreferences)
        return Versioned(prefs, stored.revision)

    def get_or_create_document(
        self, document_id: str, base_profile_id: str | None = None
    ) -> Versioned[DocumentPreferences]:
        """Load a document record, creating and saving an empty one if needed."""
        existing = self.load_document(document_id)
        if existing is not None:
            return existing
        prefs = DocumentPreferences(document_id=document_id, base_profile_id=base_profile_id)
        try:
            revision = self.save_document(prefs, expected_revision=0)
        except ConflictError:
            # Another writer created it first.
            created = self.load_document(document_id)
            if created is None:
                raise
            return created
        logger.info("Created preferences for document %s", document_id)
        return Versioned(prefs, revision)

    def save_document(
        self, prefs: DocumentPreferences, *, expected_revision: int | None = None
    ) -> int:
        return self._store.save(
            document_key(prefs.document_id),
            _envelope(KIND_DOCUMENT, prefs),
            expected_revision=expected_revision,
        )

    def delete_document(self, document_id: str) -> bool:
        return self._store.delete(document_key(document_id))

    # -- read-modify-write --

    def update_preferences(self, mutate: Callable[[UserPreferences], R]) -> tuple[UserPreferences, R]:
        """Apply ``mutate`` to fresh preferences and save, retrying on conflict.

        ``mutate`` must only change the object it is given; it may run more
        than once.
        """

        def attempt() -> tuple[UserPreferences, R]:
            current = self.load_preferences()
            prefs = current.value.model_copy(deep=True)
            result = mutate(prefs)
            self.save_preferences(prefs, expected_revision=current.revision)
            return prefs, result

        return retry_on_conflict(attempt, self.conflict_retries)

    def update_document(
        self,
        document_id: str,
        mutate: Callable[[DocumentPreferences], R],
        *,
        base_profile_id: str | None = None,
    ) -> tuple[DocumentPreferences, R]:
        """Apply ``mutate`` to a fresh document record and save, retrying on conflict."""

        def attempt() -> tuple[DocumentPreferences, R]:
            current = self.get_or_create_document(document_id, base_profile_id)
            prefs = current.value.model_copy(deep=True)
            result = mutate(prefs)
            prefs.touch()
            self.save_document(prefs, expected_revision=current.revision)
            return prefs, result

        return retry_on_conflict(attempt, self.conflict_retries)

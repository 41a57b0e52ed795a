"""The StyleBridge service: one object wiring the gateway, store and engines.

Every operation a front end needs goes through here. Construct one per
process (or per test) and pass it around; nothing is cached at module level.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as SchemaError
from sqlalchemy.engine import Engine

from stylebridge.config import Settings
from stylebridge.editing.base import DocumentStructure, EditRequest, EditResult
from stylebridge.editing.critic import CritiqueScorer
from stylebridge.editing.generator import ParagraphEditor
from stylebridge.editing.intent import GoalSynthesizer
from stylebridge.editing.orchestrator import EditOrchestrator, validate_request
from stylebridge.errors import PersistenceError, ProviderError, ValidationError
from stylebridge.learning.base import LearningOutcome
from stylebridge.learning.constraints import (
    ConstraintExtractor,
    ExtractedConstraints,
    merge_constraints,
)
from stylebridge.learning.consolidator import PatternConsolidator
from stylebridge.learning.engine import LearningEngine
from stylebridge.learning.feedback import validate_tags
from stylebridge.llm.client import ClaudeClient, ProviderGateway
from stylebridge.storage.database import create_store_engine
from stylebridge.storage.migrations import KIND_PREFERENCES, SCHEMA_VERSION, migrate_record, record_version
from stylebridge.storage.repository import PreferenceRepository, retry_on_conflict
from stylebridge.storage.store import PreferenceStore
from stylebridge.style import profiles
from stylebridge.style.drafting import ProfileDrafter, default_profile_fields
from stylebridge.style.merge import effective_style
from stylebridge.style.models import (
    AudienceProfile,
    BaseStyle,
    DocumentAdjustments,
    DocumentGoals,
    DocumentPreferences,
    EditDecision,
    UserPreferences,
)

logger = logging.getLogger(__name__)


def _validated(model: type, data: Any, what: str):
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except SchemaError as exc:
        raise ValidationError(f"Invalid {what}: {exc}") from exc


class StyleBridge:
    def __init__(
        self,
        settings: Settings,
        *,
        client: ProviderGateway | None = None,
        engine: Engine | None = None,
    ) -> None:
        self.settings = settings
        self.client = client if client is not None else ClaudeClient(settings)
        self.repository = PreferenceRepository(
            PreferenceStore(engine if engine is not None else create_store_engine(settings.db_path)),
            conflict_retries=settings.conflict_retries,
        )
        self.orchestrator = EditOrchestrator(
            ParagraphEditor(self.client),
            CritiqueScorer(self.client),
            max_iterations=settings.max_iterations,
            alignment_threshold=settings.alignment_threshold,
        )
        self.consolidator = PatternConsolidator(self.client)
        self.learning = LearningEngine(self.client, consolidator=self.consolidator)
        self.goals = GoalSynthesizer(self.client)
        self.constraints = ConstraintExtractor(self.client)
        self.drafter = ProfileDrafter(self.client)

    # -- helpers --

    def _profile_for(
        self,
        prefs: UserPreferences,
        profile_id: str | None,
        document: DocumentPreferences | None = None,
    ) -> AudienceProfile | None:
        """Explicit profile id, else the document's base profile, else the active one."""
        if profile_id is not None:
            profile = prefs.get_profile(profile_id)
            if profile is None:
                raise ValidationError(f"Unknown audience profile: {profile_id}")
            return profile
        if document is not None and document.base_profile_id:
            profile = prefs.get_profile(document.base_profile_id)
            if profile is not None:
                return profile
        return prefs.active_profile()

    def _require_document(self, document_id: str) -> DocumentPreferences:
        loaded = self.repository.load_document(document_id)
        if loaded is None:
            raise ValidationError(f"No preferences recorded for document '{document_id}'")
        return loaded.value

    # -- editing --

    def orchestrate_edit(
        self,
        document_id: str,
        paragraph_index: int,
        paragraphs: list[str],
        *,
        instruction: str | None = None,
        structure: DocumentStructure | None = None,
        profile_id: str | None = None,
    ) -> EditResult:
        request = EditRequest(
            document_id=document_id,
            paragraph_index=paragraph_index,
            paragraphs=paragraphs,
            instruction=instruction,
            structure=structure,
            profile_id=profile_id,
        )
        validate_request(request)

        prefs = self.repository.load_preferences().value
        profile = self._profile_for(prefs, profile_id)
        document = self.repository.get_or_create_document(
            document_id, profile.id if profile else None
        ).value
        profile = self._profile_for(prefs, profile_id, document)

        style = effective_style(prefs.base_style, profile, document.adjustments)
        return self.orchestrator.run(
            request, style, audience=profile, adjustments=document.adjustments
        )

    def record_decision(
        self,
        decision: EditDecision | dict,
        feedback_tags: list[str] | tuple[str, ...] = (),
        *,
        profile_id: str | None = None,
    ) -> LearningOutcome:
        """Learn from a decision and persist the document record.

        The decision is always stored, even when provider-backed learning
        fails. Persistence failures propagate.
        """
        decision = _validated(EditDecision, decision, "decision")
        tags = validate_tags(feedback_tags)
        prefs = self.repository.load_preferences().value

        def attempt() -> LearningOutcome:
            current = self.repository.get_or_create_document(decision.document_id)
            profile = self._profile_for(prefs, profile_id, current.value)
            outcome = self.learning.record(
                current.value,
                decision,
                tags,
                style=effective_style(prefs.base_style, profile),
                audience=profile,
            )
            self.repository.save_document(outcome.preferences, expected_revision=current.revision)
            return outcome

        outcome = retry_on_conflict(attempt, self.settings.conflict_retries)
        for error in outcome.errors:
            logger.warning("Learning step failed for %s: %s", decision.document_id, error)
        return outcome

    # -- document layer --

    def get_preferences_summary(self, document_id: str) -> profiles.PreferencesSummary:
        loaded = self.repository.load_document(document_id)
        document = loaded.value if loaded else DocumentPreferences(document_id=document_id)
        return profiles.get_preferences_summary(document)

    def get_document(self, document_id: str) -> DocumentPreferences | None:
        loaded = self.repository.load_document(document_id)
        return loaded.value if loaded else None

    def clear_document_adjustments(
        self, document_id: str, *, keep_history: bool = True
    ) -> DocumentPreferences:
        """Reset the document layer. Document goals always survive."""

        def clear(document: DocumentPreferences) -> None:
            document.adjustments = document.adjustments.cleared()
            if not keep_history:
                document.edit_history = []
                document.decision_count = 0

        document, _ = self.repository.update_document(document_id, clear)
        return document

    def update_document_sliders(
        self,
        document_id: str,
        *,
        verbosity: float | None = None,
        formality: float | None = None,
        hedging: float | None = None,
    ) -> DocumentAdjustments:
        def update(document: DocumentPreferences) -> None:
            adjustments = document.adjustments
            if verbosity is not None:
                adjustments.verbosity_adjust = verbosity
            if formality is not None:
                adjustments.formality_adjust = formality
            if hedging is not None:
                adjustments.hedging_adjust = hedging

        document, _ = self.repository.update_document(document_id, update)
        return document.adjustments

    def synthesize_goals(
        self,
        document_id: str,
        text: str,
        *,
        structure: DocumentStructure | None = None,
        force: bool = False,
    ) -> DocumentGoals | None:
        """Infer and store the document's goals once.

        Stored goals are returned as they are unless ``force`` is set, and
        locked or user-edited goals are never replaced.
        """
        if not text.strip():
            raise ValidationError("Document text is required to synthesize goals")

        existing = self.repository.load_document(document_id)
        goals = existing.value.adjustments.document_goals if existing else None
        if goals is not None and (not force or goals.locked or goals.user_edited):
            return goals

        prefs = self.repository.load_preferences().value
        profile = self._profile_for(prefs, None, existing.value if existing else None)
        synthesized = self.goals.synthesize(text, structure=structure, audience=profile)
        if synthesized is None:
            return goals

        def store(document: DocumentPreferences) -> DocumentGoals:
            current = document.adjustments.document_goals
            if current is not None and (current.locked or current.user_edited):
                return current
            document.adjustments.document_goals = synthesized
            return synthesized

        _, stored = self.repository.update_document(document_id, store)
        return stored

    def set_document_goals(
        self, document_id: str, goals: DocumentGoals | dict, *, lock: bool = False
    ) -> DocumentGoals:
        goals = _validated(DocumentGoals, goals, "document goals")
        edited = goals.model_copy(update={"user_edited": True, "locked": lock or goals.locked})

        def store(document: DocumentPreferences) -> None:
            document.adjustments.document_goals = edited

        self.repository.update_document(document_id, store)
        return edited

    def consolidate_guidance(self, document_id: str) -> list[str] | None:
        """Compress the document's framing guidance on request.

        Returns the new list, or None if the provider could not produce a
        usable one (the stored list is left as it was).
        """
        document = self._require_document(document_id)
        guidance = document.adjustments.additional_framing_guidance
        if len(guidance) < 2:
            raise ValidationError("Need at least 2 guidance items to consolidate")

        compressed = self.consolidator.compress(
            guidance,
            label="guidance",
            context=[r.rule for r in document.adjustments.learned_rules],
        )
        if compressed is None:
            return None

        def store(document: DocumentPreferences) -> None:
            document.adjustments.additional_framing_guidance = compressed

        self.repository.update_document(document_id, store)
        return compressed

    def extract_constraints(
        self, document_id: str, text: str, *, merge: bool = True
    ) -> ExtractedConstraints | None:
        """Extract writing constraints from instructional text.

        With ``merge`` the constraints are folded into the document layer.
        Returns None, storing nothing, when the provider answer is unusable.
        """
        constraints = self.constraints.extract(text)
        if constraints is None:
            return None
        if merge:

            def store(document: DocumentPreferences) -> None:
                document.adjustments = merge_constraints(document.adjustments, constraints)

            self.repository.update_document(document_id, store)
            logger.info("Merged extracted constraints into document %s", document_id)
        return constraints

    # -- profiles and base style --

    def merge_document_to_profile(
        self,
        document_id: str,
        *,
        target_profile_id: str | None = None,
        name: str | None = None,
    ) -> AudienceProfile:
        document = self._require_document(document_id)
        _, profile = self.repository.update_preferences(
            lambda prefs: profiles.merge_document_to_profile(
                prefs, document, target_profile_id=target_profile_id, name=name
            )
        )
        logger.info("Merged document %s into profile %s", document_id, profile.name)
        return profile

    def list_profiles(self) -> list[AudienceProfile]:
        return self.repository.load_preferences().value.audience_profiles

    def create_profile(self, data: dict[str, Any]) -> AudienceProfile:
        _, profile = self.repository.update_preferences(
            lambda prefs: profiles.create_profile(prefs, data)
        )
        return profile

    def create_profile_from_description(
        self, name: str, description_text: str, *, description: str = ""
    ) -> AudienceProfile:
        """Create a profile whose settings are drafted from a preference description.

        If drafting fails the profile is still created with default settings.
        """
        if not name.strip():
            raise ValidationError("Profile name is required")

        fields = default_profile_fields()
        if description_text.strip():
            try:
                draft = self.drafter.draft(description_text)
            except ProviderError as exc:
                logger.warning("Profile drafting failed, using defaults: %s", exc)
                draft = None
            if draft is not None:
                fields = draft.profile_fields()

        data = {**fields, "name": name.strip(), "description": description.strip()}
        return self.create_profile(data)

    def update_profile(self, profile_id: str, changes: dict[str, Any]) -> AudienceProfile:
        _, profile = self.repository.update_preferences(
            lambda prefs: profiles.update_profile(prefs, profile_id, changes)
        )
        return profile

    def delete_profile(self, profile_id: str) -> None:
        self.repository.update_preferences(
            lambda prefs: profiles.delete_profile(prefs, profile_id)
        )

    def set_active_profile(self, profile_id: str | None) -> None:
        self.repository.update_preferences(
            lambda prefs: profiles.set_active_profile(prefs, profile_id)
        )

    def get_base_style(self) -> BaseStyle:
        return self.repository.load_preferences().value.base_style

    def update_base_style(self, changes: dict[str, Any]) -> BaseStyle:
        def update(prefs: UserPreferences) -> BaseStyle:
            merged = {**prefs.base_style.model_dump(), **changes}
            prefs.base_style = _validated(BaseStyle, merged, "base style")
            return prefs.base_style

        _, style = self.repository.update_preferences(update)
        return style

    def reset_base_style(self) -> BaseStyle:
        def reset(prefs: UserPreferences) -> BaseStyle:
            prefs.base_style = BaseStyle()
            return prefs.base_style

        _, style = self.repository.update_preferences(reset)
        return style

    # -- import / export --

    def export_preferences(self) -> dict:
        prefs = self.repository.load_preferences().value
        return {
            "version": SCHEMA_VERSION,
            "kind": KIND_PREFERENCES,
            "data": prefs.model_dump(mode="json"),
        }

    def import_preferences(self, record: dict) -> UserPreferences:
        """Replace the global preferences with an exported record.

        Older export formats are migrated first.
        """
        if not isinstance(record, dict):
            raise ValidationError("Imported preferences must be a JSON object")
        try:
            if record_version(record) != SCHEMA_VERSION:
                record = migrate_record(record)
        except PersistenceError as exc:
            raise ValidationError(exc.message) from exc
        if record.get("kind") != KIND_PREFERENCES:
            raise ValidationError("Imported record does not hold global preferences")
        imported = _validated(UserPreferences, record.get("data", {}), "preferences")
        self.repository.save_preferences(imported)
        logger.info("Imported %d audience profiles", len(imported.audience_profiles))
        return imported

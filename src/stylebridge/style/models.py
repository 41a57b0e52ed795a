"""Style model data types: the three preference layers and edit records.

Numeric fields are clamped when they are written (construction or
assignment), so every stored model is in range and merge code never has to
re-check bounds.
"""

from __future__ import annotations

import math
import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

SLIDER_MIN = -2.0
SLIDER_MAX = 2.0
FORMALITY_MIN = 1
FORMALITY_MAX = 5

MAX_AVOID_WORDS = 50
MAX_FRAMING_GUIDANCE = 20
MAX_EDIT_EXAMPLES = 5
MAX_EDIT_HISTORY = 100


def clamp(value: float, low: float, high: float) -> float:
    """Clamp ``value`` into ``[low, high]``. NaN maps to ``low``."""
    if math.isnan(value):
        return low
    return max(low, min(high, value))


def clamp_slider(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return clamp(float(value), SLIDER_MIN, SLIDER_MAX)


def clamp_unit(value: float) -> float:
    return clamp(float(value), 0.0, 1.0)


def clamp_formality(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    if math.isnan(value):
        return 3
    return int(round(clamp(float(value), FORMALITY_MIN, FORMALITY_MAX)))


def dedupe(items: list, key=None) -> list:
    """Drop repeated items, keeping the first occurrence."""
    seen: set = set()
    result = []
    for item in items:
        marker = key(item) if key else item
        if marker in seen:
            continue
        seen.add(marker)
        result.append(item)
    return result


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class Verbosity(str, Enum):
    TERSE = "terse"
    MODERATE = "moderate"
    DETAILED = "detailed"


class HedgingStyle(str, Enum):
    CONFIDENT = "confident"
    BALANCED = "balanced"
    CAUTIOUS = "cautious"


class JargonLevel(str, Enum):
    MINIMAL = "minimal"
    MODERATE = "moderate"
    HEAVY = "heavy"


class LengthTarget(str, Enum):
    CONCISE = "concise"
    STANDARD = "standard"
    COMPREHENSIVE = "comprehensive"


class RuleSource(str, Enum):
    EXPLICIT = "explicit"
    INFERRED = "inferred"
    DOCUMENT = "document"
    DIFF = "diff"


class ProfileSource(str, Enum):
    MANUAL = "manual"
    DOCUMENT = "document"
    INFERRED = "inferred"


class DecisionKind(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PARTIAL = "partial"


class IssueSeverity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"


class PatternKind(str, Enum):
    REMOVAL = "removal"
    ADDITION = "addition"
    SUBSTITUTION = "substitution"


class LearnedRule(BaseModel):
    """A free-text rule with the confidence and provenance it was learned with."""

    model_config = ConfigDict(validate_assignment=True)

    rule: str
    confidence: float = 0.5
    source: RuleSource = RuleSource.INFERRED
    timestamp: datetime = Field(default_factory=datetime.now)

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, v: float) -> float:
        return clamp_unit(v)


def rule_key(rule: LearnedRule) -> str:
    return rule.rule.strip().lower()


class StyleLayer(BaseModel):
    """A partial style record. ``None`` (or an absent field) means "inherit"."""

    model_config = ConfigDict(validate_assignment=True)

    verbosity: Verbosity | None = None
    formality_level: int | None = None
    hedging_style: HedgingStyle | None = None
    active_voice_preference: float | None = None
    preferred_words: dict[str, str] | None = None
    avoid_words: list[str] | None = None
    format_bans: list[str] | None = None
    required_formats: list[str] | None = None
    transition_phrases: list[str] | None = None
    framing_guidance: list[str] | None = None
    learned_rules: list[LearnedRule] | None = None

    @field_validator("formality_level", mode="before")
    @classmethod
    def _clamp_formality(cls, v: Any) -> Any:
        return v if v is None else clamp_formality(v)

    @field_validator("active_voice_preference")
    @classmethod
    def _clamp_active_voice(cls, v: float | None) -> float | None:
        return v if v is None else clamp_unit(v)

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in type(self).model_fields)


class BaseStyle(BaseModel):
    """Global writing defaults. Also the shape of a merged, effective style."""

    model_config = ConfigDict(validate_assignment=True)

    verbosity: Verbosity = Verbosity.MODERATE
    formality_level: int = 3
    hedging_style: HedgingStyle = HedgingStyle.BALANCED
    active_voice_preference: float = 0.7
    preferred_words: dict[str, str] = Field(default_factory=dict)
    avoid_words: list[str] = Field(default_factory=list)
    format_bans: list[str] = Field(default_factory=list)
    required_formats: list[str] = Field(default_factory=list)
    transition_phrases: list[str] = Field(default_factory=list)
    framing_guidance: list[str] = Field(default_factory=list)
    learned_rules: list[LearnedRule] = Field(default_factory=list)

    @field_validator("formality_level", mode="before")
    @classmethod
    def _clamp_formality(cls, v: Any) -> Any:
        return clamp_formality(v)

    @field_validator("active_voice_preference")
    @classmethod
    def _clamp_active_voice(cls, v: float) -> float:
        return clamp_unit(v)


class LengthGuidance(BaseModel):
    target: LengthTarget = LengthTarget.STANDARD
    max_words: int | None = Field(default=None, ge=1)


class AudienceProfile(BaseModel):
    """A named, reusable overlay applied on top of the base style."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: _new_id("profile"))
    name: str
    description: str = ""
    source: ProfileSource = ProfileSource.MANUAL
    jargon_level: JargonLevel = JargonLevel.MODERATE
    discipline_terms: list[str] = Field(default_factory=list)
    emphasis_points: list[str] = Field(default_factory=list)
    framing_guidance: list[str] = Field(default_factory=list)
    length_guidance: LengthGuidance | None = None
    overrides: StyleLayer = Field(default_factory=StyleLayer)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class UserPreferences(BaseModel):
    """The global preference record: base style, profiles, active profile."""

    model_config = ConfigDict(validate_assignment=True)

    base_style: BaseStyle = Field(default_factory=BaseStyle)
    audience_profiles: list[AudienceProfile] = Field(default_factory=list)
    active_profile_id: str | None = None

    def get_profile(self, profile_id: str | None) -> AudienceProfile | None:
        if profile_id is None:
            return None
        for profile in self.audience_profiles:
            if profile.id == profile_id:
                return profile
        return None

    def active_profile(self) -> AudienceProfile | None:
        return self.get_profile(self.active_profile_id)


class DiffPattern(BaseModel):
    """A word-level observation accumulated across rejected suggestions."""

    model_config = ConfigDict(validate_assignment=True)

    kind: PatternKind
    pattern: str
    replacement: str | None = None
    count: int = Field(default=0, ge=0)
    confidence: float = 0.0

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, v: float) -> float:
        return clamp_unit(v)

    @property
    def key(self) -> tuple[str, str, str | None]:
        return (self.kind.value, self.pattern, self.replacement)


class EditExample(BaseModel):
    id: str = Field(default_factory=lambda: _new_id("ex"))
    suggested_edit: str
    user_version: str
    instruction: str | None = None
    feedback: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.now)


class DocumentGoals(BaseModel):
    """What a document is trying to achieve. Set once, kept across resets."""

    summary: str
    objectives: list[str] = Field(default_factory=list)
    audience_needs: str | None = None
    main_argument: str | None = None
    success_criteria: str | None = None
    updated_at: datetime = Field(default_factory=datetime.now)
    user_edited: bool = False
    locked: bool = False


class DocumentAdjustments(BaseModel):
    """The per-document preference layer, learned from edit decisions."""

    model_config = ConfigDict(validate_assignment=True)

    verbosity_adjust: float = 0.0
    formality_adjust: float = 0.0
    hedging_adjust: float = 0.0
    additional_avoid_words: list[str] = Field(default_factory=list)
    additional_prefer_words: dict[str, str] = Field(default_factory=dict)
    additional_framing_guidance: list[str] = Field(default_factory=list)
    learned_rules: list[LearnedRule] = Field(default_factory=list)
    diff_patterns: list[DiffPattern] = Field(default_factory=list)
    edit_examples: list[EditExample] = Field(default_factory=list)
    document_goals: DocumentGoals | None = None

    @field_validator("verbosity_adjust", "formality_adjust", "hedging_adjust")
    @classmethod
    def _clamp_slider(cls, v: float) -> float:
        return clamp_slider(v)

    @field_validator("additional_avoid_words")
    @classmethod
    def _cap_avoid_words(cls, v: list[str]) -> list[str]:
        return dedupe(v)[:MAX_AVOID_WORDS]

    @field_validator("additional_framing_guidance")
    @classmethod
    def _cap_guidance(cls, v: list[str]) -> list[str]:
        return dedupe(v)[:MAX_FRAMING_GUIDANCE]

    @field_validator("edit_examples")
    @classmethod
    def _keep_recent_examples(cls, v: list[EditExample]) -> list[EditExample]:
        return v[-MAX_EDIT_EXAMPLES:]

    def cleared(self) -> DocumentAdjustments:
        """Return default adjustments that keep this document's goals."""
        goals = self.document_goals.model_copy(deep=True) if self.document_goals else None
        return DocumentAdjustments(document_goals=goals)


class CritiqueIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str = "structure"
    severity: IssueSeverity = IssueSeverity.MINOR
    description: str = ""


class CritiqueAnalysis(BaseModel):
    """A scored assessment of one candidate revision. Never mutated."""

    model_config = ConfigDict(frozen=True)

    alignment_score: float
    predicted_acceptance: float = 0.5
    issues: list[CritiqueIssue] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    fallback: bool = False

    @field_validator("alignment_score", "predicted_acceptance")
    @classmethod
    def _clamp_scores(cls, v: float) -> float:
        return clamp_unit(v)


class EditDecision(BaseModel):
    """What the user did with one suggestion. Append-only."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: _new_id("decision"))
    document_id: str = Field(min_length=1)
    paragraph_index: int = Field(ge=0)
    original_text: str = ""
    suggested_text: str = ""
    final_text: str = ""
    decision: DecisionKind
    instruction: str | None = None
    critique: CritiqueAnalysis | None = None
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def unchanged(self) -> bool:
        return self.suggested_text == self.final_text


class DocumentPreferences(BaseModel):
    """Everything stored for one document: its adjustment layer and history."""

    model_config = ConfigDict(validate_assignment=True)

    document_id: str
    base_profile_id: str | None = None
    adjustments: DocumentAdjustments = Field(default_factory=DocumentAdjustments)
    edit_history: list[EditDecision] = Field(default_factory=list)
    # Decisions ever recorded; keeps counting after the history starts evicting.
    decision_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("edit_history")
    @classmethod
    def _evict_oldest(cls, v: list[EditDecision]) -> list[EditDecision]:
        return v[-MAX_EDIT_HISTORY:]

    def append_decision(self, decision: EditDecision) -> None:
        self.decision_count = max(self.decision_count, len(self.edit_history)) + 1
        self.edit_history = [*self.edit_history, decision]
        self.touch()

    def touch(self) -> None:
        self.updated_at = datetime.now()

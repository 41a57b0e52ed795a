"""Audience profile management, preference summaries and profile promotion.

Functions that change ``UserPreferences`` mutate the object they are given;
callers run them inside a repository update so the change is saved with a
revision check.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import ValidationError as SchemaError

from stylebridge.errors import ValidationError
from stylebridge.learning.base import merge_guidance, merge_words
from stylebridge.style.models import (
    AudienceProfile,
    DecisionKind,
    DocumentAdjustments,
    DocumentPreferences,
    EditDecision,
    HedgingStyle,
    LearnedRule,
    ProfileSource,
    RuleSource,
    StyleLayer,
    UserPreferences,
    Verbosity,
    rule_key,
)

_VERBOSITY_SCALE = [Verbosity.TERSE, Verbosity.MODERATE, Verbosity.DETAILED]
_HEDGING_SCALE = [HedgingStyle.CONFIDENT, HedgingStyle.BALANCED, HedgingStyle.CAUTIOUS]

_READ_ONLY_PROFILE_FIELDS = {"id", "created_at", "updated_at"}


@dataclass
class EditStats:
    total: int = 0
    accepted: int = 0
    rejected: int = 0
    partial: int = 0

    @property
    def acceptance_rate(self) -> float:
        """Accepted plus half of partial, over all decisions."""
        if not self.total:
            return 0.0
        return (self.accepted + 0.5 * self.partial) / self.total


@dataclass
class PreferencesSummary:
    has_adjustments: bool
    lines: list[str] = field(default_factory=list)
    edit_count: int = 0
    acceptance_rate: float = 0.0


def edit_stats(history: list[EditDecision]) -> EditStats:
    stats = EditStats(total=len(history))
    for decision in history:
        if decision.decision is DecisionKind.ACCEPTED:
            stats.accepted += 1
        elif decision.decision is DecisionKind.REJECTED:
            stats.rejected += 1
        else:
            stats.partial += 1
    return stats


def summary_lines(adjustments: DocumentAdjustments) -> list[str]:
    lines = []
    if adjustments.verbosity_adjust:
        lines.append(f"Verbosity: {adjustments.verbosity_adjust:+.1f}")
    if adjustments.formality_adjust:
        lines.append(f"Formality: {adjustments.formality_adjust:+.1f}")
    if adjustments.hedging_adjust:
        lines.append(f"Hedging: {adjustments.hedging_adjust:+.1f}")
    if adjustments.additional_avoid_words:
        lines.append(f"{len(adjustments.additional_avoid_words)} additional words to avoid")
    if adjustments.additional_prefer_words:
        lines.append(f"{len(adjustments.additional_prefer_words)} word preferences")
    if adjustments.additional_framing_guidance:
        lines.append(f"{len(adjustments.additional_framing_guidance)} framing guidance items")
    if adjustments.learned_rules:
        lines.append(f"{len(adjustments.learned_rules)} learned rules")
    return lines


def get_preferences_summary(prefs: DocumentPreferences) -> PreferencesSummary:
    lines = summary_lines(prefs.adjustments)
    stats = edit_stats(prefs.edit_history)
    return PreferencesSummary(
        has_adjustments=bool(lines),
        lines=lines,
        edit_count=stats.total,
        acceptance_rate=stats.acceptance_rate,
    )


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _on_scale(scale: list, adjust: float):
    index = 1 + _round_half_up(adjust)
    return scale[max(0, min(len(scale) - 1, index))]


def _document_rules(rules: list[LearnedRule]) -> list[LearnedRule]:
    return [
        LearnedRule(rule=r.rule, confidence=r.confidence, source=RuleSource.DOCUMENT)
        for r in rules
    ]


def _require_profile(prefs: UserPreferences, profile_id: str) -> AudienceProfile:
    profile = prefs.get_profile(profile_id)
    if profile is None:
        raise ValidationError(f"Unknown audience profile: {profile_id}")
    return profile


def merge_document_to_profile(
    prefs: UserPreferences,
    document: DocumentPreferences,
    *,
    target_profile_id: str | None = None,
    name: str | None = None,
) -> AudienceProfile:
    """Promote a document's learned layer into an audience profile.

    Without ``target_profile_id`` a new profile called ``name`` is created,
    with the document's sliders turned into scalar overrides. With one, the
    document's words, guidance and rules are folded into that profile; words
    the profile already maps keep their mapping.
    """
    adj = document.adjustments

    if target_profile_id is None:
        if not name or not name.strip():
            raise ValidationError("A name is required to create a profile from a document")
        profile = AudienceProfile(
            name=name.strip(),
            description=f"Created from document {document.document_id}",
            source=ProfileSource.DOCUMENT,
            framing_guidance=list(adj.additional_framing_guidance),
            overrides=StyleLayer(
                verbosity=_on_scale(_VERBOSITY_SCALE, adj.verbosity_adjust),
                formality_level=3 + _round_half_up(adj.formality_adjust),
                hedging_style=_on_scale(_HEDGING_SCALE, adj.hedging_adjust),
                avoid_words=list(adj.additional_avoid_words) or None,
                preferred_words=dict(adj.additional_prefer_words) or None,
                learned_rules=_document_rules(adj.learned_rules) or None,
            ),
        )
        prefs.audience_profiles = [*prefs.audience_profiles, profile]
        return profile

    profile = _require_profile(prefs, target_profile_id)
    overrides = profile.overrides.model_copy(deep=True)
    if adj.additional_avoid_words:
        overrides.avoid_words = merge_words(overrides.avoid_words or [], adj.additional_avoid_words)
    if adj.additional_prefer_words:
        overrides.preferred_words = {
            **adj.additional_prefer_words,
            **(overrides.preferred_words or {}),
        }
    if adj.learned_rules:
        existing = {rule_key(r) for r in overrides.learned_rules or []}
        new_rules = [r for r in _document_rules(adj.learned_rules) if rule_key(r) not in existing]
        overrides.learned_rules = [*(overrides.learned_rules or []), *new_rules]
    profile.overrides = overrides
    if adj.additional_framing_guidance:
        profile.framing_guidance = merge_guidance(
            profile.framing_guidance, adj.additional_framing_guidance
        )
    profile.updated_at = datetime.now()
    return profile


def create_profile(prefs: UserPreferences, data: dict[str, Any]) -> AudienceProfile:
    fields = {k: v for k, v in data.items() if k not in _READ_ONLY_PROFILE_FIELDS}
    try:
        profile = AudienceProfile.model_validate(fields)
    except SchemaError as exc:
        raise ValidationError(f"Invalid profile: {exc}") from exc
    prefs.audience_profiles = [*prefs.audience_profiles, profile]
    return profile


def update_profile(
    prefs: UserPreferences, profile_id: str, changes: dict[str, Any]
) -> AudienceProfile:
    current = _require_profile(prefs, profile_id)
    merged = current.model_dump()
    merged.update({k: v for k, v in changes.items() if k not in _READ_ONLY_PROFILE_FIELDS})
    merged["updated_at"] = datetime.now()
    try:
        updated = AudienceProfile.model_validate(merged)
    except SchemaError as exc:
        raise ValidationError(f"Invalid profile update: {exc}") from exc
    prefs.audience_profiles = [
        updated if p.id == profile_id else p for p in prefs.audience_profiles
    ]
    return updated


def delete_profile(prefs: UserPreferences, profile_id: str) -> None:
    _require_profile(prefs, profile_id)
    prefs.audience_profiles = [p for p in prefs.audience_profiles if p.id != profile_id]
    if prefs.active_profile_id == profile_id:
        prefs.active_profile_id = None


def set_active_profile(prefs: UserPreferences, profile_id: str | None) -> None:
    if profile_id is not None:
        _require_profile(prefs, profile_id)
    prefs.active_profile_id = profile_id

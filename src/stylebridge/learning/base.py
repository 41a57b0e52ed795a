"""Shared types and list-merge helpers for the learning strategies."""

from __future__ import annotations

from dataclasses import dataclass, field

from stylebridge.style.models import (
    MAX_AVOID_WORDS,
    MAX_FRAMING_GUIDANCE,
    DocumentAdjustments,
    DocumentPreferences,
    LearnedRule,
    dedupe,
    rule_key,
)


def _clean(items: list[str]) -> list[str]:
    return [item.strip() for item in items if item and item.strip()]


def merge_words(existing: list[str], new: list[str]) -> list[str]:
    """Append new avoid words, dropping repeats and keeping the first 50."""
    return dedupe([*existing, *_clean(new)], key=str.lower)[:MAX_AVOID_WORDS]


def push_words(existing: list[str], new: list[str]) -> list[str]:
    """Append new avoid words, dropping repeats and keeping the latest 50.

    A full list makes room by dropping its oldest entries.
    """
    new_words = _clean(new)
    fresh = {word.lower() for word in new_words}
    kept = [word for word in existing if word.lower() not in fresh]
    return dedupe([*kept, *new_words], key=str.lower)[-MAX_AVOID_WORDS:]


def merge_guidance(existing: list[str], new: list[str]) -> list[str]:
    return dedupe([*existing, *_clean(new)])[:MAX_FRAMING_GUIDANCE]


def merge_prefer_words(existing: dict[str, str], new: dict[str, str]) -> dict[str, str]:
    """Add new word mappings. A word that already has a mapping keeps it."""
    merged = dict(existing)
    for source, target in new.items():
        source, target = source.strip(), target.strip()
        if source and target and source not in merged:
            merged[source] = target
    return merged


def add_rule(rules: list[LearnedRule], rule: LearnedRule) -> list[LearnedRule]:
    """Append ``rule`` unless a rule with the same text is already present."""
    if any(rule_key(r) == rule_key(rule) for r in rules):
        return list(rules)
    return [*rules, rule]


@dataclass
class LearningOutcome:
    """Result of recording one decision."""

    preferences: DocumentPreferences
    insights: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def adjustments(self) -> DocumentAdjustments:
        return self.preferences.adjustments

"""Word-level diff learning from rejected suggestions.

A single rejection says little about which words the user dislikes, so each
observation only bumps a support counter. Patterns start influencing the
style once the same observation has been made on ``ACTIVATION_SUPPORT``
separate decisions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from stylebridge.learning.base import add_rule, merge_prefer_words, push_words
from stylebridge.style.models import (
    DecisionKind,
    DiffPattern,
    DocumentAdjustments,
    EditDecision,
    LearnedRule,
    PatternKind,
    RuleSource,
    dedupe,
)

ACTIVATION_SUPPORT = 5
MIN_TOKEN_LENGTH = 3
MAX_REMOVALS = 10
MAX_ADDITIONS = 10
MAX_SUBSTITUTIONS = 5
# Candidate removals/additions considered when pairing substitutions.
SUBSTITUTION_CANDIDATES = 5
# Largest gap in relative position for a removal/addition pair to count as a swap.
SUBSTITUTION_WINDOW = 0.1
MAX_DIFF_PATTERNS = 200

_EDGE_PUNCTUATION = re.compile(r"^\W+|\W+$")


@dataclass
class WordDiff:
    removals: list[str] = field(default_factory=list)
    additions: list[str] = field(default_factory=list)
    substitutions: list[tuple[str, str]] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.removals or self.additions or self.substitutions)


def tokenize(text: str) -> list[str]:
    """Lowercased words of three or more characters, edge punctuation removed."""
    tokens = (_EDGE_PUNCTUATION.sub("", word.lower()) for word in text.split())
    return [token for token in tokens if len(token) >= MIN_TOKEN_LENGTH]


def is_material_change(suggested: str, final: str) -> bool:
    return tokenize(suggested) != tokenize(final)


def compute_word_diff(suggested: str, final: str) -> WordDiff:
    suggested_words = tokenize(suggested)
    final_words = tokenize(final)
    suggested_set = set(suggested_words)
    final_set = set(final_words)

    removals = [w for w in suggested_words if w not in final_set]
    additions = [w for w in final_words if w not in suggested_set]

    substitutions: list[tuple[str, str]] = []
    for removed in removals[:SUBSTITUTION_CANDIDATES]:
        removed_pos = suggested_words.index(removed) / len(suggested_words)
        for added in additions[:SUBSTITUTION_CANDIDATES]:
            added_pos = final_words.index(added) / len(final_words)
            if abs(removed_pos - added_pos) < SUBSTITUTION_WINDOW:
                substitutions.append((removed, added))
                break

    return WordDiff(
        removals=dedupe(removals)[:MAX_REMOVALS],
        additions=dedupe(additions)[:MAX_ADDITIONS],
        substitutions=dedupe(substitutions)[:MAX_SUBSTITUTIONS],
    )


def _observations(diff: WordDiff) -> list[tuple[PatternKind, str, str | None]]:
    observed = [(PatternKind.REMOVAL, word, None) for word in diff.removals]
    observed += [(PatternKind.ADDITION, word, None) for word in diff.additions]
    observed += [(PatternKind.SUBSTITUTION, src, dst) for src, dst in diff.substitutions]
    return observed


def _evict(patterns: list[DiffPattern]) -> list[DiffPattern]:
    if len(patterns) <= MAX_DIFF_PATTERNS:
        return patterns
    ranked = sorted(enumerate(patterns), key=lambda item: (item[1].count, item[0]), reverse=True)
    kept = sorted(ranked[:MAX_DIFF_PATTERNS], key=lambda item: item[0])
    return [pattern for _, pattern in kept]


def record_observations(patterns: list[DiffPattern], diff: WordDiff) -> list[DiffPattern]:
    """Return ``patterns`` with each observation in ``diff`` counted once."""
    updated = [p.model_copy() for p in patterns]
    by_key = {p.key: p for p in updated}
    for kind, word, replacement in _observations(diff):
        key = (kind.value, word, replacement)
        pattern = by_key.get(key)
        if pattern is None:
            pattern = DiffPattern(kind=kind, pattern=word, replacement=replacement)
            updated.append(pattern)
            by_key[key] = pattern
        pattern.count = pattern.count + 1
        pattern.confidence = min(1.0, pattern.count / ACTIVATION_SUPPORT)
    return _evict(updated)


def active_patterns(patterns: list[DiffPattern]) -> list[DiffPattern]:
    return [p for p in patterns if p.count >= ACTIVATION_SUPPORT]


def addition_rule(word: str) -> str:
    return f'Use "{word}" where it fits; the user keeps adding it'


def apply_active_patterns(
    adjustments: DocumentAdjustments, patterns: list[DiffPattern]
) -> DocumentAdjustments:
    """Project active patterns onto the document's word lists and rules."""
    updated = adjustments.model_copy(deep=True)
    avoid: list[str] = []
    prefer: dict[str, str] = {}
    rules = updated.learned_rules
    for pattern in active_patterns(patterns):
        if pattern.kind is PatternKind.REMOVAL:
            avoid.append(pattern.pattern)
        elif pattern.kind is PatternKind.SUBSTITUTION and pattern.replacement:
            prefer[pattern.pattern] = pattern.replacement
        elif pattern.kind is PatternKind.ADDITION:
            rules = add_rule(
                rules,
                LearnedRule(
                    rule=addition_rule(pattern.pattern),
                    confidence=pattern.confidence,
                    source=RuleSource.DIFF,
                ),
            )
    updated.additional_avoid_words = push_words(updated.additional_avoid_words, avoid)
    updated.additional_prefer_words = merge_prefer_words(updated.additional_prefer_words, prefer)
    updated.learned_rules = rules
    return updated


def learn_from_diff(
    adjustments: DocumentAdjustments, decision: EditDecision
) -> tuple[DocumentAdjustments, list[str]]:
    """Update diff patterns from a rejected decision with a materially different final text."""
    if decision.decision is not DecisionKind.REJECTED:
        return adjustments, []
    if not decision.final_text.strip():
        return adjustments, []
    if not decision.suggested_text or not is_material_change(
        decision.suggested_text, decision.final_text
    ):
        return adjustments, []

    diff = compute_word_diff(decision.suggested_text, decision.final_text)
    if diff.is_empty():
        return adjustments, []

    was_active = {p.key for p in active_patterns(adjustments.diff_patterns)}
    patterns = record_observations(adjustments.diff_patterns, diff)
    updated = apply_active_patterns(adjustments, patterns)
    updated.diff_patterns = patterns

    insights = ["Learned from word-level diff analysis (rejection)"]
    newly_active = [p for p in active_patterns(patterns) if p.key not in was_active]
    if newly_active:
        insights.append(f"Detected {len(newly_active)} consistent word pattern(s)")
    return updated, insights

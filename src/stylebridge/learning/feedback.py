"""Explicit feedback: fixed nudges and rules for tags the user picked."""

from __future__ import annotations

from dataclasses import dataclass

from stylebridge.errors import ValidationError
from stylebridge.style.models import (
    DocumentAdjustments,
    EditExample,
    LearnedRule,
    RuleSource,
    dedupe,
)

SLIDER_STEP = 0.5
EXPLICIT_RULE_CONFIDENCE = 0.85
RULE_BOOST = 0.15
MAX_BOOSTED_CONFIDENCE = 0.95
SNIPPET_LENGTH = 200

# Leading characters of a rule used to spot an existing similar rule.
_SIMILARITY_PREFIX = 20


@dataclass(frozen=True)
class FeedbackEffect:
    verbosity: float = 0.0
    formality: float = 0.0
    hedging: float = 0.0
    rule: str | None = None


FEEDBACK_EFFECTS: dict[str, FeedbackEffect] = {
    "too_formal": FeedbackEffect(
        formality=-SLIDER_STEP, rule="Use a more casual, conversational tone"
    ),
    "too_casual": FeedbackEffect(
        formality=SLIDER_STEP, rule="Maintain a more formal, professional tone"
    ),
    "too_verbose": FeedbackEffect(
        verbosity=-SLIDER_STEP, rule="Be more concise - cut unnecessary words"
    ),
    "too_long": FeedbackEffect(
        verbosity=-SLIDER_STEP, rule="Be more concise - cut unnecessary words"
    ),
    "too_terse": FeedbackEffect(
        verbosity=SLIDER_STEP, rule="Provide more detail and explanation"
    ),
    "too_short": FeedbackEffect(
        verbosity=SLIDER_STEP, rule="Provide more detail and explanation"
    ),
    "too_hedged": FeedbackEffect(
        hedging=-SLIDER_STEP, rule="State claims directly without unnecessary qualifiers"
    ),
    "too_bold": FeedbackEffect(
        hedging=SLIDER_STEP, rule="Qualify claims where the evidence is uncertain"
    ),
    "changed_meaning": FeedbackEffect(
        rule="NEVER change the core meaning or argument - only style"
    ),
    "over_edited": FeedbackEffect(
        rule="Make MINIMAL changes - preserve original phrasing where possible"
    ),
    "wrong_tone": FeedbackEffect(rule="Match the original tone and voice more closely"),
    "bad_word_choice": FeedbackEffect(
        rule="Preserve domain-specific terminology and word choices"
    ),
    "lost_nuance": FeedbackEffect(rule="Preserve subtle distinctions and nuanced language"),
    "other": FeedbackEffect(),
}


def validate_tags(tags: list[str] | tuple[str, ...]) -> list[str]:
    """Normalize tags and reject unknown ones."""
    normalized = [tag.strip().lower() for tag in tags]
    unknown = sorted({tag for tag in normalized if tag not in FEEDBACK_EFFECTS})
    if unknown:
        raise ValidationError(
            f"Unknown feedback tag(s): {', '.join(unknown)}. "
            f"Expected one of: {', '.join(FEEDBACK_EFFECTS)}"
        )
    return dedupe(normalized)


def _boost_or_add(rules: list[LearnedRule], text: str) -> tuple[list[LearnedRule], bool]:
    prefix = text.lower()[:_SIMILARITY_PREFIX]
    updated = [rule.model_copy() for rule in rules]
    for rule in updated:
        if prefix in rule.rule.lower():
            rule.confidence = min(MAX_BOOSTED_CONFIDENCE, rule.confidence + RULE_BOOST)
            return updated, True
    updated.append(
        LearnedRule(
            rule=text,
            confidence=EXPLICIT_RULE_CONFIDENCE,
            source=RuleSource.EXPLICIT,
        )
    )
    return updated, False


def apply_feedback(
    adjustments: DocumentAdjustments,
    tags: list[str],
    *,
    suggested: str,
    user_version: str,
    instruction: str | None = None,
) -> tuple[DocumentAdjustments, list[str]]:
    """Apply validated ``tags`` to a copy of ``adjustments``.

    Returns the new adjustments and human-readable insights.
    """
    updated = adjustments.model_copy(deep=True)
    insights: list[str] = []

    for tag in tags:
        effect = FEEDBACK_EFFECTS[tag]
        if effect.verbosity:
            updated.verbosity_adjust = updated.verbosity_adjust + effect.verbosity
        if effect.formality:
            updated.formality_adjust = updated.formality_adjust + effect.formality
        if effect.hedging:
            updated.hedging_adjust = updated.hedging_adjust + effect.hedging
        if effect.rule:
            rules, boosted = _boost_or_add(updated.learned_rules, effect.rule)
            updated.learned_rules = rules
            if boosted:
                insights.append(f"Reinforced rule: {effect.rule}")

    updated.edit_examples = [
        *updated.edit_examples,
        EditExample(
            suggested_edit=suggested[:SNIPPET_LENGTH],
            user_version=user_version[:SNIPPET_LENGTH],
            instruction=instruction,
            feedback=list(tags),
        ),
    ]
    insights.insert(0, f"Learned from explicit feedback: {', '.join(tags)}")
    return updated, insights

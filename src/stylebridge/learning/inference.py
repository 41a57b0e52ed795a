"""Model-inferred learning: ask the provider why a suggestion was changed."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from stylebridge.learning.base import add_rule, merge_guidance, merge_prefer_words, merge_words
from stylebridge.llm.client import ProviderGateway
from stylebridge.llm.parsing import DecodeResult, decode
from stylebridge.llm.prompts import json_messages, render
from stylebridge.style.composer import build_instruction
from stylebridge.style.models import (
    AudienceProfile,
    BaseStyle,
    DecisionKind,
    DocumentAdjustments,
    EditDecision,
    LearnedRule,
    RuleSource,
)

logger = logging.getLogger(__name__)

REJECTED_RULE_CONFIDENCE = 0.8
PARTIAL_RULE_CONFIDENCE = 0.6


class InferredPreferences(BaseModel):
    """What the provider thinks a decision says about the user's preferences."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    verbosity_adjust: float | None = 0.0
    formality_adjust: float | None = 0.0
    hedging_adjust: float | None = 0.0
    learned_rule: str | None = None
    avoid_words: list[str] = Field(default_factory=list)
    prefer_words: dict[str, str] = Field(default_factory=dict)
    framing_guidance: list[str] = Field(default_factory=list)

    def slider_deltas(self) -> dict[str, float]:
        deltas = {
            "verbosity": self.verbosity_adjust or 0.0,
            "formality": self.formality_adjust or 0.0,
            "hedging": self.hedging_adjust or 0.0,
        }
        return {name: value for name, value in deltas.items() if value}


def should_infer(decision: EditDecision) -> bool:
    """Accepted suggestions the user did not touch carry nothing to infer."""
    return not (decision.decision is DecisionKind.ACCEPTED and decision.unchanged)


class PreferenceInferrer:
    """Provider-backed inference over a single decision."""

    def __init__(self, client: ProviderGateway) -> None:
        self._client = client

    def infer(
        self,
        decision: EditDecision,
        style: BaseStyle,
        audience: AudienceProfile | None = None,
    ) -> DecodeResult:
        """Return ``Ok(InferredPreferences)`` or ``ParseFailure``.

        ProviderError propagates.
        """
        prompt = render(
            "learn_decision.j2",
            style_instruction=build_instruction(style, audience),
            decision=decision,
        )
        completion = self._client.complete(
            json_messages("preference learning agent", prompt),
            temperature=0.2,
        )
        return decode(completion.text, InferredPreferences)


def apply_inference(
    adjustments: DocumentAdjustments,
    inferred: InferredPreferences,
    decision: EditDecision,
) -> tuple[DocumentAdjustments, list[str]]:
    """Merge inferred words, guidance and rule into a copy of ``adjustments``.

    Slider deltas are reported as insights only; sliders move through
    explicit feedback, consolidation or direct user edits.
    """
    updated = adjustments.model_copy(deep=True)
    insights: list[str] = []

    if inferred.learned_rule and inferred.learned_rule.strip():
        confidence = (
            REJECTED_RULE_CONFIDENCE
            if decision.decision is DecisionKind.REJECTED
            else PARTIAL_RULE_CONFIDENCE
        )
        updated.learned_rules = add_rule(
            updated.learned_rules,
            LearnedRule(
                rule=inferred.learned_rule.strip(),
                confidence=confidence,
                source=RuleSource.INFERRED,
            ),
        )
        insights.append(f"Inferred rule: {inferred.learned_rule.strip()}")

    if inferred.avoid_words:
        updated.additional_avoid_words = merge_words(
            updated.additional_avoid_words, inferred.avoid_words
        )
    if inferred.prefer_words:
        updated.additional_prefer_words = merge_prefer_words(
            updated.additional_prefer_words, inferred.prefer_words
        )
    if inferred.framing_guidance:
        updated.additional_framing_guidance = merge_guidance(
            updated.additional_framing_guidance, inferred.framing_guidance
        )

    for name, delta in inferred.slider_deltas().items():
        direction = "up" if delta > 0 else "down"
        insights.append(f"Suggested {name} {direction} by {abs(delta):.1f} (not applied)")
    return updated, insights

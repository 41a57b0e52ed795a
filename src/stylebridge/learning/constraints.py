"""Writing constraints pulled from instructional text.

Grant calls, style guides and submission requirements usually say how the
prose should read. The provider turns such text into slider values, word
lists, guidance and rules, which are then folded into a document layer.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from stylebridge.errors import ValidationError
from stylebridge.learning.base import add_rule, merge_guidance, merge_words
from stylebridge.llm.client import ProviderGateway
from stylebridge.llm.parsing import Ok, decode
from stylebridge.llm.prompts import json_messages, render
from stylebridge.style.models import (
    MAX_AVOID_WORDS,
    MAX_FRAMING_GUIDANCE,
    DocumentAdjustments,
    LearnedRule,
    RuleSource,
    clamp_slider,
)

logger = logging.getLogger(__name__)

MIN_TEXT_CHARS = 50
MAX_TEXT_CHARS = 15000
MAX_RULES = 30
DOCUMENT_RULE_CONFIDENCE = 0.9
DEFAULT_SUMMARY = "Constraints extracted from provided text"


def _strings(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


class ExtractedConstraints(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    verbosity_adjust: float = 0.0
    formality_adjust: float = 0.0
    hedging_adjust: float = 0.0
    avoid_words: list[str] = Field(default_factory=list)
    prefer_words: dict[str, str] = Field(default_factory=dict)
    framing_guidance: list[str] = Field(default_factory=list)
    rules: list[str] = Field(default_factory=list)
    summary: str = DEFAULT_SUMMARY

    @field_validator("verbosity_adjust", "formality_adjust", "hedging_adjust", mode="before")
    @classmethod
    def _clamp(cls, v: object) -> object:
        if v is None:
            return 0.0
        return clamp_slider(v) if isinstance(v, (int, float)) else v

    @field_validator("avoid_words", mode="before")
    @classmethod
    def _cap_avoid(cls, v: object) -> list[str]:
        return _strings(v)[:MAX_AVOID_WORDS]

    @field_validator("framing_guidance", mode="before")
    @classmethod
    def _cap_guidance(cls, v: object) -> list[str]:
        return _strings(v)[:MAX_FRAMING_GUIDANCE]

    @field_validator("rules", mode="before")
    @classmethod
    def _cap_rules(cls, v: object) -> list[str]:
        return _strings(v)[:MAX_RULES]

    @field_validator("prefer_words", mode="before")
    @classmethod
    def _string_pairs(cls, v: object) -> dict[str, str]:
        if not isinstance(v, dict):
            return {}
        return {
            k.strip(): t.strip()
            for k, t in v.items()
            if isinstance(k, str) and isinstance(t, str) and k.strip() and t.strip()
        }

    @field_validator("summary", mode="before")
    @classmethod
    def _default_summary(cls, v: object) -> object:
        return v if isinstance(v, str) and v.strip() else DEFAULT_SUMMARY


def _average_in(current: float, incoming: float) -> float:
    return (current + incoming) / 2 if current != 0 else incoming


def merge_constraints(
    adjustments: DocumentAdjustments, constraints: ExtractedConstraints
) -> DocumentAdjustments:
    """Fold extracted constraints into a copy of ``adjustments``.

    A slider that is already set is averaged with the extracted value; an
    unset one takes it. Extracted word substitutions win over existing ones.
    """
    updated = adjustments.model_copy(deep=True)
    updated.verbosity_adjust = _average_in(updated.verbosity_adjust, constraints.verbosity_adjust)
    updated.formality_adjust = _average_in(updated.formality_adjust, constraints.formality_adjust)
    updated.hedging_adjust = _average_in(updated.hedging_adjust, constraints.hedging_adjust)

    updated.additional_avoid_words = merge_words(
        updated.additional_avoid_words, constraints.avoid_words
    )
    updated.additional_prefer_words = {**updated.additional_prefer_words, **constraints.prefer_words}
    updated.additional_framing_guidance = merge_guidance(
        updated.additional_framing_guidance, constraints.framing_guidance
    )

    rules = updated.learned_rules
    for text in constraints.rules:
        rules = add_rule(
            rules,
            LearnedRule(rule=text, confidence=DOCUMENT_RULE_CONFIDENCE, source=RuleSource.DOCUMENT),
        )
    updated.learned_rules = rules
    return updated


class ConstraintExtractor:
    def __init__(self, client: ProviderGateway) -> None:
        self._client = client

    def extract(self, text: str) -> ExtractedConstraints | None:
        """Return the constraints found in ``text``, or None if the answer was unusable.

        ProviderError propagates.
        """
        if len(text.strip()) < MIN_TEXT_CHARS:
            raise ValidationError(
                f"Please provide at least {MIN_TEXT_CHARS} characters of text to analyze"
            )
        if len(text) > MAX_TEXT_CHARS:
            text = text[:MAX_TEXT_CHARS] + "\n\n[Text truncated...]"

        completion = self._client.complete(
            json_messages("requirements analysis agent", render("extract_constraints.j2", text=text)),
            temperature=0.2,
        )
        result = decode(completion.text, ExtractedConstraints)
        if not isinstance(result, Ok):
            logger.info("Constraint extraction response unusable: %s", result.reason)
            return None
        return result.value

"""Pattern consolidation over accumulated edit history.

Two passes run here:

- periodic: every ``PERIOD`` decisions the whole history is summarized and the
  provider proposes aggregate adjustments, applied at half strength.
- size-triggered: once framing guidance or learned rules grow past
  ``COMPRESS_THRESHOLD`` items the provider is asked to merge them into a
  shorter list. Diff rules are neither counted nor compressed.

Both are best effort. A provider or parse failure leaves the adjustments
exactly as they were.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from stylebridge.errors import ProviderError
from stylebridge.learning.base import merge_guidance, merge_prefer_words, merge_words
from stylebridge.llm.client import ProviderGateway
from stylebridge.llm.parsing import Ok, decode
from stylebridge.llm.prompts import json_messages, render
from stylebridge.style.composer import build_instruction
from stylebridge.style.models import (
    AudienceProfile,
    BaseStyle,
    DocumentAdjustments,
    EditDecision,
    LearnedRule,
    RuleSource,
)

logger = logging.getLogger(__name__)

PERIOD = 5
DAMPING = 0.5
COMPRESS_THRESHOLD = 5
MAX_COMPRESSED_ITEMS = 4


class SuggestedAdjustments(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    verbosity_adjust: float | None = None
    formality_adjust: float | None = None
    hedging_adjust: float | None = None
    additional_avoid_words: list[str] = Field(default_factory=list)
    additional_prefer_words: dict[str, str] = Field(default_factory=dict)
    additional_framing_guidance: list[str] = Field(default_factory=list)


class PatternAnalysis(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    patterns: list[str] = Field(default_factory=list)
    suggested_adjustments: SuggestedAdjustments = Field(default_factory=SuggestedAdjustments)


@dataclass
class ConsolidationReport:
    adjustments: DocumentAdjustments
    insights: list[str] = field(default_factory=list)
    error: str | None = None


def is_due(history_length: int) -> bool:
    return history_length >= PERIOD and history_length % PERIOD == 0


def compress_target(count: int) -> int:
    return min(math.ceil(count / 2), MAX_COMPRESSED_ITEMS)


def apply_damped(adjustments: DocumentAdjustments, suggested: SuggestedAdjustments) -> DocumentAdjustments:
    """Apply suggested slider deltas at ``DAMPING`` strength, then merge lists."""
    updated = adjustments.model_copy(deep=True)
    if suggested.verbosity_adjust:
        updated.verbosity_adjust = updated.verbosity_adjust + suggested.verbosity_adjust * DAMPING
    if suggested.formality_adjust:
        updated.formality_adjust = updated.formality_adjust + suggested.formality_adjust * DAMPING
    if suggested.hedging_adjust:
        updated.hedging_adjust = updated.hedging_adjust + suggested.hedging_adjust * DAMPING

    if suggested.additional_avoid_words:
        updated.additional_avoid_words = merge_words(
            updated.additional_avoid_words, suggested.additional_avoid_words
        )
    if suggested.additional_prefer_words:
        updated.additional_prefer_words = merge_prefer_words(
            updated.additional_prefer_words, suggested.additional_prefer_words
        )
    if suggested.additional_framing_guidance:
        updated.additional_framing_guidance = merge_guidance(
            updated.additional_framing_guidance, suggested.additional_framing_guidance
        )
    return updated


class PatternConsolidator:
    def __init__(self, client: ProviderGateway) -> None:
        self._client = client

    def consolidate(
        self,
        adjustments: DocumentAdjustments,
        history: list[EditDecision],
        style: BaseStyle,
        audience: AudienceProfile | None = None,
    ) -> ConsolidationReport:
        """Run the periodic pass over ``history``."""
        prompt = render(
            "consolidate_patterns.j2",
            style_instruction=build_instruction(style, audience),
            decisions=history,
        )
        try:
            completion = self._client.complete(
                json_messages("pattern analysis agent", prompt),
                temperature=0.2,
            )
        except ProviderError as exc:
            logger.warning("Pattern consolidation skipped: %s", exc)
            return ConsolidationReport(adjustments, error=exc.message)

        result = decode(completion.text, PatternAnalysis)
        if not isinstance(result, Ok):
            logger.info("Pattern consolidation response unusable: %s", result.reason)
            return ConsolidationReport(adjustments, error=result.reason)

        analysis = result.value
        insights = []
        if analysis.patterns:
            insights.append("Patterns detected: " + "; ".join(analysis.patterns))
        return ConsolidationReport(
            apply_damped(adjustments, analysis.suggested_adjustments), insights
        )

    def compress(
        self,
        items: list[str],
        *,
        label: str = "guidance",
        context: list[str] | None = None,
    ) -> list[str] | None:
        """Merge ``items`` into at most ``compress_target(len(items))`` strings.

        Returns ``None`` when the provider fails or the answer is unusable.
        """
        target = compress_target(len(items))
        prompt = render(
            "compress_items.j2",
            label=label,
            items=items,
            context=context or [],
            target=target,
        )
        try:
            completion = self._client.complete(
                json_messages("preference consolidation agent", prompt),
                max_tokens=1000,
                temperature=0.1,
            )
        except ProviderError as exc:
            logger.warning("Compressing %s failed: %s", label, exc)
            return None

        result = decode(completion.text, list[str], shape="array")
        if not isinstance(result, Ok):
            logger.info("Compression response for %s unusable: %s", label, result.reason)
            return None

        compressed = [item.strip() for item in result.value if item.strip()]
        if not compressed or len(compressed) > target:
            logger.info(
                "Compression of %d %s returned %d items, keeping originals",
                len(items),
                label,
                len(compressed),
            )
            return None
        return compressed

    def compress_if_needed(self, adjustments: DocumentAdjustments) -> ConsolidationReport:
        """Run the size-triggered pass over guidance and rules."""
        updated = adjustments.model_copy(deep=True)
        insights: list[str] = []
        errors: list[str] = []

        guidance = updated.additional_framing_guidance
        if len(guidance) > COMPRESS_THRESHOLD:
            compressed = self.compress(guidance, label="guidance")
            if compressed is None:
                errors.append("guidance compression failed")
            else:
                updated.additional_framing_guidance = compressed
                insights.append(f"Consolidated {len(guidance)} guidance items into {len(compressed)}")

        # Active diff patterns re-add their rules on every rejection.
        rules = [r for r in updated.learned_rules if r.source is not RuleSource.DIFF]
        diff_rules = [r for r in updated.learned_rules if r.source is RuleSource.DIFF]
        if len(rules) > COMPRESS_THRESHOLD:
            compressed = self.compress([r.rule for r in rules], label="rules")
            if compressed is None:
                errors.append("rule compression failed")
            else:
                confidence = max(r.confidence for r in rules)
                updated.learned_rules = [
                    LearnedRule(rule=text, confidence=confidence, source=RuleSource.INFERRED)
                    for text in compressed
                ] + diff_rules
                insights.append(f"Consolidated {len(rules)} rules into {len(compressed)}")

        return ConsolidationReport(updated, insights, "; ".join(errors) or None)

"""Turn a user's decision on a suggestion into document-layer updates.

Strategies run in priority order on a working copy of the document record:

1. explicit feedback tags (deterministic)
2. word-level diff of rejected suggestions (deterministic)
3. provider inference (skipped for untouched accepts)

Each strategy starts from the result of the previous one and either
replaces it with its own output or, on failure, leaves it as it was. The
decision is appended to the history regardless, and consolidation runs last.
"""

from __future__ import annotations

import logging

from stylebridge.errors import ProviderError, ValidationError
from stylebridge.learning.base import LearningOutcome
from stylebridge.learning.consolidator import PatternConsolidator, is_due
from stylebridge.learning.diff import learn_from_diff
from stylebridge.learning.feedback import apply_feedback, validate_tags
from stylebridge.learning.inference import PreferenceInferrer, apply_inference, should_infer
from stylebridge.llm.client import ProviderGateway
from stylebridge.llm.parsing import Ok
from stylebridge.style.models import (
    AudienceProfile,
    BaseStyle,
    DocumentPreferences,
    EditDecision,
)

logger = logging.getLogger(__name__)


def _slider_insights(prefs: DocumentPreferences) -> list[str]:
    adj = prefs.adjustments
    insights = []
    if adj.verbosity_adjust:
        insights.append(
            f"Verbosity preference: {'more detailed' if adj.verbosity_adjust > 0 else 'more terse'}"
        )
    if adj.formality_adjust:
        insights.append(
            f"Formality preference: {'more formal' if adj.formality_adjust > 0 else 'less formal'}"
        )
    if adj.hedging_adjust:
        insights.append(
            f"Hedging preference: {'more cautious' if adj.hedging_adjust > 0 else 'more confident'}"
        )
    return insights


class LearningEngine:
    def __init__(
        self,
        client: ProviderGateway,
        *,
        inferrer: PreferenceInferrer | None = None,
        consolidator: PatternConsolidator | None = None,
    ) -> None:
        self._inferrer = inferrer or PreferenceInferrer(client)
        self._consolidator = consolidator or PatternConsolidator(client)

    def record(
        self,
        prefs: DocumentPreferences,
        decision: EditDecision,
        feedback_tags: list[str] | tuple[str, ...] = (),
        *,
        style: BaseStyle,
        audience: AudienceProfile | None = None,
    ) -> LearningOutcome:
        """Learn from ``decision`` and return an updated copy of ``prefs``.

        Raises ValidationError for unknown tags or a decision that belongs
        to another document. Provider failures never propagate from here.
        """
        if decision.document_id != prefs.document_id:
            raise ValidationError(
                f"Decision is for document '{decision.document_id}', "
                f"not '{prefs.document_id}'"
            )
        tags = validate_tags(feedback_tags)

        working = prefs.model_copy(deep=True)
        outcome = LearningOutcome(preferences=working)

        if tags:
            adjustments, insights = apply_feedback(
                working.adjustments,
                tags,
                suggested=decision.suggested_text,
                user_version=decision.final_text,
                instruction=decision.instruction,
            )
            working.adjustments = adjustments
            outcome.insights.extend(insights)

        adjustments, insights = learn_from_diff(working.adjustments, decision)
        working.adjustments = adjustments
        outcome.insights.extend(insights)

        if should_infer(decision):
            self._infer(working, decision, style, audience, outcome)

        working.append_decision(decision)
        self._consolidate(working, style, audience, outcome)

        outcome.insights.extend(_slider_insights(working))
        if working.adjustments.edit_examples:
            outcome.insights.append(f"Stored {len(working.adjustments.edit_examples)} edit examples")
        logger.info(
            "Recorded %s decision for %s (%d in history)",
            decision.decision.value,
            working.document_id,
            len(working.edit_history),
        )
        return outcome

    def _infer(
        self,
        working: DocumentPreferences,
        decision: EditDecision,
        style: BaseStyle,
        audience: AudienceProfile | None,
        outcome: LearningOutcome,
    ) -> None:
        try:
            result = self._inferrer.infer(decision, style, audience)
        except ProviderError as exc:
            logger.warning("Preference inference failed: %s", exc)
            outcome.errors.append(f"inference: {exc.message}")
            return
        if not isinstance(result, Ok):
            logger.info("Preference inference response unusable: %s", result.reason)
            outcome.errors.append(f"inference: {result.reason}")
            return
        adjustments, insights = apply_inference(working.adjustments, result.value, decision)
        working.adjustments = adjustments
        outcome.insights.extend(insights)

    def _consolidate(
        self,
        working: DocumentPreferences,
        style: BaseStyle,
        audience: AudienceProfile | None,
        outcome: LearningOutcome,
    ) -> None:
        if is_due(working.decision_count):
            report = self._consolidator.consolidate(
                working.adjustments, working.edit_history, style, audience
            )
            working.adjustments = report.adjustments
            outcome.insights.extend(report.insights)
            if report.error:
                outcome.errors.append(f"consolidation: {report.error}")

        report = self._consolidator.compress_if_needed(working.adjustments)
        working.adjustments = report.adjustments
        outcome.insights.extend(report.insights)
        if report.error:
            outcome.errors.append(f"compression: {report.error}")

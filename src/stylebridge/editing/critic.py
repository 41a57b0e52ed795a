"""Critique scoring: rate a candidate revision against the effective style."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from stylebridge.errors import ProviderError
from stylebridge.llm.client import ProviderGateway
from stylebridge.llm.parsing import Ok, decode
from stylebridge.llm.prompts import json_messages, render
from stylebridge.style.composer import build_document_directives, build_instruction
from stylebridge.style.models import (
    AudienceProfile,
    BaseStyle,
    CritiqueAnalysis,
    CritiqueIssue,
    DocumentAdjustments,
    IssueSeverity,
)

logger = logging.getLogger(__name__)

FALLBACK_SCORE = 0.7
FALLBACK_NOTE = "Automatic critique unavailable; a fallback score was used."


class _IssuePayload(BaseModel):
    type: str = "structure"
    severity: IssueSeverity = IssueSeverity.MINOR
    description: str = ""


class _CritiquePayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    alignment_score: float
    predicted_acceptance: float = 0.5
    issues: list[_IssuePayload] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


def fallback_critique() -> CritiqueAnalysis:
    return CritiqueAnalysis(
        alignment_score=FALLBACK_SCORE,
        predicted_acceptance=FALLBACK_SCORE,
        issues=[],
        suggestions=[FALLBACK_NOTE],
        fallback=True,
    )


class CritiqueScorer:
    """Scores candidates through the provider. Never raises.

    Parse failures and provider failures both produce the fallback critique,
    so the edit loop always has a score to compare.
    """

    def __init__(self, client: ProviderGateway) -> None:
        self._client = client

    def score(
        self,
        original: str,
        candidate: str,
        style: BaseStyle,
        *,
        audience: AudienceProfile | None = None,
        adjustments: DocumentAdjustments | None = None,
        section_type: str | None = None,
    ) -> CritiqueAnalysis:
        prompt = render(
            "critique.j2",
            style_instruction=build_instruction(style, audience),
            directives=build_document_directives(adjustments) if adjustments else [],
            section_type=section_type,
            original=original,
            candidate=candidate,
        )

        try:
            completion = self._client.complete(
                json_messages("writing critique agent", prompt),
                temperature=0.2,
            )
        except ProviderError as exc:
            logger.warning("Critique call failed, using fallback score: %s", exc)
            return fallback_critique()

        result = decode(completion.text, _CritiquePayload)
        if not isinstance(result, Ok):
            logger.info("Critique response unusable (%s), using fallback score", result.reason)
            return fallback_critique()

        payload = result.value
        return CritiqueAnalysis(
            alignment_score=payload.alignment_score,
            predicted_acceptance=payload.predicted_acceptance,
            issues=[
                CritiqueIssue(
                    type=issue.type,
                    severity=issue.severity,
                    description=issue.description,
                )
                for issue in payload.issues
            ],
            suggestions=payload.suggestions,
        )

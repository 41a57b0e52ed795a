"""Candidate generation for a single paragraph."""

from __future__ import annotations

import re

from stylebridge.editing.base import DocumentContext, EditRequest
from stylebridge.llm.client import ProviderGateway
from stylebridge.llm.prompts import render
from stylebridge.style.composer import build_document_directives, build_instruction
from stylebridge.style.models import (
    AudienceProfile,
    BaseStyle,
    CritiqueAnalysis,
    DocumentAdjustments,
)

DEFAULT_INSTRUCTION = "Improve this paragraph according to my style preferences."

# Share of the original word count allowed in terse mode.
TERSE_WORD_RATIO = 0.7

_LEADING_LABELS = [
    re.compile(r"^here'?s?\s+(the\s+)?edited\s+(paragraph|version|text):?\s*", re.IGNORECASE),
    re.compile(r"^(the\s+)?edited\s+(paragraph|version|text):?\s*", re.IGNORECASE),
]


def clean_candidate(text: str) -> str:
    """Strip labels and wrapping quotes the model sometimes adds."""
    cleaned = text.strip()
    for label in _LEADING_LABELS:
        cleaned = label.sub("", cleaned)
    if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in "\"'":
        cleaned = cleaned[1:-1]
    return cleaned.strip()


class ParagraphEditor:
    """Asks the provider for one revised version of a paragraph."""

    def __init__(self, client: ProviderGateway) -> None:
        self._client = client

    def get_system_prompt(
        self,
        request: EditRequest,
        style: BaseStyle,
        *,
        audience: AudienceProfile | None = None,
        adjustments: DocumentAdjustments | None = None,
        previous: tuple[str, CritiqueAnalysis] | None = None,
    ) -> str:
        context = DocumentContext(
            structure=request.structure,
            paragraph_index=request.paragraph_index,
            goals=adjustments.document_goals if adjustments else None,
        )
        before, after = request.surrounding()
        terse = adjustments is not None and adjustments.verbosity_adjust <= -0.5
        word_count = len(request.paragraph.split())

        previous_attempt, previous_critique = previous if previous else (None, None)
        return render(
            "edit_paragraph.j2",
            style_instruction=build_instruction(style, audience, context),
            directives=build_document_directives(adjustments) if adjustments else [],
            before=before,
            after=after,
            paragraph=request.paragraph,
            previous_attempt=previous_attempt,
            previous_score=previous_critique.alignment_score if previous_critique else 0.0,
            issues=previous_critique.issues if previous_critique else [],
            suggestions=previous_critique.suggestions if previous_critique else [],
            instruction=request.instruction or DEFAULT_INSTRUCTION,
            word_count=word_count,
            word_limit=int(word_count * TERSE_WORD_RATIO) if terse else None,
        )

    def generate(
        self,
        request: EditRequest,
        style: BaseStyle,
        *,
        audience: AudienceProfile | None = None,
        adjustments: DocumentAdjustments | None = None,
        previous: tuple[str, CritiqueAnalysis] | None = None,
    ) -> str:
        """Return a cleaned candidate. ProviderError propagates to the caller."""
        system_prompt = self.get_system_prompt(
            request,
            style,
            audience=audience,
            adjustments=adjustments,
            previous=previous,
        )
        completion = self._client.complete(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": "Please edit the paragraph now."},
            ],
            temperature=0.3,
        )
        return clean_candidate(completion.text)

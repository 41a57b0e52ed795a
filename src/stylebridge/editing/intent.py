"""Infer what a document is trying to achieve."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from stylebridge.editing.base import DocumentStructure
from stylebridge.llm.client import ProviderGateway
from stylebridge.llm.parsing import Ok, decode
from stylebridge.llm.prompts import json_messages, render
from stylebridge.style.models import AudienceProfile, DocumentGoals

logger = logging.getLogger(__name__)

# Characters of document text sent to the provider.
MAX_TEXT_CHARS = 12000


class _GoalsPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    summary: str = Field(min_length=1)
    objectives: list[str] = Field(default_factory=list)
    audience_needs: str | None = None
    main_argument: str | None = None
    success_criteria: str | None = None


class GoalSynthesizer:
    def __init__(self, client: ProviderGateway) -> None:
        self._client = client

    def synthesize(
        self,
        text: str,
        *,
        structure: DocumentStructure | None = None,
        audience: AudienceProfile | None = None,
    ) -> DocumentGoals | None:
        """Return inferred goals, or None if the answer could not be used.

        ProviderError propagates.
        """
        prompt = render(
            "synthesize_goals.j2",
            text=text[:MAX_TEXT_CHARS],
            structure=structure,
            audience=audience,
        )
        completion = self._client.complete(
            json_messages("document intent analysis agent", prompt),
            temperature=0.3,
        )
        result = decode(completion.text, _GoalsPayload)
        if not isinstance(result, Ok):
            logger.info("Goal synthesis response unusable: %s", result.reason)
            return None
        payload = result.value
        return DocumentGoals(
            summary=payload.summary,
            objectives=payload.objectives,
            audience_needs=payload.audience_needs,
            main_argument=payload.main_argument,
            success_criteria=payload.success_criteria,
        )

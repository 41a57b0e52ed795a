"""Draft audience profile settings from a plain-language description."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from stylebridge.llm.client import ProviderGateway
from stylebridge.llm.parsing import Ok, decode
from stylebridge.llm.prompts import json_messages, render
from stylebridge.style.models import (
    HedgingStyle,
    JargonLevel,
    LengthGuidance,
    StyleLayer,
    Verbosity,
)

logger = logging.getLogger(__name__)


def _strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _member(enum: type, value: Any) -> Any:
    try:
        return enum(value)
    except ValueError:
        return None


class _Camel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DraftOverrides(_Camel):
    """Style overrides as proposed. Out-of-vocabulary values are dropped."""

    verbosity: Verbosity | None = None
    formality_level: float | None = None
    hedging_style: HedgingStyle | None = None
    active_voice_preference: float | None = None
    format_bans: list[str] | None = None
    avoid_words: list[str] | None = None

    @field_validator("verbosity", mode="before")
    @classmethod
    def _verbosity(cls, v: Any) -> Any:
        return _member(Verbosity, v)

    @field_validator("hedging_style", mode="before")
    @classmethod
    def _hedging(cls, v: Any) -> Any:
        return _member(HedgingStyle, v)

    @field_validator("formality_level", "active_voice_preference", mode="before")
    @classmethod
    def _number(cls, v: Any) -> Any:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return None
        return v

    @field_validator("format_bans", "avoid_words", mode="before")
    @classmethod
    def _string_list(cls, v: Any) -> list[str] | None:
        return _strings(v) if isinstance(v, list) else None

    def to_layer(self) -> StyleLayer:
        # StyleLayer clamps formality to 1..5 and active voice to 0..1.
        return StyleLayer.model_validate(self.model_dump(exclude_none=True))


class ProfileDraft(_Camel):
    jargon_level: JargonLevel = JargonLevel.MODERATE
    discipline_terms: list[str] = Field(default_factory=list)
    emphasis_points: list[str] = Field(default_factory=list)
    framing_guidance: list[str] = Field(default_factory=list)
    length_guidance: LengthGuidance = Field(default_factory=LengthGuidance)
    overrides: DraftOverrides = Field(default_factory=DraftOverrides)

    @field_validator("jargon_level", mode="before")
    @classmethod
    def _jargon(cls, v: Any) -> JargonLevel:
        return _member(JargonLevel, v) or JargonLevel.MODERATE

    @field_validator("discipline_terms", "emphasis_points", "framing_guidance", mode="before")
    @classmethod
    def _string_list(cls, v: Any) -> list[str]:
        return _strings(v)

    @field_validator("length_guidance", mode="before")
    @classmethod
    def _length(cls, v: Any) -> Any:
        if not isinstance(v, dict):
            return LengthGuidance()
        guidance = {"target": v["target"]} if v.get("target") else {}
        max_words = v.get("maxWords", v.get("max_words"))
        if isinstance(max_words, int) and not isinstance(max_words, bool) and max_words > 0:
            guidance["max_words"] = max_words
        try:
            return LengthGuidance.model_validate(guidance)
        except ValueError:
            return LengthGuidance()

    @field_validator("overrides", mode="before")
    @classmethod
    def _overrides(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else {}

    def profile_fields(self) -> dict[str, Any]:
        """Keyword fields for an ``AudienceProfile``."""
        return {
            "jargon_level": self.jargon_level,
            "discipline_terms": self.discipline_terms,
            "emphasis_points": self.emphasis_points,
            "framing_guidance": self.framing_guidance,
            "length_guidance": self.length_guidance,
            "overrides": self.overrides.to_layer(),
        }


def default_profile_fields() -> dict[str, Any]:
    return ProfileDraft().profile_fields()


class ProfileDrafter:
    def __init__(self, client: ProviderGateway) -> None:
        self._client = client

    def draft(self, description: str) -> ProfileDraft | None:
        """Return drafted settings, or None if the answer could not be used.

        ProviderError propagates.
        """
        completion = self._client.complete(
            json_messages(
                "writing style analyst who builds audience profiles",
                render("draft_profile.j2", description=description),
            ),
            temperature=0.3,
        )
        result = decode(completion.text, ProfileDraft)
        if not isinstance(result, Ok):
            logger.info("Profile draft response unusable: %s", result.reason)
            return None
        return result.value

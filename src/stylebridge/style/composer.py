"""Render an effective style into instruction text for the model."""

from __future__ import annotations

from stylebridge.editing.base import DocumentContext
from stylebridge.llm.prompts import render
from stylebridge.style.models import (
    AudienceProfile,
    BaseStyle,
    DocumentAdjustments,
    HedgingStyle,
    JargonLevel,
    LengthTarget,
    Verbosity,
)

# Rules below this confidence are rendered as tentative.
FIRM_RULE_CONFIDENCE = 0.6

VERBOSITY_GUIDANCE = {
    Verbosity.TERSE: (
        "Compress aggressively. Cut filler words (very, really, just, actually, "
        "in order to, the fact that), merge short sentences, replace phrases with "
        "single words and drop throat-clearing. Every sentence should get shorter."
    ),
    Verbosity.MODERATE: (
        "Balance conciseness with sufficient detail. Elaborate where necessary "
        "but avoid padding."
    ),
    Verbosity.DETAILED: (
        "Provide comprehensive, detailed writing. Include relevant context and "
        "thorough explanations. Expand on key points."
    ),
}

HEDGING_GUIDANCE = {
    HedgingStyle.CONFIDENT: (
        "Make direct, confident assertions. Remove hedges such as may, might, "
        "perhaps, appears to and seems to."
    ),
    HedgingStyle.BALANCED: (
        "Balance confidence with appropriate hedging. Be direct but acknowledge "
        "limitations where relevant."
    ),
    HedgingStyle.CAUTIOUS: (
        "Use measured, qualified statements. Add qualifiers such as may, "
        "suggests and could, and avoid absolute claims."
    ),
}

JARGON_GUIDANCE = {
    JargonLevel.MINIMAL: "Use minimal technical jargon. Keep the text accessible to a broad audience.",
    JargonLevel.MODERATE: "Use moderate technical language. Define specialized terms when first used.",
    JargonLevel.HEAVY: "Use technical terminology freely. Assume audience expertise.",
}

LENGTH_GUIDANCE = {
    LengthTarget.CONCISE: "Keep the text concise. Word economy is critical.",
    LengthTarget.STANDARD: "",
    LengthTarget.COMPREHENSIVE: "Provide comprehensive detail where appropriate.",
}

FORMAT_DESCRIPTIONS = {
    "emoji": "emojis",
    "em-dash": "em-dashes",
    "exclamation": "exclamation marks",
    "headers": "markdown headers",
    "bullet-points": "bullet points",
    "bold": "bold text",
    "italics": "italics",
    "code-blocks": "code blocks for code examples",
    "numbered": "numbered lists for sequential steps",
}


def _formality_guidance(level: int) -> str:
    if level >= 5:
        return (
            "Strictly formal, academic register. No contractions, precise vocabulary, "
            "formal transitions such as Furthermore and Consequently."
        )
    if level == 4:
        return "Formal and professional. Avoid contractions and casual phrases."
    if level == 3:
        return "Clear, professional language that is accessible but not overly casual."
    if level == 2:
        return "Relaxed and conversational. Contractions and plain everyday words are fine."
    return (
        "Fully casual, like talking to a friend. Use contractions, first and second "
        "person, and simple transitions such as But and So."
    )


def _active_voice_guidance(preference: float) -> str:
    if preference >= 0.7:
        return f"Strongly prefer active voice ({preference:.2f})."
    if preference >= 0.4:
        return f"Mix active and passive voice as the sentence requires ({preference:.2f})."
    return f"Passive voice is acceptable where it is conventional ({preference:.2f})."


def _describe(items: list[str]) -> list[str]:
    return [FORMAT_DESCRIPTIONS.get(item, item) for item in items]


def _quoted(items: list[str]) -> list[str]:
    return [f'"{item}"' for item in items]


def _audience_context(profile: AudienceProfile) -> dict:
    length = profile.length_guidance
    return {
        "name": profile.name,
        "description": profile.description,
        "jargon": JARGON_GUIDANCE.get(profile.jargon_level, ""),
        "emphasis": profile.emphasis_points,
        "length": LENGTH_GUIDANCE.get(length.target, "") if length else "",
        "max_words": length.max_words if length else None,
        "terms": profile.discipline_terms,
    }


def _document_context(context: DocumentContext) -> dict | None:
    structure = context.structure
    section = context.section
    if structure is None:
        return None
    document = {
        "title": structure.title,
        "type": structure.document_type,
        "main_argument": structure.main_argument,
        "section": section,
        "key_terms": structure.key_terms,
    }
    if not any(document.values()):
        return None
    return document


def build_instruction(
    style: BaseStyle,
    audience: AudienceProfile | None = None,
    context: DocumentContext | None = None,
) -> str:
    """Render every non-empty field of ``style`` as model guidance.

    Deterministic: the same inputs always produce the same text.
    """
    firm = [r.rule for r in style.learned_rules if r.confidence >= FIRM_RULE_CONFIDENCE]
    tentative = [r.rule for r in style.learned_rules if r.confidence < FIRM_RULE_CONFIDENCE]

    return render(
        "style_instruction.j2",
        verbosity=VERBOSITY_GUIDANCE.get(style.verbosity, ""),
        formality=_formality_guidance(style.formality_level),
        hedging=HEDGING_GUIDANCE.get(style.hedging_style, ""),
        active_voice=_active_voice_guidance(style.active_voice_preference),
        preferred_words=list(style.preferred_words.items()),
        avoid_words=_quoted(style.avoid_words),
        format_bans=_describe(style.format_bans),
        required_formats=_describe(style.required_formats),
        transitions=_quoted(style.transition_phrases),
        firm_rules=firm,
        tentative_rules=tentative,
        framing=style.framing_guidance,
        audience=_audience_context(audience) if audience else None,
        document=_document_context(context) if context else None,
        goals=context.goals if context else None,
    )


def build_document_directives(adjustments: DocumentAdjustments) -> list[str]:
    """Emphatic directives for sliders pushed far from neutral."""
    directives: list[str] = []
    if adjustments.verbosity_adjust <= -0.5:
        directives.append(
            "EXTREME COMPRESSION: cut 30-50% of the words. Combine sentences and "
            "cut prepositional phrases. An edit that is only 10% shorter has failed."
        )
    elif adjustments.verbosity_adjust >= 0.5:
        directives.append(
            "DETAILED MODE: maintain or increase the word count. Do not cut content; "
            "expand on ideas where appropriate."
        )

    if adjustments.formality_adjust <= -1:
        directives.append(
            "MAXIMUM CASUAL: use contractions everywhere and write like talking to a friend."
        )
    elif adjustments.formality_adjust >= 1:
        directives.append(
            "MAXIMUM FORMAL: no contractions, academic register, third person."
        )

    if adjustments.hedging_adjust <= -0.5:
        directives.append(
            "CONFIDENT ASSERTIONS: remove hedging words and make definitive statements."
        )
    elif adjustments.hedging_adjust >= 0.5:
        directives.append(
            "CAUTIOUS HEDGING: add qualifiers and acknowledge uncertainty."
        )
    return directives

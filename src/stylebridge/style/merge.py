"""Field-by-field merge of style layers.

Each style field has one merge policy:

- ``OVERRIDE``: scalar fields. A later layer that sets the field wins.
- ``CONCAT``: list fields. Later items are appended, repeats are dropped
  (first occurrence kept).
- ``UNION``: mapping fields. Keys are unioned; the later layer wins on a
  collision.

All three are associative, so folding layers one at a time gives the same
result as merging them in a single call. Nothing here mutates its inputs.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Union

from stylebridge.style.models import (
    AudienceProfile,
    BaseStyle,
    DocumentAdjustments,
    HedgingStyle,
    LearnedRule,
    StyleLayer,
    Verbosity,
    dedupe,
    rule_key,
)

# Slider positions at which the document layer switches a categorical field.
CATEGORY_SWITCH = 0.5


class MergePolicy(str, Enum):
    OVERRIDE = "override"
    CONCAT = "concat"
    UNION = "union"


FIELD_POLICY: dict[str, MergePolicy] = {
    "verbosity": MergePolicy.OVERRIDE,
    "formality_level": MergePolicy.OVERRIDE,
    "hedging_style": MergePolicy.OVERRIDE,
    "active_voice_preference": MergePolicy.OVERRIDE,
    "preferred_words": MergePolicy.UNION,
    "avoid_words": MergePolicy.CONCAT,
    "format_bans": MergePolicy.CONCAT,
    "required_formats": MergePolicy.CONCAT,
    "transition_phrases": MergePolicy.CONCAT,
    "framing_guidance": MergePolicy.CONCAT,
    "learned_rules": MergePolicy.CONCAT,
}

Layer = Union[StyleLayer, BaseStyle]


def _item_key(item: Any) -> Any:
    if isinstance(item, LearnedRule):
        return rule_key(item)
    return item


def _merge_field(policy: MergePolicy, left: Any, right: Any) -> Any:
    if right is None:
        return left
    if left is None:
        if policy is MergePolicy.CONCAT:
            return dedupe(list(right), key=_item_key)
        if policy is MergePolicy.UNION:
            return dict(right)
        return right
    if policy is MergePolicy.CONCAT:
        return dedupe([*left, *right], key=_item_key)
    if policy is MergePolicy.UNION:
        return {**left, **right}
    return right


def merge_styles(base: BaseStyle, *layers: Layer) -> BaseStyle:
    """Fold ``layers`` onto ``base`` in order and return a new style."""
    merged = {name: getattr(base, name) for name in FIELD_POLICY}
    for layer in layers:
        if layer is None:
            continue
        for name, policy in FIELD_POLICY.items():
            merged[name] = _merge_field(policy, merged[name], getattr(layer, name))
    return BaseStyle(**merged).model_copy(deep=True)


def combine_layers(first: StyleLayer, second: StyleLayer) -> StyleLayer:
    """Merge two partial layers with the same per-field policy."""
    combined = {
        name: _merge_field(policy, getattr(first, name), getattr(second, name))
        for name, policy in FIELD_POLICY.items()
    }
    return StyleLayer(**combined).model_copy(deep=True)


def document_layer(adjustments: DocumentAdjustments, current: BaseStyle) -> StyleLayer:
    """Project a document's sliders and word lists onto a partial style layer.

    Sliders are relative, so they are resolved against ``current``, the style
    merged so far.
    """
    layer = StyleLayer()

    if adjustments.verbosity_adjust <= -CATEGORY_SWITCH:
        layer.verbosity = Verbosity.TERSE
    elif adjustments.verbosity_adjust >= CATEGORY_SWITCH:
        layer.verbosity = Verbosity.DETAILED

    if adjustments.formality_adjust != 0:
        layer.formality_level = current.formality_level + adjustments.formality_adjust

    if adjustments.hedging_adjust <= -CATEGORY_SWITCH:
        layer.hedging_style = HedgingStyle.CONFIDENT
    elif adjustments.hedging_adjust >= CATEGORY_SWITCH:
        layer.hedging_style = HedgingStyle.CAUTIOUS

    if adjustments.additional_avoid_words:
        layer.avoid_words = list(adjustments.additional_avoid_words)
    if adjustments.additional_prefer_words:
        layer.preferred_words = dict(adjustments.additional_prefer_words)
    if adjustments.additional_framing_guidance:
        layer.framing_guidance = list(adjustments.additional_framing_guidance)
    if adjustments.learned_rules:
        layer.learned_rules = [r.model_copy() for r in adjustments.learned_rules]
    return layer


def profile_layer(profile: AudienceProfile) -> StyleLayer:
    """A profile's overrides plus its framing guidance, as one layer."""
    framing = StyleLayer(framing_guidance=list(profile.framing_guidance) or None)
    return combine_layers(profile.overrides, framing)


def effective_style(
    base: BaseStyle,
    profile: AudienceProfile | None = None,
    adjustments: DocumentAdjustments | None = None,
) -> BaseStyle:
    """Merge base style, audience profile and document adjustments."""
    style = merge_styles(base, profile_layer(profile)) if profile else merge_styles(base)
    if adjustments is not None:
        style = merge_styles(style, document_layer(adjustments, style))
    return style

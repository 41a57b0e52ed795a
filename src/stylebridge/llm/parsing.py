"""Strict decoding of structured model output.

Model responses are expected to hold one JSON object (or array). The decoder
pulls that fragment out, validates it against a schema and returns either
``Ok(value)`` or ``ParseFailure(reason)``. It never raises; each call site
handles both branches.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaError

T = TypeVar("T")

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class ParseFailure:
    reason: str
    raw: str = ""


DecodeResult = Union[Ok[T], ParseFailure]


def extract_json(text: str, opener: str = "{") -> str | None:
    """Return the outermost ``{...}`` (or ``[...]``) span in ``text``."""
    closer = "}" if opener == "{" else "]"
    cleaned = _FENCE.sub("", text or "")
    start = cleaned.find(opener)
    end = cleaned.rfind(closer)
    if start == -1 or end < start:
        return None
    return cleaned[start : end + 1]


def decode(text: str, schema: Any, *, shape: str = "object") -> DecodeResult:
    """Decode the JSON object or array in ``text`` against ``schema``."""
    fragment = extract_json(text, "{" if shape == "object" else "[")
    if fragment is None:
        return ParseFailure(f"no JSON {shape} found", raw=text or "")
    try:
        value = TypeAdapter(schema).validate_json(fragment)
    except SchemaError as exc:
        return ParseFailure(
            f"response did not match schema ({exc.error_count()} errors)", raw=text
        )
    return Ok(value)

"""Typed errors raised across the stylebridge core.

Every failure that leaves the core is one of these. Callers (the CLI, an API
layer) decide how to present them.
"""

from __future__ import annotations


class StyleBridgeError(Exception):
    """Base class for all stylebridge errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ProviderError(StyleBridgeError):
    """The language model provider failed (transport, auth, rate limit).

    Fatal to the current request. The core does not retry these; the
    gateway has already applied its own transient-error policy.
    """


class ParseError(StyleBridgeError):
    """The provider returned output that does not match the expected schema."""


class ValidationError(StyleBridgeError):
    """Caller input was malformed. Raised before any provider call."""


class PersistenceError(StyleBridgeError):
    """The preference store could not be read or written."""


class ConflictError(PersistenceError):
    """A write lost an optimistic-concurrency race on a store key."""

    def __init__(self, key: str, expected: int | None, actual: int | None) -> None:
        super().__init__(
            f"Revision conflict on '{key}': expected {expected}, found {actual}"
        )
        self.key = key
        self.expected = expected
        self.actual = actual

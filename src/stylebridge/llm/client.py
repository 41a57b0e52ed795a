"""Provider gateway: a wrapper around the Anthropic Claude SDK."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from anthropic import Anthropic, APIError, APIStatusError, AuthenticationError
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from stylebridge.config import Settings
from stylebridge.errors import ProviderError

logger = logging.getLogger(__name__)


@dataclass
class Completion:
    """Generated text plus the token usage reported for it."""

    text: str
    usage: dict = field(default_factory=dict)


class ProviderGateway(Protocol):
    def complete(
        self,
        messages: list[dict],
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> Completion: ...


def _is_retryable(exc: BaseException) -> bool:
    """Return True only for transient API errors (rate-limits, server errors).

    Authentication errors (401) and bad-request errors (400) should NOT be
    retried; they will never succeed without a config change.
    """
    if isinstance(exc, AuthenticationError):
        return False
    if isinstance(exc, APIStatusError) and exc.status_code < 500:
        # 4xx errors other than 429 (rate limit) are not retryable
        return exc.status_code == 429
    return isinstance(exc, APIError)


def _split_system(messages: list[dict]) -> tuple[str, list[dict]]:
    """Pull role=system messages out into the SDK's separate system field."""
    system_parts = [m["content"] for m in messages if m.get("role") == "system"]
    rest = [
        {"role": m["role"], "content": m["content"]}
        for m in messages
        if m.get("role") != "system"
    ]
    return "\n\n".join(system_parts), rest


class ClaudeClient:
    """Thin wrapper providing retry logic, error mapping and token tracking."""

    def __init__(self, settings: Settings) -> None:
        self._client = Anthropic(api_key=settings.anthropic_api_key)
        self._model = settings.model
        self._max_tokens = settings.max_tokens
        self._temperature = settings.temperature
        self._total_input_tokens = 0
        self._total_output_tokens = 0

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    def _create(self, system: str, messages: list[dict], max_tokens: int, temperature: float):
        kwargs = {
            "model": self._model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        return self._client.messages.create(**kwargs)

    def complete(
        self,
        messages: list[dict],
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> Completion:
        """Send role-tagged messages to Claude and return the completion.

        Raises:
            ProviderError: on transport, auth or rate-limit failures that
                survived the retry policy, or when the response has no text.
        """
        system, turns = _split_system(messages)
        if not turns:
            # The Messages API needs at least one user turn.
            turns = [{"role": "user", "content": "Proceed."}]

        try:
            response = self._create(
                system,
                turns,
                max_tokens or self._max_tokens,
                temperature if temperature is not None else self._temperature,
            )
        except APIError as exc:
            logger.warning("Provider call failed: %s", exc)
            raise ProviderError(str(exc)) from exc

        if not response.content:
            raise ProviderError("Provider returned an empty response")

        input_tokens = response.usage.input_tokens
        output_tokens = response.usage.output_tokens
        self._total_input_tokens += input_tokens
        self._total_output_tokens += output_tokens
        return Completion(
            text=response.content[0].text,
            usage={"input_tokens": input_tokens, "output_tokens": output_tokens},
        )

    @property
    def usage_summary(self) -> dict:
        return {
            "total_input_tokens": self._total_input_tokens,
            "total_output_tokens": self._total_output_tokens,
        }

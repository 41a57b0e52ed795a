"""Shared test fixtures."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest
from anthropic import AuthenticationError

from stylebridge.config import Settings
from stylebridge.llm.client import ClaudeClient
from stylebridge.service import StyleBridge
from stylebridge.storage.database import create_store_engine
from stylebridge.storage.repository import PreferenceRepository
from stylebridge.storage.store import PreferenceStore


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Create test settings with a temporary database."""
    return Settings(
        anthropic_api_key="test-key-not-real",
        model="claude-sonnet-4-20250514",
        max_tokens=1024,
        temperature=0.3,
        db_path=tmp_path / "test.db",
    )


@pytest.fixture
def mock_claude_client(settings: Settings) -> ClaudeClient:
    """Create a ClaudeClient with a mocked Anthropic SDK."""
    client = ClaudeClient(settings)
    # Replace the internal Anthropic client with a mock
    mock_anthropic = MagicMock()
    client._client = mock_anthropic
    return client


@pytest.fixture
def engine(settings: Settings):
    engine = create_store_engine(settings.db_path)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine) -> PreferenceStore:
    return PreferenceStore(engine)


@pytest.fixture
def repository(store: PreferenceStore) -> PreferenceRepository:
    return PreferenceRepository(store)


@pytest.fixture
def service(settings: Settings, mock_claude_client: ClaudeClient, engine) -> StyleBridge:
    return StyleBridge(settings, client=mock_claude_client, engine=engine)


def make_mock_response(text: str, input_tokens: int = 100, output_tokens: int = 200):
    """Helper to create a mock Anthropic API response."""
    mock_response = MagicMock()
    mock_response.content = [MagicMock(text=text)]
    mock_response.usage.input_tokens = input_tokens
    mock_response.usage.output_tokens = output_tokens
    return mock_response


def make_auth_error(message: str = "invalid x-api-key") -> AuthenticationError:
    """An SDK error the client does not retry, so tests fail fast."""
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    response = httpx.Response(401, request=request)
    return AuthenticationError(message, response=response, body=None)


def script(client: ClaudeClient, *replies) -> None:
    """Queue replies for successive provider calls.

    Strings become responses; exceptions are raised in their turn.
    """
    client._client.messages.create.side_effect = [
        make_mock_response(reply) if isinstance(reply, str) else reply for reply in replies
    ]


def critique_json(score: float, issues: list[dict] | None = None, suggestions=None) -> str:
    return json.dumps(
        {
            "alignmentScore": score,
            "predictedAcceptance": score,
            "issues": issues or [],
            "suggestions": suggestions or [],
        }
    )

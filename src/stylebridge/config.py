"""Configuration loading from environment variables with validation."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Anchor all paths to the project root (two levels up from src/stylebridge/)
_PROJECT_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="STYLEBRIDGE_",
        case_sensitive=False,
    )

    # Anthropic (loaded separately, no prefix)
    anthropic_api_key: str = ""

    # Model settings
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 2048
    temperature: float = 0.3

    # Edit loop
    max_iterations: int = Field(default=3, ge=1)
    alignment_threshold: float = Field(default=0.8, ge=0.0, le=1.0)

    # Optimistic-concurrency retries for read-modify-write operations
    conflict_retries: int = Field(default=3, ge=1)

    # Storage (absolute, anchored to the project root)
    db_path: Path = _PROJECT_DIR / "data" / "stylebridge.db"

    # Logging
    log_level: str = "INFO"


def get_settings() -> Settings:
    """Load settings from environment and .env file."""
    load_dotenv(_PROJECT_DIR / ".env")
    api_key = os.getenv("ANTHROPIC_API_KEY", "")
    return Settings(anthropic_api_key=api_key)

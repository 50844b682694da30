"""Shared stepgraph configuration utilities.

Centralises reading of ~/.stepgraph/configuration.json so the engine and
the bundled templates share one implementation.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_MODEL = "gpt-5-nano"
DEFAULT_MAX_TOKENS = 1024
DEFAULT_MAX_STEPS = 100

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

STEPGRAPH_HOME = Path.home() / ".stepgraph"
STEPGRAPH_CONFIG_FILE = STEPGRAPH_HOME / "configuration.json"


def get_config_path() -> Path:
    """Config file location; STEPGRAPH_CONFIG overrides the default."""
    override = os.environ.get("STEPGRAPH_CONFIG")
    return Path(override) if override else STEPGRAPH_CONFIG_FILE


def get_stepgraph_config() -> dict[str, Any]:
    """Load configuration from the config file. Missing or unreadable file -> {}."""
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_preferred_model() -> str:
    """Return the preferred LLM model string (e.g. 'openai/gpt-5-nano')."""
    llm = get_stepgraph_config().get("llm", {})
    if llm.get("provider") and llm.get("model"):
        return f"{llm['provider']}/{llm['model']}"
    return DEFAULT_MODEL


def get_max_tokens() -> int:
    """Return the configured max_tokens, falling back to DEFAULT_MAX_TOKENS."""
    return get_stepgraph_config().get("llm", {}).get("max_tokens", DEFAULT_MAX_TOKENS)


def get_api_key() -> str | None:
    """Return the API key from the environment variable named in configuration."""
    llm = get_stepgraph_config().get("llm", {})
    api_key_env_var = llm.get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


def get_max_steps() -> int:
    return get_stepgraph_config().get("engine", {}).get("max_steps", DEFAULT_MAX_STEPS)


def get_storage_path() -> Path:
    """Base directory for file-backed checkpoints."""
    configured = get_stepgraph_config().get("engine", {}).get("storage_path")
    return Path(configured).expanduser() if configured else STEPGRAPH_HOME / "runs"


# ---------------------------------------------------------------------------
# RuntimeConfig / EngineConfig
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """LLM runtime configuration loaded from ~/.stepgraph/configuration.json."""

    model: str = field(default_factory=get_preferred_model)
    temperature: float = 0.7
    max_tokens: int = field(default_factory=get_max_tokens)
    api_key: str | None = field(default_factory=get_api_key)
    api_base: str | None = None


@dataclass
class EngineConfig:
    """Scheduler limits and persistence location."""

    max_steps: int = field(default_factory=get_max_steps)
    storage_path: Path = field(default_factory=get_storage_path)

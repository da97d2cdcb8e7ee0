"""Configuration for the deliberation engine.

Loads settings from config.yaml if present, falls back to defaults.
API keys are always loaded from environment variables.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import MAX_COUNCIL_SIZE

load_dotenv()

# Find project root (where config.yaml lives)
_PROJECT_ROOT = Path(__file__).parent.parent
_CONFIG_PATH = Path(os.getenv("DELIBERATION_CONFIG", _PROJECT_ROOT / "config.yaml"))

# Defaults (used if config.yaml is missing)
_DEFAULTS: dict[str, Any] = {
    "council_models": [
        "openai/gpt-5.2",
        "google/gemini-3-pro-preview",
        "anthropic/claude-sonnet-4.5",
        "x-ai/grok-4",
    ],
    "chairman_model": "google/gemini-3-pro-preview",
    "title_model": "google/gemini-2.5-flash",
    "preprocess_model": None,
    "openrouter_api_url": "https://openrouter.ai/api/v1/chat/completions",
    "openrouter_models_url": "https://openrouter.ai/api/v1/models",
    "data_dir": "data/conversations",
    "request_timeout": 120.0,
    "max_retries": 3,
    "stage_timeout": None,
    "custom_prompts": {},
}


class ConfigError(ValueError):
    """Raised when config.yaml is present but malformed."""


def load_config(path: Path = _CONFIG_PATH) -> dict[str, Any]:
    """Load configuration from YAML file or return defaults."""
    if not path.exists():
        return dict(_DEFAULTS)

    with open(path) as f:
        try:
            config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")

    unknown = set(config) - set(_DEFAULTS)
    if unknown:
        raise ConfigError(f"Unknown config keys in {path}: {', '.join(sorted(unknown))}")

    # Merge with defaults (config values override defaults)
    merged = {**_DEFAULTS, **config}

    if not isinstance(merged["council_models"], list) or not merged["council_models"]:
        raise ConfigError("council_models must be a non-empty list of model identifiers")
    if len(set(merged["council_models"])) > MAX_COUNCIL_SIZE:
        raise ConfigError(f"council_models may name at most {MAX_COUNCIL_SIZE} distinct models")
    if merged["max_retries"] < 0:
        raise ConfigError("max_retries must not be negative")

    return merged


_config = load_config()

# API key from environment (never in config file)
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")

# Council members - list of OpenRouter model identifiers
COUNCIL_MODELS: list[str] = _config["council_models"]

# Chairman model - synthesizes final response
CHAIRMAN_MODEL: str = _config["chairman_model"]

# Cheap model used for conversation titles
TITLE_MODEL: str = _config["title_model"]

# Optional model that condenses conversation history before Stage 1
PREPROCESS_MODEL: str | None = _config["preprocess_model"]

# OpenRouter API endpoints
OPENROUTER_API_URL: str = _config["openrouter_api_url"]
OPENROUTER_MODELS_URL: str = _config["openrouter_models_url"]

# Per-attempt request timeout (seconds) and rate-limit retries
REQUEST_TIMEOUT: float = float(_config["request_timeout"])
MAX_RETRIES: int = int(_config["max_retries"])

# Optional bound on total stage latency (seconds); None waits for every model
STAGE_TIMEOUT: float | None = _config["stage_timeout"]

# Per-stage prompt overrides keyed by stage name
CUSTOM_PROMPTS: dict[str, str] = _config["custom_prompts"] or {}

# Data directory for conversation storage
DATA_DIR: str = _config["data_dir"]

#!/usr/bin/env python3
"""Health assistant configuration utilities.

This module centralises access to environment-driven settings and the prompt
templates used by the completion glue. Secrets are never hardcoded; they are
sourced from environment variables (optionally via a ``.env`` file), while the
Turkish system prompts and per-operation completion parameters live in
``prompt_config.yaml`` so they can be tuned without touching Python code.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

load_dotenv()
# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


def _resolve_path(path_like: str, default_root: Path) -> Path:
    path = Path(path_like).expanduser()
    return path if path.is_absolute() else (default_root / path)


PROJECT_ROOT = Path(os.getenv("HEALTHASSIST_PROJECT_ROOT", Path(__file__).resolve().parent))
PROMPT_FILE = _resolve_path(os.getenv("HEALTHASSIST_PROMPT_FILE", "prompt_config.yaml"), PROJECT_ROOT)
DATA_DIR = _resolve_path(os.getenv("HEALTHASSIST_DATA_DIR", "data"), Path.cwd())


class PromptManager:
    """Load and format prompt templates from a YAML configuration file."""

    def __init__(self, config_path: Path):
        self.config_path = config_path
        if not self.config_path.exists():
            raise FileNotFoundError(f"Prompt configuration not found at {self.config_path}")
        with self.config_path.open("r", encoding="utf-8") as fh:
            self.prompts = yaml.safe_load(fh) or {}

    def get(self, dotted_key: str, default: Optional[Any] = None) -> Optional[Any]:
        parts = dotted_key.split(".")
        node: Any = self.prompts
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def render(self, dotted_key: str, **kwargs: Any) -> str:
        template = self.get(dotted_key)
        if template is None:
            raise KeyError(f"Prompt template '{dotted_key}' not found in {self.config_path}")
        return template.format(**kwargs)


# ---------------------------------------------------------------------------
# Environment-driven secrets and service endpoints
# ---------------------------------------------------------------------------

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")
OPENAI_TIMEOUT = float(os.getenv("OPENAI_TIMEOUT", "60"))
OPENAI_MAX_RETRIES = int(os.getenv("OPENAI_MAX_RETRIES", "2"))

HEALTHASSIST_MONGODB_URI = os.getenv("HEALTHASSIST_MONGODB_URI", "")
HEALTHASSIST_DB = os.getenv("HEALTHASSIST_DB", "health_assistant")
CHAT_COLLECTION = os.getenv("CHAT_COLLECTION", "chat_messages")

PORT = int(os.getenv("PORT", "8080"))
HEALTHASSIST_DEBUG = os.getenv("HEALTHASSIST_DEBUG", "false").lower() == "true"

# Minimum fuzzywuzzy score for mapping a model-returned key onto a field name.
KEY_MATCH_THRESHOLD = int(os.getenv("KEY_MATCH_THRESHOLD", "90"))

# ---------------------------------------------------------------------------
# Prompt data
# ---------------------------------------------------------------------------

PROMPTS = PromptManager(PROMPT_FILE)


def completion_settings(name: str) -> Dict[str, Any]:
    """Return model, temperature and max_tokens for the operation *name*."""
    defaults = PROMPTS.get("completion_settings.default", {}) or {}
    specific = PROMPTS.get(f"completion_settings.{name}", {}) or {}
    settings = {"model": OPENAI_MODEL, "temperature": 0.7, "max_tokens": 500}
    settings.update(defaults)
    settings.update(specific)
    return settings


__all__ = [
    "PROJECT_ROOT",
    "PROMPT_FILE",
    "DATA_DIR",
    "PromptManager",
    "PROMPTS",
    "completion_settings",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "OPENAI_MODEL",
    "OPENAI_TIMEOUT",
    "OPENAI_MAX_RETRIES",
    "HEALTHASSIST_MONGODB_URI",
    "HEALTHASSIST_DB",
    "CHAT_COLLECTION",
    "PORT",
    "HEALTHASSIST_DEBUG",
    "KEY_MATCH_THRESHOLD",
]

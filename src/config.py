"""
Global settings for Study Bot.
LLM endpoint credentials are read from data/settings.json, overridable by environment variables.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from utils.file_utils import ensure_directory_exists

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DATA_DIR = PROJECT_ROOT / "data"
SETTINGS_PATH = DATA_DIR / "settings.json"
CHAT_HISTORY_PATH = DATA_DIR / "chat_history.json"

# LLM endpoint
DEFAULT_MODEL = "qwen-turbo"
DEFAULT_TEMPERATURE = 0.3

# Settings file keys (same names the browser client kept in local storage)
API_BASE_URL_KEY = "llm-api-base-url"
API_KEY_KEY = "llm-api-key"
MODEL_KEY = "llm-model"
REQUEST_TIMEOUT_KEY = "llm-request-timeout"

# Environment overrides
API_BASE_URL_ENV = "LLM_API_BASE_URL"
API_KEY_ENV = "LLM_API_KEY"
MODEL_ENV = "LLM_MODEL"
REQUEST_TIMEOUT_ENV = "LLM_REQUEST_TIMEOUT"

# Chunked summarization
CHUNK_SIZE = 3000                 # characters per chunk, keeps each request under the model's token limit
CHUNK_SEPARATOR = "\n\n---\n\n"   # between chunk analyses in the synthesis request


@dataclass(frozen=True)
class ApiSettings:
    """Credentials and model options for the chat-completion endpoint."""

    base_url: str = ""
    api_key: str = ""
    model: str = DEFAULT_MODEL
    timeout_s: float | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url.strip() and self.api_key.strip())


def _parse_timeout(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    return out if out > 0 else None


def _read_settings_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return raw if isinstance(raw, dict) else {}


def load_api_settings(path: str | Path | None = None) -> ApiSettings:
    """
    Load endpoint settings from the settings file, then apply environment overrides.

    Args:
        path: Settings JSON file; defaults to data/settings.json.

    Returns:
        ApiSettings. Missing values stay empty, so callers must check is_configured.
    """
    stored = _read_settings_file(Path(path) if path else SETTINGS_PATH)
    base_url = os.environ.get(API_BASE_URL_ENV) or str(stored.get(API_BASE_URL_KEY) or "")
    api_key = os.environ.get(API_KEY_ENV) or str(stored.get(API_KEY_KEY) or "")
    model = os.environ.get(MODEL_ENV) or str(stored.get(MODEL_KEY) or "") or DEFAULT_MODEL
    timeout_raw = os.environ.get(REQUEST_TIMEOUT_ENV) or stored.get(REQUEST_TIMEOUT_KEY)
    return ApiSettings(
        base_url=base_url.strip().rstrip("/"),
        api_key=api_key.strip(),
        model=model.strip(),
        timeout_s=_parse_timeout(timeout_raw),
    )


def save_api_settings(settings: ApiSettings, path: str | Path | None = None) -> Path:
    """Persist settings as JSON and return the file path."""
    target = Path(path) if path else SETTINGS_PATH
    ensure_directory_exists(target.parent)
    payload: dict[str, Any] = {
        API_BASE_URL_KEY: settings.base_url.strip().rstrip("/"),
        API_KEY_KEY: settings.api_key.strip(),
        MODEL_KEY: settings.model.strip() or DEFAULT_MODEL,
    }
    if settings.timeout_s:
        payload[REQUEST_TIMEOUT_KEY] = settings.timeout_s
    target.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    return target

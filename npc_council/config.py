"""Runtime configuration read from the environment.

Provider secrets and endpoints live here and nowhere else: adapters are
constructed from a Settings instance and requests never carry credentials.
A ``.env`` file at the repository root is loaded by the app factory before
load_settings() is called.
"""

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel

_DEFAULTS: dict[str, Any] = {
    "openai_api_key": "",
    "openai_base_url": "https://api.openai.com/v1",
    "openai_model": "gpt-5-mini",
    "openai_reasoning_effort": "low",
    "gemini_api_key": "",
    "gemini_base_url": "https://generativelanguage.googleapis.com/v1beta",
    "gemini_model": "gemini-2.5-flash",
    "ollama_api_endpoint": "http://localhost:11434/api/generate",
    "ollama_model": "gemma3:4b",
    "turn_timeout": 60.0,
    "connect_timeout": 10.0,
    "scenarios_dir": Path("scenarios"),
    "log_level": "INFO",
}


class Settings(BaseModel):
    openai_api_key: str = _DEFAULTS["openai_api_key"]
    openai_base_url: str = _DEFAULTS["openai_base_url"]
    openai_model: str = _DEFAULTS["openai_model"]
    openai_reasoning_effort: str = _DEFAULTS["openai_reasoning_effort"]
    gemini_api_key: str = _DEFAULTS["gemini_api_key"]
    gemini_base_url: str = _DEFAULTS["gemini_base_url"]
    gemini_model: str = _DEFAULTS["gemini_model"]
    ollama_api_endpoint: str = _DEFAULTS["ollama_api_endpoint"]
    ollama_model: str = _DEFAULTS["ollama_model"]
    turn_timeout: float = _DEFAULTS["turn_timeout"]  # seconds of provider silence
    connect_timeout: float = _DEFAULTS["connect_timeout"]
    scenarios_dir: Path = _DEFAULTS["scenarios_dir"]
    log_level: str = _DEFAULTS["log_level"]


def load_settings(environ: dict[str, str] | None = None) -> Settings:
    """Build Settings from environment variables, falling back to defaults.

    Each field maps to its upper-cased name (``openai_model`` → ``OPENAI_MODEL``).
    Empty values are treated as unset.
    """
    env = os.environ if environ is None else environ
    fields: dict[str, Any] = {}
    for key in _DEFAULTS:
        value = env.get(key.upper(), "")
        if value:
            fields[key] = value
    return Settings(**fields)

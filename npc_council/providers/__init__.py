"""Provider adapters and the backend lookup table.

    openai  OpenAIProvider   chat completions, SSE chunks
    gemini  GeminiProvider   generateContent, SSE chunks, no system role
    ollama  OllamaProvider   local /api/generate, JSON lines

Requests name a backend by id; the generic aliases providerA / providerB /
local map onto the three adapters.
"""

from __future__ import annotations

from typing import Any

import httpx

from npc_council.config import Settings

from .base import (  # noqa: F401
    Provider,
    ProviderError,
    StreamingProvider,
    SyncProvider,
    UnsupportedCapability,
)
from .gemini import GeminiProvider
from .ollama import OllamaProvider
from .openai import OpenAIProvider

BACKEND_ALIASES: dict[str, str] = {
    "providerA": "openai",
    "providerB": "gemini",
    "local": "ollama",
}


def resolve_backend(name: str) -> str:
    return BACKEND_ALIASES.get(name, name)


def build_providers(
    settings: Settings, transport: httpx.AsyncBaseTransport | None = None
) -> dict[str, Provider]:
    """Construct one adapter per backend id from settings."""
    return {
        "openai": OpenAIProvider.from_settings(settings, transport),
        "gemini": GeminiProvider.from_settings(settings, transport),
        "ollama": OllamaProvider.from_settings(settings, transport),
    }


def capabilities(provider: Any) -> dict[str, bool]:
    return {
        "streaming": callable(getattr(provider, "call_stream", None)),
        "sync": callable(getattr(provider, "call_sync", None)),
    }

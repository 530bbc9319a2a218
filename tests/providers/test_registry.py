"""Tests for the backend table, capability protocols and SSE line handling."""

import httpx

from npc_council.config import Settings
from npc_council.providers import (
    GeminiProvider,
    OllamaProvider,
    OpenAIProvider,
    Provider,
    StreamingProvider,
    SyncProvider,
    build_providers,
    capabilities,
    resolve_backend,
)
from npc_council.providers.base import iter_sse_data


class StreamOnly:
    id = "stream-only"

    def build_messages(self, npc, scenario, history):
        return []

    async def call_stream(self, messages, **options):
        yield "x"


def test_aliases_resolve_to_backend_ids():
    assert resolve_backend("providerA") == "openai"
    assert resolve_backend("providerB") == "gemini"
    assert resolve_backend("local") == "ollama"
    assert resolve_backend("ollama") == "ollama"
    assert resolve_backend("nope") == "nope"


def test_build_providers_from_settings():
    settings = Settings(openai_api_key="sk", ollama_model="llama3", turn_timeout=5)
    providers = build_providers(settings)

    assert list(providers) == ["openai", "gemini", "ollama"]
    assert isinstance(providers["openai"], OpenAIProvider)
    assert isinstance(providers["gemini"], GeminiProvider)
    assert isinstance(providers["ollama"], OllamaProvider)
    assert providers["ollama"]._default_model == "llama3"
    assert providers["ollama"]._timeout.read == 5


def test_adapters_satisfy_both_protocols():
    for provider in build_providers(Settings()).values():
        assert isinstance(provider, Provider)
        assert isinstance(provider, StreamingProvider)
        assert isinstance(provider, SyncProvider)
        assert capabilities(provider) == {"streaming": True, "sync": True}


def test_capabilities_of_partial_provider():
    provider = StreamOnly()
    assert isinstance(provider, StreamingProvider)
    assert not isinstance(provider, SyncProvider)
    assert capabilities(provider) == {"streaming": True, "sync": False}


async def test_iter_sse_data_joins_multiline_and_skips_comments():
    body = (
        b": keep-alive\n\n"
        b"event: message\ndata: first\n\n"
        b"data: line one\ndata: line two\n\n"
        b"data:no-space\n\n"
        b"data: trailing"
    )
    resp = httpx.Response(200, content=body)

    payloads = [data async for data in iter_sse_data(resp)]

    assert payloads == ["first", "line one\nline two", "no-space", "trailing"]

"""Ollama adapter for a locally hosted inference server.

Ollama's generate endpoint takes a single prompt string, so the message list
is flattened: system block first, then the labelled conversation.

Wire format:
  POST {endpoint}   (default http://localhost:11434/api/generate)
       {"model", "prompt", "format": <json schema>, "stream": true}
  Stream: newline-delimited JSON objects {"response": "...", "done": bool};
          an object with "error" aborts the call.
  Sync:   same body with "stream": false, single object.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from npc_council.config import Settings
from npc_council.models import ConversationEntry, Member, Scenario
from npc_council.prompts import flatten

from .base import (
    ProviderError,
    http_timeout,
    open_stream,
    post_json,
    scenario_schema,
    turn_messages,
)

logger = logging.getLogger(__name__)


class OllamaProvider:
    """Async HTTP client for Ollama's /api/generate.

    Args:
        endpoint:        Full URL of the generate endpoint.
        default_model:   Used when neither the NPC nor the request names one.
        timeout:         Seconds of silence tolerated while streaming.
        connect_timeout: Seconds allowed to establish the connection.
        transport:       Optional httpx transport (tests inject a MockTransport).
    """

    id = "ollama"

    def __init__(
        self,
        endpoint: str = "http://localhost:11434/api/generate",
        default_model: str = "gemma3:4b",
        timeout: float = 60.0,
        connect_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._default_model = default_model
        self._timeout = http_timeout(timeout, connect_timeout)
        self._transport = transport

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> OllamaProvider:
        return cls(
            endpoint=settings.ollama_api_endpoint,
            default_model=settings.ollama_model,
            timeout=settings.turn_timeout,
            connect_timeout=settings.connect_timeout,
            transport=transport,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def build_messages(
        self, npc: Member, scenario: Scenario, history: Sequence[ConversationEntry]
    ) -> list[dict[str, Any]]:
        return [dict(m) for m in turn_messages(npc, scenario, history)]

    def _body(
        self, messages: list[dict[str, Any]], model: str | None, scenario: Scenario | None, stream: bool
    ) -> dict[str, Any]:
        return {
            "model": model or self._default_model,
            "prompt": flatten(messages),
            "format": scenario_schema(scenario),
            "stream": stream,
        }

    async def call_stream(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str | None = None,
        scenario: Scenario | None = None,
        reasoning_effort: str | None = None,
    ) -> AsyncIterator[str]:
        body = self._body(messages, model, scenario, stream=True)
        headers = {"Content-Type": "application/json"}
        logger.debug("ollama stream model=%s prompt_len=%d", body["model"], len(body["prompt"]))

        received = False
        async with self._client() as client:
            async with open_stream(
                client, self._endpoint, provider="Ollama", json=body, headers=headers,
            ) as resp:
                async for line in resp.aiter_lines():
                    if not line.strip():
                        continue
                    received = True
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError as e:
                        raise ProviderError("Malformed stream line from Ollama", body=line) from e
                    if not isinstance(chunk, dict):
                        raise ProviderError("Malformed stream line from Ollama", body=line)
                    if chunk.get("error"):
                        raise ProviderError(f"Ollama error: {chunk['error']}", body=line)
                    text = chunk.get("response") or ""
                    if not isinstance(text, str):
                        raise ProviderError("Malformed stream line from Ollama", body=line)
                    if text:
                        yield text
                    if chunk.get("done"):
                        break
        if not received:
            raise ProviderError("Ollama returned an empty response body")

    async def call_sync(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str | None = None,
        scenario: Scenario | None = None,
        reasoning_effort: str | None = None,
    ) -> str:
        body = self._body(messages, model, scenario, stream=False)
        logger.debug("ollama call model=%s prompt_len=%d", body["model"], len(body["prompt"]))

        async with self._client() as client:
            data = await post_json(
                client, self._endpoint, provider="Ollama", json=body,
                headers={"Content-Type": "application/json"},
            )
        if not isinstance(data, dict) or not isinstance(data.get("response"), str):
            raise ProviderError("Unexpected response format from Ollama")
        if not data["response"]:
            raise ProviderError("No text returned from Ollama")
        return data["response"]

"""OpenAI chat-completions adapter.

Wire format:
  POST {base_url}/chat/completions
       {"model", "messages", "stream": true,
        "response_format": {"type": "json_schema", "json_schema": {...}},
        "reasoning_effort"?}
  Stream: SSE frames "data: {chunk}", terminated by "data: [DONE]".
          Text lives in choices[0].delta.content.
  Sync:   choices[0].message.content
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from npc_council.config import Settings
from npc_council.models import ConversationEntry, Member, Scenario

from .base import (
    ProviderError,
    http_timeout,
    iter_sse_data,
    open_stream,
    post_json,
    scenario_schema,
    turn_messages,
)

logger = logging.getLogger(__name__)


def response_format(scenario: Scenario | None) -> dict[str, Any]:
    """Strict json_schema response format; drops keys the API does not accept."""
    schema = {
        k: v for k, v in scenario_schema(scenario).items()
        if k not in ("$schema", "title")
    }
    return {
        "type": "json_schema",
        "json_schema": {"name": "NextTurnDirective", "strict": True, "schema": schema},
    }


def delta_text(chunk: dict[str, Any]) -> str | None:
    """Text of choices[0].delta.content; "" for usage-only chunks, None if malformed."""
    choices = chunk.get("choices") or []
    if not isinstance(choices, list):
        return None
    if not choices:
        return ""
    choice = choices[0]
    if not isinstance(choice, dict):
        return None
    delta = choice.get("delta") or {}
    if not isinstance(delta, dict):
        return None
    text = delta.get("content") or ""
    return text if isinstance(text, str) else None


class OpenAIProvider:
    """Async HTTP client for the OpenAI chat-completions API.

    Args:
        api_key:          Bearer token. Calls fail with ProviderError when empty.
        base_url:         API root, e.g. "https://api.openai.com/v1".
        default_model:    Used when neither the NPC nor the request names one.
        reasoning_effort: Default effort for reasoning models; "" to omit.
        timeout:          Seconds of silence tolerated while streaming.
        connect_timeout:  Seconds allowed to establish the connection.
        transport:        Optional httpx transport (tests inject a MockTransport).
    """

    id = "openai"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        default_model: str = "gpt-5-mini",
        reasoning_effort: str = "low",
        timeout: float = 60.0,
        connect_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._default_model = default_model
        self._reasoning_effort = reasoning_effort
        self._timeout = http_timeout(timeout, connect_timeout)
        self._transport = transport

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> OpenAIProvider:
        return cls(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            default_model=settings.openai_model,
            reasoning_effort=settings.openai_reasoning_effort,
            timeout=settings.turn_timeout,
            connect_timeout=settings.connect_timeout,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ProviderError("OPENAI_API_KEY is not set")
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def build_messages(
        self, npc: Member, scenario: Scenario, history: Sequence[ConversationEntry]
    ) -> list[dict[str, Any]]:
        # The API rejects unknown message keys, so attribution stays in content only.
        return [
            {"role": m["role"], "content": m["content"]}
            for m in turn_messages(npc, scenario, history)
        ]

    def _body(
        self,
        messages: list[dict[str, Any]],
        model: str | None,
        scenario: Scenario | None,
        reasoning_effort: str | None,
        stream: bool,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": model or self._default_model,
            "messages": messages,
            "response_format": response_format(scenario),
        }
        effort = reasoning_effort or self._reasoning_effort
        if effort:
            body["reasoning_effort"] = effort
        if stream:
            body["stream"] = True
        return body

    async def call_stream(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str | None = None,
        scenario: Scenario | None = None,
        reasoning_effort: str | None = None,
    ) -> AsyncIterator[str]:
        url = f"{self._base_url}/chat/completions"
        body = self._body(messages, model, scenario, reasoning_effort, stream=True)
        headers = self._headers()
        logger.debug("openai stream model=%s messages=%d", body["model"], len(messages))

        received = False
        async with self._client() as client:
            async with open_stream(client, url, provider="OpenAI", json=body, headers=headers) as resp:
                async for data in iter_sse_data(resp):
                    received = True
                    if data.strip() == "[DONE]":
                        break
                    try:
                        chunk = json.loads(data)
                    except json.JSONDecodeError as e:
                        raise ProviderError(
                            "Malformed stream chunk from OpenAI", body=data
                        ) from e
                    if not isinstance(chunk, dict):
                        raise ProviderError("Malformed stream chunk from OpenAI", body=data)
                    if "error" in chunk:
                        raise ProviderError(
                            f"OpenAI stream error: {chunk['error']}", body=data
                        )
                    text = delta_text(chunk)
                    if text is None:
                        raise ProviderError("Malformed stream chunk from OpenAI", body=data)
                    if text:
                        yield text
        if not received:
            raise ProviderError("OpenAI returned an empty response body")

    async def call_sync(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str | None = None,
        scenario: Scenario | None = None,
        reasoning_effort: str | None = None,
    ) -> str:
        url = f"{self._base_url}/chat/completions"
        body = self._body(messages, model, scenario, reasoning_effort, stream=False)
        headers = self._headers()
        logger.debug("openai call model=%s messages=%d", body["model"], len(messages))

        async with self._client() as client:
            data = await post_json(client, url, provider="OpenAI", json=body, headers=headers)

        try:
            text = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                "Unexpected response format from OpenAI", body=json.dumps(data)[:2000]
            ) from e
        if not isinstance(text, str):
            raise ProviderError(
                "Unexpected response format from OpenAI", body=json.dumps(data)[:2000]
            )
        if not text:
            raise ProviderError("No text returned from OpenAI")
        return text

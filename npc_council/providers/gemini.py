"""Google Gemini adapter (generateContent REST API).

Gemini has no "system" role in contents: every system entry is folded into
the leading user turn, and "assistant" becomes "model".

Wire format:
  POST {base_url}/models/{model}:streamGenerateContent?alt=sse
       {"contents": [...], "generationConfig": {"responseMimeType",
        "responseSchema"}}
       header x-goog-api-key
  Stream: SSE frames, each a GenerateContentResponse;
          text is the concatenation of candidates[0].content.parts[].text.
  Sync:   POST .../models/{model}:generateContent, same response shape.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from npc_council.config import Settings
from npc_council.models import ConversationEntry, Member, Scenario
from npc_council.prompts import split_system

from .base import (
    ProviderError,
    http_timeout,
    iter_sse_data,
    open_stream,
    post_json,
    turn_messages,
)

logger = logging.getLogger(__name__)


def response_schema(scenario: Scenario | None) -> dict[str, Any]:
    """OpenAPI-subset schema accepted by generationConfig.responseSchema.

    Gemini rejects ``pattern`` and ``additionalProperties``; the roster is
    expressed as an enum instead, and propertyOrdering keeps the utterance
    first so it can be streamed before the speaker is chosen.
    """
    speaker: dict[str, Any] = {"type": "STRING", "description": "次に話す登場人物のID"}
    member_ids = scenario.member_ids if scenario else []
    if member_ids:
        speaker["format"] = "enum"
        speaker["enum"] = member_ids
    return {
        "type": "OBJECT",
        "properties": {
            "utterance": {
                "type": "STRING",
                "description": "今回の発言（日本語の自然文）。会議に出す台詞そのもの。",
            },
            "next_speaker": speaker,
        },
        "required": ["utterance", "next_speaker"],
        "propertyOrdering": ["utterance", "next_speaker"],
    }


def candidate_text(payload: dict[str, Any]) -> str | None:
    """Concatenated text parts of the first candidate.

    "" when there is no text yet, None when the payload has the wrong shape.
    """
    candidates = payload.get("candidates") or []
    if not isinstance(candidates, list):
        return None
    if not candidates:
        return ""
    candidate = candidates[0]
    if not isinstance(candidate, dict):
        return None
    content = candidate.get("content") or {}
    if not isinstance(content, dict):
        return None
    parts = content.get("parts") or []
    if not isinstance(parts, list):
        return None
    texts = []
    for part in parts:
        if not isinstance(part, dict):
            return None
        text = part.get("text", "")
        if not isinstance(text, str):
            return None
        texts.append(text)
    return "".join(texts)


class GeminiProvider:
    """Async HTTP client for the Gemini API.

    Args mirror OpenAIProvider; the key is sent as x-goog-api-key.
    """

    id = "gemini"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        default_model: str = "gemini-2.5-flash",
        timeout: float = 60.0,
        connect_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._default_model = default_model
        self._timeout = http_timeout(timeout, connect_timeout)
        self._transport = transport

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> GeminiProvider:
        return cls(
            api_key=settings.gemini_api_key,
            base_url=settings.gemini_base_url,
            default_model=settings.gemini_model,
            timeout=settings.turn_timeout,
            connect_timeout=settings.connect_timeout,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ProviderError("GEMINI_API_KEY is not set")
        return {"Content-Type": "application/json", "x-goog-api-key": self._api_key}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def build_messages(
        self, npc: Member, scenario: Scenario, history: Sequence[ConversationEntry]
    ) -> list[dict[str, Any]]:
        system, rest = split_system(turn_messages(npc, scenario, history))
        contents: list[dict[str, Any]] = [
            {
                "role": "user" if m["role"] == "user" else "model",
                "parts": [{"text": m["content"]}],
            }
            for m in rest
        ]
        if contents and contents[0]["role"] == "user":
            first = contents[0]["parts"][0]["text"]
            contents[0]["parts"][0]["text"] = f"{system}\n\n{first}" if system else first
        elif system:
            contents.insert(0, {"role": "user", "parts": [{"text": system}]})
        return contents

    def _body(self, messages: list[dict[str, Any]], scenario: Scenario | None) -> dict[str, Any]:
        return {
            "contents": messages,
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": response_schema(scenario),
            },
        }

    async def call_stream(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str | None = None,
        scenario: Scenario | None = None,
        reasoning_effort: str | None = None,
    ) -> AsyncIterator[str]:
        model = model or self._default_model
        url = f"{self._base_url}/models/{model}:streamGenerateContent?alt=sse"
        headers = self._headers()
        logger.debug("gemini stream model=%s contents=%d", model, len(messages))

        received = False
        async with self._client() as client:
            async with open_stream(
                client, url, provider="Gemini", json=self._body(messages, scenario), headers=headers,
            ) as resp:
                async for data in iter_sse_data(resp):
                    received = True
                    try:
                        payload = json.loads(data)
                    except json.JSONDecodeError as e:
                        raise ProviderError("Malformed stream chunk from Gemini", body=data) from e
                    if not isinstance(payload, dict):
                        raise ProviderError("Malformed stream chunk from Gemini", body=data)
                    if "error" in payload:
                        raise ProviderError(f"Gemini stream error: {payload['error']}", body=data)
                    text = candidate_text(payload)
                    if text is None:
                        raise ProviderError("Malformed stream chunk from Gemini", body=data)
                    if text:
                        yield text
        if not received:
            raise ProviderError("Gemini returned an empty response body")

    async def call_sync(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str | None = None,
        scenario: Scenario | None = None,
        reasoning_effort: str | None = None,
    ) -> str:
        model = model or self._default_model
        url = f"{self._base_url}/models/{model}:generateContent"
        headers = self._headers()
        logger.debug("gemini call model=%s contents=%d", model, len(messages))

        async with self._client() as client:
            data = await post_json(
                client, url, provider="Gemini", json=self._body(messages, scenario), headers=headers,
            )
        text = candidate_text(data) if isinstance(data, dict) else None
        if text is None:
            raise ProviderError(
                "Unexpected response format from Gemini", body=json.dumps(data)[:2000]
            )
        if not text:
            raise ProviderError("No text returned from Gemini")
        return text

"""Shared pieces of the provider adapters.

Adapters are not subclasses of anything. Each one is a plain class that
satisfies some of the capability protocols below; the orchestrator looks a
capability up with getattr() and reports a turn error when it is missing.

    Provider           id + build_messages()   every adapter
    StreamingProvider  + call_stream()         yields raw text fragments
    SyncProvider       + call_sync()           returns the full text

One call is fully self-contained: it opens its own httpx.AsyncClient and
the response is closed on every exit path, including generator aclose()
and task cancellation.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any, Protocol, runtime_checkable

import httpx

from npc_council.directive import directive_schema
from npc_council.models import ConversationEntry, Member, Scenario
from npc_council.prompts import Message, assemble, json_instruction

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ProviderError(RuntimeError):
    """Raised when a provider cannot be reached or returns an unusable response.

    ``status`` is the HTTP status when one was received; ``body`` is the raw
    response text (possibly truncated) for diagnostics.
    """

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class UnsupportedCapability(ProviderError):
    """Raised when the selected provider lacks the call a turn needs."""


# ---------------------------------------------------------------------------
# Capability protocols
# ---------------------------------------------------------------------------

@runtime_checkable
class Provider(Protocol):
    id: str

    def build_messages(
        self, npc: Member, scenario: Scenario, history: Sequence[ConversationEntry]
    ) -> list[dict[str, Any]]: ...


@runtime_checkable
class StreamingProvider(Provider, Protocol):
    def call_stream(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str | None = None,
        scenario: Scenario | None = None,
        reasoning_effort: str | None = None,
    ) -> AsyncIterator[str]: ...


@runtime_checkable
class SyncProvider(Provider, Protocol):
    async def call_sync(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str | None = None,
        scenario: Scenario | None = None,
        reasoning_effort: str | None = None,
    ) -> str: ...


# ---------------------------------------------------------------------------
# Helpers used by the concrete adapters
# ---------------------------------------------------------------------------

_BODY_PREVIEW = 2000


def turn_messages(
    npc: Member, scenario: Scenario, history: Sequence[ConversationEntry]
) -> list[Message]:
    """JSON instruction followed by the assembled prompt for this NPC."""
    schema = directive_schema(scenario.member_ids)
    return [json_instruction(schema, scenario), *assemble(npc, scenario, history)]


def scenario_schema(scenario: Scenario | None) -> dict[str, Any]:
    return directive_schema(scenario.member_ids if scenario else [])


def http_timeout(read: float, connect: float) -> httpx.Timeout:
    """Read timeout bounds provider silence between two chunks."""
    return httpx.Timeout(read, connect=connect)


@asynccontextmanager
async def open_stream(
    client: httpx.AsyncClient,
    url: str,
    *,
    provider: str,
    json: dict[str, Any],
    headers: dict[str, str],
) -> AsyncIterator[httpx.Response]:
    """POST and yield the streaming response, translating transport failures.

    httpx errors raised while the caller reads the body are translated too.
    """
    try:
        async with client.stream("POST", url, json=json, headers=headers) as resp:
            if resp.is_error:
                body = (await resp.aread()).decode("utf-8", errors="replace")
                raise ProviderError(
                    f"{provider} returned HTTP {resp.status_code}",
                    status=resp.status_code,
                    body=body[:_BODY_PREVIEW],
                )
            yield resp
    except httpx.ConnectError as e:
        raise ProviderError(f"Cannot connect to {provider} at {url}") from e
    except httpx.TimeoutException as e:
        raise ProviderError(f"{provider} timed out") from e
    except httpx.HTTPError as e:
        raise ProviderError(f"{provider} transport error: {e}") from e


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    provider: str,
    json: dict[str, Any],
    headers: dict[str, str],
) -> Any:
    """POST and return the decoded JSON body of a non-streaming call."""
    try:
        resp = await client.post(url, json=json, headers=headers)
        resp.raise_for_status()
    except httpx.ConnectError as e:
        raise ProviderError(f"Cannot connect to {provider} at {url}") from e
    except httpx.HTTPStatusError as e:
        raise ProviderError(
            f"{provider} returned HTTP {e.response.status_code}",
            status=e.response.status_code,
            body=e.response.text[:_BODY_PREVIEW],
        ) from e
    except httpx.TimeoutException as e:
        raise ProviderError(f"{provider} timed out") from e
    except httpx.HTTPError as e:
        raise ProviderError(f"{provider} transport error: {e}") from e

    if not resp.content:
        raise ProviderError(f"{provider} returned an empty response body", status=resp.status_code)
    try:
        return resp.json()
    except ValueError as e:
        raise ProviderError(
            f"Malformed response from {provider}",
            status=resp.status_code,
            body=resp.text[:_BODY_PREVIEW],
        ) from e


async def iter_sse_data(resp: httpx.Response) -> AsyncIterator[str]:
    """Yield the data payload of each server-sent event in the response.

    Multi-line data fields are joined with newlines; comments and other
    fields (event:, id:, retry:) are ignored.
    """
    data: list[str] = []
    async for line in resp.aiter_lines():
        if not line:
            if data:
                yield "\n".join(data)
                data = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if field == "data":
            data.append(value[1:] if value.startswith(" ") else value)
    if data:
        yield "\n".join(data)

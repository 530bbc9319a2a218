"""Turn orchestrator: runs one multi-agent session end-to-end.

Session flow:
  1. validate_request(): backend must be registered, npcIds non-empty.
     Failures raise RequestError before any stream is opened.
  2. For each round, for each requested NPC in order (unknown ids skipped):
       a. Provider builds its messages from the NPC, scenario and the
          history accumulated so far.
       b. Provider streams raw fragments; each one goes through a fresh
          StructuredTurnParser.
       c. Deltas go out as "utterance" events; a validated directive goes
          out as a "structured" event and its utterance is appended to the
          history the next NPC sees.
     Provider, timeout and validation failures become an "error" event for
     that NPC and the session moves on.
  3. Exactly one "done" event closes the session.

Turns never overlap: each NPC's prompt depends on the turns before it.
History is threaded through the loop as an immutable tuple, so nothing is
shared between concurrent sessions.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from contextlib import aclosing
from typing import Any

from npc_council.models import (
    ConversationEntry,
    DoneEvent,
    ErrorEvent,
    Member,
    SessionRequest,
    StreamEvent,
    StructuredEvent,
    UtteranceEvent,
)
from npc_council.parser import Completed, Delta, Failed, ParseEvent, StructuredTurnParser
from npc_council.prompts import npc_who
from npc_council.providers import ProviderError, UnsupportedCapability, resolve_backend

logger = logging.getLogger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool]]

_END = object()


class RequestError(ValueError):
    """Raised when a session request is rejected before streaming starts."""


def validate_request(request: SessionRequest, providers: Mapping[str, Any]) -> Any:
    """Check the request and return the provider it selects."""
    backend = resolve_backend(request.backend)
    if not request.backend or backend not in providers:
        raise RequestError(f"backend must be one of: {', '.join(providers)}")
    if not request.npc_ids:
        raise RequestError("npcIds required")
    return providers[backend]


async def run_session(
    request: SessionRequest,
    provider: Any,
    *,
    turn_timeout: float = 60.0,
    is_disconnected: DisconnectCheck | None = None,
) -> AsyncIterator[StreamEvent]:
    """Yield the client-facing events of a session, ending with DoneEvent.

    When is_disconnected() reports the client gone, the session stops at the
    next turn boundary without emitting "done": there is nobody left to read it.
    """
    scenario = request.scenario
    history: tuple[ConversationEntry, ...] = tuple(request.context)
    logger.info(
        "session start backend=%s npcs=%s rounds=%d history=%d",
        provider.id, request.npc_ids, request.rounds, len(history),
    )

    try:
        for round_no in range(1, request.rounds + 1):
            for npc_id in request.npc_ids:
                if is_disconnected is not None and await is_disconnected():
                    logger.info("client disconnected; session stopped in round %d", round_no)
                    return
                npc = scenario.member(npc_id)
                if npc is None:
                    logger.debug("npc %r is not in the scenario; skipped", npc_id)
                    continue

                logger.info("turn start round=%d npc=%s", round_no, npc.id)
                who = {"agent_id": npc.id, "name": npc.display_name}
                results = turn_results(provider, npc, request, history, turn_timeout=turn_timeout)
                try:
                    async with aclosing(results):
                        async for result in results:
                            if isinstance(result, Delta):
                                yield UtteranceEvent(**who, delta=result.text)
                            elif isinstance(result, Completed):
                                directive = result.directive
                                history = (*history, ConversationEntry(
                                    role="assistant", who=npc_who(npc.id), content=directive.utterance,
                                ))
                                logger.info(
                                    "turn done round=%d npc=%s next_speaker=%s",
                                    round_no, npc.id, directive.next_speaker,
                                )
                                yield StructuredEvent(**who, next_speaker=directive.next_speaker)
                            elif isinstance(result, Failed):
                                logger.warning(
                                    "turn failed round=%d npc=%s: %s", round_no, npc.id, result.message,
                                )
                                yield ErrorEvent(**who, message=result.message)
                except TimeoutError:
                    logger.warning("turn timed out round=%d npc=%s after %ss", round_no, npc.id, turn_timeout)
                    yield ErrorEvent(
                        **who, message=f"Provider {provider.id} did not respond within {turn_timeout:g}s",
                    )
                except ProviderError as e:
                    logger.warning(
                        "provider error round=%d npc=%s: %s (status=%s)", round_no, npc.id, e, e.status,
                    )
                    yield ErrorEvent(**who, message=str(e))
    except Exception as e:
        logger.exception("session aborted")
        yield ErrorEvent(message=str(e) or type(e).__name__)

    logger.info("session finished history=%d", len(history))
    yield DoneEvent()


async def turn_results(
    provider: Any,
    npc: Member,
    request: SessionRequest,
    history: Sequence[ConversationEntry],
    *,
    turn_timeout: float,
) -> AsyncIterator[ParseEvent]:
    """Run one NPC turn and yield parser events.

    Every wait on the provider (each fragment, or the whole sync call) is
    bounded by turn_timeout. The provider stream is closed on every exit path.
    """
    scenario = request.scenario
    messages = provider.build_messages(npc, scenario, history)
    options = {
        "model": npc.model or request.model,
        "scenario": scenario,
        "reasoning_effort": npc.reasoning_effort or request.reasoning_efforts.get(npc.id),
    }
    parser = StructuredTurnParser(scenario.member_ids)

    if request.structured:
        call_sync = getattr(provider, "call_sync", None)
        if call_sync is None:
            raise UnsupportedCapability(f"Provider {provider.id} does not support structured calls")
        async with asyncio.timeout(turn_timeout):
            text = await call_sync(messages, **options)
        for result in parser.feed(text):
            yield result
    else:
        call_stream = getattr(provider, "call_stream", None)
        if call_stream is None:
            raise UnsupportedCapability(f"Provider {provider.id} does not support streaming")
        stream = call_stream(messages, **options)
        try:
            while not parser.closed:
                async with asyncio.timeout(turn_timeout):
                    fragment = await anext(stream, _END)
                if fragment is _END:
                    break
                for result in parser.feed(fragment):
                    yield result
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    for result in parser.finish():
        yield result

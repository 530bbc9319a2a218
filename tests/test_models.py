"""Tests for request parsing, scenario helpers and SSE event framing."""

import json

import pytest
from pydantic import ValidationError

from npc_council.models import (
    ConversationEntry,
    DoneEvent,
    ErrorEvent,
    Member,
    Scenario,
    SessionRequest,
    StructuredEvent,
    UtteranceEvent,
)


def _payload(frame: str) -> dict:
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("data: "):])


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class TestEvents:
    def test_utterance_frame(self) -> None:
        frame = UtteranceEvent(agent_id="commander", name="司令官", delta="了").to_sse()
        assert _payload(frame) == {
            "type": "utterance", "agentId": "commander", "name": "司令官", "delta": "了",
        }

    def test_structured_frame_carries_empty_utterance(self) -> None:
        frame = StructuredEvent(agent_id="a", name="A", next_speaker="b").to_sse()
        assert _payload(frame) == {
            "type": "structured", "agentId": "a", "name": "A",
            "utterance": "", "next_speaker": "b",
        }

    def test_error_frame_omits_missing_agent(self) -> None:
        assert _payload(ErrorEvent(message="boom").to_sse()) == {"type": "error", "message": "boom"}

    def test_error_frame_with_agent(self) -> None:
        payload = _payload(ErrorEvent(agent_id="a", name="A", message="boom").to_sse())
        assert payload["agentId"] == "a"
        assert payload["name"] == "A"

    def test_done_frame(self) -> None:
        assert DoneEvent().to_sse() == 'data: {"type":"done"}\n\n'

    def test_events_are_immutable(self) -> None:
        event = DoneEvent()
        with pytest.raises(ValidationError):
            event.type = "error"


# ---------------------------------------------------------------------------
# Scenario / Member
# ---------------------------------------------------------------------------

class TestScenario:
    def test_member_lookup(self) -> None:
        scenario = Scenario.model_validate({"members": [{"id": "a"}, {"id": "b"}]})
        assert scenario.member("b").id == "b"
        assert scenario.member("z") is None
        assert scenario.member_ids == ["a", "b"]

    def test_behavior_string_becomes_list(self) -> None:
        assert Scenario.model_validate({"behavior": "一つだけ"}).behavior == ["一つだけ"]

    def test_null_fields_default(self) -> None:
        scenario = Scenario.model_validate({"disclaimer": None, "behavior": None, "members": None})
        assert scenario.disclaimer == ""
        assert scenario.behavior == []
        assert scenario.members == []

    def test_extra_keys_kept_as_knowledge(self) -> None:
        scenario = Scenario.model_validate({"id": "s", "weather": {"wind": "北"}})
        assert scenario.knowledge()["weather"] == {"wind": "北"}

    def test_member_aliases_and_display_name(self) -> None:
        member = Member.model_validate({
            "id": "drone", "supervisorId": "commander", "reasoningEffort": "high",
        })
        assert member.supervisor_id == "commander"
        assert member.reasoning_effort == "high"
        assert member.display_name == "drone"
        assert Member(id="x", name="X").display_name == "X"


# ---------------------------------------------------------------------------
# SessionRequest
# ---------------------------------------------------------------------------

class TestSessionRequest:
    def test_defaults(self) -> None:
        request = SessionRequest.model_validate({"backend": "local", "npcIds": ["a"]})
        assert request.rounds == 1
        assert request.context == []
        assert request.structured is False
        assert request.npc_ids == ["a"]

    def test_full_payload(self) -> None:
        request = SessionRequest.model_validate({
            "backend": "openai",
            "npcIds": ["commander"],
            "rounds": 2,
            "context": [{"role": "user", "content": "状況を教えてください", "who": "user"}],
            "scenario": {"id": "s1", "members": [{"id": "commander", "name": "司令官"}]},
            "reasoningEfforts": {"commander": "medium"},
        })
        assert request.context == [
            ConversationEntry(role="user", content="状況を教えてください", who="user")
        ]
        assert request.scenario.member("commander").name == "司令官"
        assert request.reasoning_efforts == {"commander": "medium"}

    def test_negative_rounds_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SessionRequest.model_validate({"rounds": -1})

    def test_unknown_role_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SessionRequest.model_validate({"context": [{"role": "npc", "content": "x"}]})

"""Core domain models.

Every stage of a multi-agent session operates on these types: the request
payload, the scenario roster, the running conversation history and the
events written to the client stream. Pydantic is used for validation and
serialisation at every data boundary.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Role = Literal["user", "assistant", "system"]


class ConversationEntry(BaseModel):
    """One turn of the canonical, ordered conversation history."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    who: str = ""  # "user" | "system" | "npc:<id>"


class Member(BaseModel):
    """An NPC taking part in a scenario."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    name: str = ""
    role: str = ""
    persona: str = ""
    avatar: str | None = None
    supervisor_id: str | None = Field(default=None, alias="supervisorId")
    # Optional per-NPC provider overrides
    model: str | None = None
    reasoning_effort: str | None = Field(default=None, alias="reasoningEffort")

    @field_validator("name", "role", "persona", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def display_name(self) -> str:
        return self.name or self.id


class Scenario(BaseModel):
    """A scenario as supplied by the client.

    Only ``id`` and ``members`` are structural. ``disclaimer`` and
    ``behavior`` feed the prompt directly; every other key is free-form
    knowledge handed to the model verbatim.
    """

    model_config = ConfigDict(extra="allow")

    id: str = ""
    title: str = ""
    disclaimer: str = ""
    behavior: list[str] = Field(default_factory=list)
    members: list[Member] = Field(default_factory=list)

    @field_validator("disclaimer", mode="before")
    @classmethod
    def _disclaimer_none(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("behavior", "members", mode="before")
    @classmethod
    def _listify(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    def member(self, member_id: str) -> Member | None:
        for m in self.members:
            if m.id == member_id:
                return m
        return None

    @property
    def member_ids(self) -> list[str]:
        return [m.id for m in self.members]

    def knowledge(self) -> dict[str, Any]:
        """Everything the NPC may know, minus prompt scaffolding and personas."""
        data = self.model_dump(exclude={"disclaimer", "behavior", "members"})
        data["members"] = [
            m.model_dump(by_alias=True, exclude={"persona"}, exclude_none=True)
            for m in self.members
        ]
        return data


class TurnDirective(BaseModel):
    """The JSON object each NPC is instructed to emit per turn."""

    model_config = ConfigDict(extra="forbid", strict=True)

    utterance: str = Field(min_length=1)
    next_speaker: str


class SessionRequest(BaseModel):
    """Body of a multi-agent orchestration request."""

    model_config = ConfigDict(populate_by_name=True)

    backend: str = ""
    npc_ids: list[str] = Field(default_factory=list, alias="npcIds")
    rounds: int = Field(default=1, ge=0)
    context: list[ConversationEntry] = Field(default_factory=list)
    scenario: Scenario = Field(default_factory=Scenario)
    model: str | None = None
    structured: bool = False  # use the non-streaming call, validate the whole reply
    reasoning_efforts: dict[str, str] = Field(
        default_factory=dict, alias="reasoningEfforts"
    )


# ---------------------------------------------------------------------------
# Stream events: what the client receives, one SSE frame each
# ---------------------------------------------------------------------------

class _Event(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_sse(self) -> str:
        return f"data: {self.model_dump_json(by_alias=True, exclude_none=True)}\n\n"


class UtteranceEvent(_Event):
    type: Literal["utterance"] = "utterance"
    agent_id: str = Field(alias="agentId")
    name: str
    delta: str


class StructuredEvent(_Event):
    type: Literal["structured"] = "structured"
    agent_id: str = Field(alias="agentId")
    name: str
    utterance: str = ""  # already streamed as deltas
    next_speaker: str


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    agent_id: str | None = Field(default=None, alias="agentId")
    name: str | None = None
    message: str


class DoneEvent(_Event):
    type: Literal["done"] = "done"


StreamEvent = UtteranceEvent | StructuredEvent | ErrorEvent | DoneEvent

"""The NextTurnDirective contract: JSON schema and validation.

Each NPC turn must produce exactly one object of the form

    {"utterance": "<line spoken this turn>", "next_speaker": "<member id>"}

The schema is built per scenario so that ``next_speaker`` is pinned to the
roster. It is sent to providers that support constrained output and quoted
in the instruction prompt for those that don't; validate_directive() is the
final word either way.
"""

from __future__ import annotations

import copy
import re
from typing import Any

from pydantic import ValidationError

from npc_council.models import TurnDirective

_BASE_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "NextTurnDirective",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "utterance": {
            "type": "string",
            "description": "今回の発言（日本語の自然文）。会議に出す台詞そのもの。",
        },
        "next_speaker": {
            "type": "string",
            "description": "次の発言者のID。例: commander, drone_op_1 など",
        },
    },
    "required": ["utterance", "next_speaker"],
}


class DirectiveError(ValueError):
    """Raised when a turn directive fails to parse or validate."""

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []

    def __str__(self) -> str:
        base = super().__str__()
        if not self.details:
            return base
        return f"{base}: {'; '.join(self.details)}"


def speaker_pattern(member_ids: list[str]) -> str:
    """Regex accepting exactly one of the given ids, e.g. ``^(a|b\\.c)$``."""
    return "^(" + "|".join(re.escape(i) for i in member_ids) + ")$"


def directive_schema(member_ids: list[str]) -> dict[str, Any]:
    """Return the JSON schema for a turn directive constrained to member_ids."""
    schema = copy.deepcopy(_BASE_SCHEMA)
    if member_ids:
        schema["properties"]["next_speaker"]["pattern"] = speaker_pattern(member_ids)
    return schema


def validate_directive(data: Any, member_ids: list[str]) -> TurnDirective:
    """Validate a decoded JSON value as a turn directive.

    Raises DirectiveError listing every problem found.
    """
    if not isinstance(data, dict):
        raise DirectiveError(
            "Schema validation failed",
            [f"expected a JSON object, got {type(data).__name__}"],
        )
    try:
        directive = TurnDirective.model_validate(data)
    except ValidationError as e:
        details = [
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        ]
        raise DirectiveError("Schema validation failed", details) from e

    if directive.next_speaker not in member_ids:
        raise DirectiveError(
            "Schema validation failed",
            [f"next_speaker: {directive.next_speaker!r} is not a scenario member"],
        )
    return directive

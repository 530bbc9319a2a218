"""Prompt assembly for one NPC turn.

assemble() turns (npc, scenario, history) into a provider-agnostic list of
role-tagged messages. Adapters reshape that list into their own wire format.

Layout:
  system   scenario disclaimer
  system   npc persona
  system   behavior rules, one per line
  system   scenario knowledge as JSON (member personas stripped)
  user/assistant ... filtered history

History filtering: an NPC hears every user entry and its own past turns.
Other NPCs' turns and narrative system notes are left out, so each NPC
only knows what was said to the room and what it said itself.

The JSON instruction that precedes these messages is a Handlebars template
rendered with pybars.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from typing import Any

import pybars

from npc_council.models import ConversationEntry, Member, Scenario

Message = dict[str, str]  # {"role": "system"|"user"|"assistant", "content": ..., "who"?: ...}

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}

JSON_INSTRUCTION_TEMPLATE = (
    "出力は必ず完全なJSONオブジェクト1つで返してください。\n"
    "スキーマ:\n{{{schema}}}\n"
    "next_speaker は次のIDのいずれかです: "
    "{{#each members}}{{{id}}}（{{{name}}}） {{/each}}\n"
    "余計な説明やコードブロックは含めないでください。"
)


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return compiled(context)
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def npc_who(npc_id: str) -> str:
    return f"npc:{npc_id}"


def hears(npc: Member, entry: ConversationEntry) -> bool:
    """True if this entry belongs in the npc's view of the conversation."""
    return entry.role == "user" or entry.who == npc_who(npc.id)


def assemble(
    npc: Member,
    scenario: Scenario,
    history: Sequence[ConversationEntry],
) -> list[Message]:
    """Build the ordered message list for one NPC turn. Never mutates history."""
    knowledge = json.dumps(scenario.knowledge(), ensure_ascii=False, sort_keys=True)
    messages: list[Message] = [
        {"role": "system", "content": scenario.disclaimer or ""},
        {"role": "system", "content": npc.persona or ""},
        {"role": "system", "content": "\n".join(scenario.behavior)},
        {"role": "system", "content": knowledge},
    ]
    for entry in history:
        if not hears(npc, entry):
            continue
        msg: Message = {
            "role": "user" if entry.role == "user" else "assistant",
            "content": f"{entry.who}の発言：{entry.content}" if entry.who else entry.content,
        }
        if entry.who:
            msg["who"] = entry.who
        messages.append(msg)
    return messages


def json_instruction(schema: dict[str, Any], scenario: Scenario) -> Message:
    """System message asking for a single NextTurnDirective object."""
    content = render_prompt(JSON_INSTRUCTION_TEMPLATE, {
        "schema": json.dumps(schema, ensure_ascii=False, indent=2),
        "members": [{"id": m.id, "name": m.display_name} for m in scenario.members],
    })
    return {"role": "system", "content": content}


def split_system(messages: Sequence[Message]) -> tuple[str, list[Message]]:
    """Separate system content (joined by blank lines) from the conversation."""
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system" and m["content"])
    rest = [m for m in messages if m["role"] != "system"]
    return system, rest


def flatten(messages: Sequence[Message]) -> str:
    """Render messages as one plain-text prompt for completion-style backends."""
    system, rest = split_system(messages)
    conversation = "\n\n".join(
        f"{'ユーザー' if m['role'] == 'user' else 'アシスタント'}: {m['content']}"
        for m in rest
    )
    return "\n\n".join(part for part in (system, conversation) if part)

"""Incremental parsing of a streamed NextTurnDirective.

The provider streams raw text that should spell out one JSON object:

    {"utterance": "...", "next_speaker": "..."}

StructuredTurnParser consumes that text fragment by fragment and produces:

  Delta(text)           newly decoded characters of the "utterance" value,
                        available before the string (or object) is closed
  Completed(directive)  once, when the top-level object closes and validates
  Failed(message)       instead of Completed, when it does not

It is a small tokenizer rather than a regex scan: it tracks brace depth,
whether it is inside a string, pending escape sequences and which key is
current at depth 1. That keeps escaped quotes, backslashes, \\n and \\uXXXX
(surrogate pairs included, even when split across fragments) from ending or
corrupting the utterance early. Anything outside the top-level object, such
as ```json fences or commentary, is skipped. A brace group that does not
decode as JSON and never named the utterance key is treated as commentary
too, and scanning resumes at the next brace.

Every decoded utterance character is emitted exactly once, so joining all
Delta texts of a successful turn gives the validated utterance.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from npc_council.directive import DirectiveError, validate_directive
from npc_council.models import TurnDirective

logger = logging.getLogger(__name__)

UTTERANCE_KEY = "utterance"

_SIMPLE_ESCAPES = {
    '"': '"', "\\": "\\", "/": "/",
    "b": "\b", "f": "\f", "n": "\n", "r": "\r", "t": "\t",
}


@dataclass(frozen=True)
class Delta:
    text: str


@dataclass(frozen=True)
class Completed:
    directive: TurnDirective


@dataclass(frozen=True)
class Failed:
    message: str


ParseEvent = Delta | Completed | Failed


def _is_high_surrogate(ch: str) -> bool:
    return len(ch) == 1 and 0xD800 <= ord(ch) <= 0xDBFF


def _is_low_surrogate(ch: str) -> bool:
    return len(ch) == 1 and 0xDC00 <= ord(ch) <= 0xDFFF


class StructuredTurnParser:
    """Parse one NPC turn. Call reset() (or make a new parser) per turn."""

    def __init__(self, member_ids: list[str]) -> None:
        self._member_ids = list(member_ids)
        self.reset()

    def reset(self) -> None:
        self._raw: list[str] = []      # text of the object from its opening brace
        self._depth = 0
        self._in_string = False
        self._escape = ""              # partial escape sequence, backslash included
        self._high = ""                # decoded high surrogate awaiting its pair
        self._expect_key = False
        self._string_is_key = False
        self._key: list[str] = []
        self._last_key: str | None = None
        self._saw_utterance_key = False
        self._in_utterance = False
        self._utterance_done = False
        self._streamed: list[str] = []
        self._pending: list[str] = []  # decoded utterance text not yet emitted
        self._skipped = 0
        self.closed = False
        self.directive: TurnDirective | None = None

    @property
    def streamed_utterance(self) -> str:
        return "".join(self._streamed) + "".join(self._pending)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def feed(self, fragment: str) -> list[ParseEvent]:
        """Consume one raw fragment and return the events it completes."""
        events: list[ParseEvent] = []
        for ch in fragment:
            if self.closed:
                self._skipped += 1
                continue
            outcome = self._consume(ch)
            if outcome is not None:
                self._flush(events)
                events.append(outcome)
        self._flush(events)
        return events

    def finish(self) -> list[ParseEvent]:
        """Signal end of the provider stream."""
        if self.closed:
            if self._skipped:
                logger.debug("ignored %d characters after the turn directive", self._skipped)
            return []
        events: list[ParseEvent] = []
        if self._in_utterance and self._high:
            self._emit(self._high)
            self._high = ""
        self._flush(events)
        self.closed = True
        if not self._raw:
            events.append(Failed("No JSON found in LLM response"))
        else:
            events.append(Failed("LLM response ended before a complete turn directive"))
        return events

    # ------------------------------------------------------------------
    # Tokenizer
    # ------------------------------------------------------------------

    def _consume(self, ch: str) -> ParseEvent | None:
        if self._depth == 0:
            if ch == "{":
                self._raw.append(ch)
                self._depth = 1
                self._expect_key = True
            return None

        self._raw.append(ch)

        if self._in_string:
            if self._escape:
                self._escape += ch
                if self._escape_complete():
                    decoded = self._decode_escape(self._escape)
                    self._escape = ""
                    self._string_text(decoded, escaped=True)
            elif ch == "\\":
                self._escape = ch
            elif ch == '"':
                self._close_string()
            else:
                self._string_text(ch, escaped=False)
            return None

        if ch == '"':
            self._open_string()
        elif ch in "{[":
            self._depth += 1
        elif ch in "}]":
            self._depth -= 1
            if self._depth == 0:
                return self._complete()
        elif ch == "," and self._depth == 1:
            self._expect_key = True
        return None

    def _escape_complete(self) -> bool:
        if len(self._escape) < 2:
            return False
        if self._escape[1] == "u":
            return len(self._escape) == 6
        return True

    @staticmethod
    def _decode_escape(seq: str) -> str:
        kind = seq[1]
        if kind == "u":
            try:
                return chr(int(seq[2:], 16))
            except ValueError:
                return seq  # malformed; the final json.loads will reject it
        return _SIMPLE_ESCAPES.get(kind, seq)

    def _open_string(self) -> None:
        self._in_string = True
        self._string_is_key = self._depth == 1 and self._expect_key
        if self._string_is_key:
            self._key = []
        elif (
            self._depth == 1
            and self._last_key == UTTERANCE_KEY
            and not self._utterance_done
        ):
            self._in_utterance = True

    def _close_string(self) -> None:
        if self._high:
            self._string_text_raw(self._high)
            self._high = ""
        self._in_string = False
        if self._string_is_key:
            self._last_key = "".join(self._key)
            if self._last_key == UTTERANCE_KEY:
                self._saw_utterance_key = True
            self._expect_key = False
            self._string_is_key = False
        elif self._in_utterance:
            self._in_utterance = False
            self._utterance_done = True

    def _string_text(self, text: str, escaped: bool) -> None:
        """Route decoded string characters, pairing split surrogate escapes."""
        if self._high:
            if escaped and _is_low_surrogate(text):
                pair = (self._high + text).encode("utf-16-le", "surrogatepass").decode("utf-16-le")
                self._high = ""
                self._string_text_raw(pair)
                return
            self._string_text_raw(self._high)
            self._high = ""
        if escaped and _is_high_surrogate(text):
            self._high = text
            return
        self._string_text_raw(text)

    def _string_text_raw(self, text: str) -> None:
        if self._string_is_key:
            self._key.append(text)
        elif self._in_utterance:
            self._emit(text)

    def _emit(self, text: str) -> None:
        self._pending.append(text)

    def _flush(self, events: list[ParseEvent]) -> None:
        if not self._pending:
            return
        text = "".join(self._pending)
        self._pending = []
        self._streamed.append(text)
        events.append(Delta(text))

    # ------------------------------------------------------------------
    # Object completion
    # ------------------------------------------------------------------

    def _complete(self) -> ParseEvent | None:
        self.closed = True
        raw = "".join(self._raw)
        try:
            data = json.loads(raw, strict=False)
        except json.JSONDecodeError as e:
            if not self._saw_utterance_key:
                # braces in commentary ahead of the directive
                logger.debug("skipping non-JSON text before the turn directive: %r", raw[:80])
                self.reset()
                return None
            logger.warning("turn directive is not valid JSON: %s", e)
            return Failed(f"Invalid JSON from LLM: {e}")
        try:
            directive = validate_directive(data, self._member_ids)
        except DirectiveError as e:
            logger.warning("turn directive rejected: %s", e)
            return Failed(str(e))
        if directive.utterance != self.streamed_utterance:
            logger.warning(
                "streamed utterance differs from parsed value (%d vs %d chars)",
                len(self.streamed_utterance), len(directive.utterance),
            )
        self.directive = directive
        return Completed(directive)

# app/orchestration/markup_parser.py
"""
Incremental markup parser for the model's in-band tool protocol.

The model writes plain prose interleaved with two markers:

    [action:Installing dependencies]
    [tool:write_file]{"path": "index.html", "content": "<div>{hi}</div>"}

`feed()` accepts fragments as they stream in and returns events as soon as
they are unambiguous. Only a suffix that might still become a marker is held
back; everything before it is released as text immediately. JSON payloads
are delimited by a brace scanner that ignores braces inside string literals
and keeps its position between feeds, so the buffer is never re-scanned.

This module is the only place that knows the marker syntax.
"""
import json
import re
from dataclasses import dataclass
from typing import List, Optional, Union

from app.core.config import settings
from app.core.logging import log
from app.tools.catalog import ToolCall, ToolName


ACTION_OPEN = "[action:"
TOOL_OPEN = "[tool:"
MARKER_CLOSE = "]"

# Past these lengths an unclosed "[action:" / "[tool:" is treated as prose
MAX_ACTION_LENGTH = 300
MAX_TOOL_NAME_LENGTH = 64

_TOOL_NAME = re.compile(r"\w+")


# ═══════════════════════════════════════════════════════════════════════════════
# EVENTS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TextEvent:
    text: str


@dataclass(frozen=True)
class ActionEvent:
    description: str


@dataclass(frozen=True)
class ToolCallEvent:
    call: ToolCall


@dataclass(frozen=True)
class ParseErrorEvent:
    """A marker that could not be turned into a call. `tool` is "action" for action markers."""
    tool: str
    excerpt: str
    reason: str


ParseEvent = Union[TextEvent, ActionEvent, ToolCallEvent, ParseErrorEvent]


# ═══════════════════════════════════════════════════════════════════════════════
# BRACE SCANNER
# ═══════════════════════════════════════════════════════════════════════════════

_MORE = "more"
_DONE = "done"
_NO_PAYLOAD = "no_payload"


class _BraceScanner:
    """Finds the end of one JSON object, resumable across buffer growth."""

    def __init__(self, name: str, start: int):
        self.name = name
        self.pos = start
        self.open_at: Optional[int] = None
        self.depth = 0
        self.in_string = False
        self.escaped = False

    def advance(self, text: str) -> str:
        while self.pos < len(text):
            ch = text[self.pos]

            if self.open_at is None:
                if ch.isspace():
                    self.pos += 1
                    continue
                if ch != "{":
                    return _NO_PAYLOAD
                self.open_at = self.pos

            if self.in_string:
                if self.escaped:
                    self.escaped = False
                elif ch == "\\":
                    self.escaped = True
                elif ch == '"':
                    self.in_string = False
            elif ch == '"':
                self.in_string = True
            elif ch == "{":
                self.depth += 1
            elif ch == "}":
                self.depth -= 1
                if self.depth == 0:
                    self.pos += 1
                    return _DONE

            self.pos += 1
        return _MORE


# ═══════════════════════════════════════════════════════════════════════════════
# PARSER
# ═══════════════════════════════════════════════════════════════════════════════

class IncrementalMarkupParser:
    """One instance per chat turn. Not thread-safe, not reusable after flush()."""

    def __init__(self, excerpt_length: Optional[int] = None, project_id: Optional[str] = None):
        self.excerpt_length = excerpt_length or settings.chat.error_excerpt_length
        self.project_id = project_id
        self._buf = ""
        # Offset where the search for "]" resumes inside the current marker
        self._close_from = 0
        self._scan: Optional[_BraceScanner] = None

    @property
    def pending(self) -> str:
        """The withheld tail that is not resolved yet."""
        return self._buf

    def feed(self, fragment: str) -> List[ParseEvent]:
        if fragment:
            self._buf += fragment
        return self._drain(final=False)

    def flush(self) -> List[ParseEvent]:
        """Resolve whatever is left at end of stream, best-effort."""
        events = self._drain(final=True)
        self._buf = ""
        self._close_from = 0
        self._scan = None
        return events

    # ─────────────────────────────────────────────────────────────────────────
    # Driver
    # ─────────────────────────────────────────────────────────────────────────

    def _drain(self, final: bool) -> List[ParseEvent]:
        events: List[ParseEvent] = []
        while self._buf:
            if self._scan is None:
                start = self._buf.find("[")
                if start < 0:
                    self._text(events, self._buf)
                    self._consume(len(self._buf))
                    break
                if start > 0:
                    self._text(events, self._buf[:start])
                    self._consume(start)

            if not self._marker(events, final):
                break
        return events

    def _marker(self, events: List[ParseEvent], final: bool) -> bool:
        """Handle a buffer starting with '['. False means wait for more input."""
        if self._scan is not None:
            return self._tool_payload(events, final)

        buf = self._buf
        if not final and any(len(buf) < len(o) and o.startswith(buf) for o in (ACTION_OPEN, TOOL_OPEN)):
            return False

        if buf.startswith(ACTION_OPEN):
            return self._action(events, final)
        if buf.startswith(TOOL_OPEN):
            return self._tool_name(events, final)

        self._text(events, "[")
        self._consume(1)
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Markers
    # ─────────────────────────────────────────────────────────────────────────

    def _find_close(self, opener: str, limit: int):
        """
        Index of the closing ']' or None. Returns -1 when the marker turned out
        to be prose (newline before ']' or over the length limit).
        """
        start = max(self._close_from, len(opener))
        for i in range(start, len(self._buf)):
            ch = self._buf[i]
            if ch == MARKER_CLOSE:
                return i
            if ch == "\n" or i - len(opener) >= limit:
                return -1
        self._close_from = len(self._buf)
        return None

    def _action(self, events: List[ParseEvent], final: bool) -> bool:
        close = self._find_close(ACTION_OPEN, MAX_ACTION_LENGTH)
        if close == -1:
            self._text(events, "[")
            self._consume(1)
            return True
        if close is None:
            if not final:
                return False
            self._error(events, "action", self._buf, "unterminated action marker")
            self._consume(len(self._buf))
            return True

        description = self._buf[len(ACTION_OPEN):close].strip()
        self._consume(close + 1)
        if description:
            events.append(ActionEvent(description))
        return True

    def _tool_name(self, events: List[ParseEvent], final: bool) -> bool:
        close = self._find_close(TOOL_OPEN, MAX_TOOL_NAME_LENGTH)
        if close == -1:
            self._text(events, "[")
            self._consume(1)
            return True
        if close is None:
            if not final:
                return False
            self._error(events, "tool", self._buf, "unterminated tool marker")
            self._consume(len(self._buf))
            return True

        name = self._buf[len(TOOL_OPEN):close].strip()
        if not _TOOL_NAME.fullmatch(name):
            self._text(events, "[")
            self._consume(1)
            return True

        self._scan = _BraceScanner(name, close + 1)
        return self._tool_payload(events, final)

    def _tool_payload(self, events: List[ParseEvent], final: bool) -> bool:
        scan = self._scan
        state = scan.advance(self._buf)

        if state == _MORE:
            if not final:
                return False
            excerpt = self._buf[scan.open_at:] if scan.open_at is not None else ""
            reason = "unterminated JSON payload" if excerpt else "missing JSON payload"
            self._resolve_failure(events, scan.name, excerpt, reason)
            self._scan = None
            self._consume(len(self._buf))
            return True

        if state == _NO_PAYLOAD:
            self._resolve_failure(events, scan.name, "", "missing JSON payload")
            self._scan = None
            self._consume(scan.pos)
            return True

        payload = self._buf[scan.open_at:scan.pos]
        self._scan = None
        self._consume(scan.pos)
        self._resolve(events, scan.name, payload)
        return True

    def _resolve(self, events: List[ParseEvent], name: str, payload: str) -> None:
        tool = ToolName.parse(name)
        if tool is None:
            log("PARSER", f"Ignoring unknown tool '{name}'", project_id=self.project_id)
            return

        try:
            arguments = json.loads(payload)
        except json.JSONDecodeError as e:
            self._error(events, name, payload, f"invalid JSON: {e.msg}")
            return

        if not isinstance(arguments, dict):
            self._error(events, name, payload, "payload is not a JSON object")
            return

        events.append(ToolCallEvent(ToolCall(tool, arguments)))

    def _resolve_failure(self, events: List[ParseEvent], name: str, excerpt: str, reason: str) -> None:
        if ToolName.parse(name) is None:
            log("PARSER", f"Ignoring unknown tool '{name}' ({reason})", project_id=self.project_id)
            return
        self._error(events, name, excerpt, reason)

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    def _consume(self, n: int) -> None:
        self._buf = self._buf[n:]
        self._close_from = 0

    def _text(self, events: List[ParseEvent], text: str) -> None:
        if not text:
            return
        if events and isinstance(events[-1], TextEvent):
            events[-1] = TextEvent(events[-1].text + text)
        else:
            events.append(TextEvent(text))

    def _error(self, events: List[ParseEvent], tool: str, raw: str, reason: str) -> None:
        excerpt = raw[: self.excerpt_length]
        log("PARSER", f"Dropped {tool} marker: {reason} | {excerpt[:80]!r}", project_id=self.project_id)
        events.append(ParseErrorEvent(tool=tool, excerpt=excerpt, reason=reason))

# app/orchestration/stream_orchestrator.py
"""
Stream Orchestrator - one chat turn, end to end.

    IDLE → CONTEXT_BUILT → STREAMING → DRAINING → FINALIZED
                        ↘ ABORTED (model failed before its first fragment)

- The user message is persisted before anything else
- Tool calls run one at a time, in the order their markers appeared
- Once DRAINING is reached the assistant turn is persisted unconditionally,
  whether or not the client is still connected
"""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from app.core.config import settings
from app.core.exceptions import DispatchError, ModelCallError
from app.core.logging import log, log_section
from app.db.store import ProjectStore
from app.lib.monitoring import active_chat_streams
from app.llm import BUILDER_PROMPT, ChatMessages, ModelStream, stream_chat
from app.models import ActionRecord, Attachment, ToolCallRecord
from app.orchestration.context import build_model_input, render_sandbox_annex
from app.orchestration.keepalive import ClientChannel
from app.orchestration.markup_parser import (
    ActionEvent,
    IncrementalMarkupParser,
    ParseErrorEvent,
    ParseEvent,
    TextEvent,
    ToolCallEvent,
)
from app.sandbox import SandboxRegistry, SandboxState
from app.tools import ToolCall, ToolDispatcher, error_record


class TurnState(str, Enum):
    IDLE = "idle"
    CONTEXT_BUILT = "context_built"
    STREAMING = "streaming"
    DRAINING = "draining"
    FINALIZED = "finalized"
    ABORTED = "aborted"


@dataclass
class TurnOutcome:
    state: TurnState
    user_message_id: Optional[str] = None
    assistant_message_id: Optional[str] = None
    text: str = ""
    actions: List[ActionRecord] = field(default_factory=list)
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    error: Optional[str] = None


class StreamOrchestrator:
    def __init__(
        self,
        project_id: str,
        store: ProjectStore,
        sandboxes: SandboxRegistry,
        dispatcher: ToolDispatcher,
        channel: ClientChannel,
        model_stream: ModelStream = stream_chat,
        system_prompt: str = BUILDER_PROMPT,
        history_window: Optional[int] = None,
    ):
        self.project_id = project_id
        self.store = store
        self.sandboxes = sandboxes
        self.dispatcher = dispatcher
        self.channel = channel
        self.model_stream = model_stream
        self.system_prompt = system_prompt
        self.history_window = history_window or settings.chat.history_window

        self.state = TurnState.IDLE
        self._text: List[str] = []
        self._actions: List[ActionRecord] = []
        self._tool_calls: List[ToolCallRecord] = []

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    async def run(self, content: str, attachments: Optional[List[Attachment]] = None) -> TurnOutcome:
        """
        Run one turn. Turns for the same project are serialized.

        Always ends the client stream, with `done` only when the assistant
        turn was persisted.
        """
        lock = self.sandboxes.turn_lock(self.project_id)
        if lock.locked():
            log("STREAM", "Waiting for the previous turn to finish", project_id=self.project_id)

        async with lock:
            active_chat_streams.inc()
            try:
                return await self._run(content, attachments)
            except Exception as e:
                log("STREAM", f"Turn failed in {self.state.value}: {e}", project_id=self.project_id)
                self.channel.send("error", message=f"Internal error: {e}")
                raise
            finally:
                active_chat_streams.dec()
                self.channel.finish()

    async def _run(self, content: str, attachments: Optional[List[Attachment]]) -> TurnOutcome:
        log_section("STREAM", "Chat turn started", project_id=self.project_id)

        user_message = await self.store.create_message(
            self.project_id, "user", content, attachments=attachments
        )
        messages = await self._build_context(content, user_message.id, attachments)
        self.state = TurnState.CONTEXT_BUILT

        parser = IncrementalMarkupParser(project_id=self.project_id)
        try:
            stream = self.model_stream(messages, self.system_prompt).__aiter__()
        except Exception as e:
            return self._abort(user_message.id, e)
        received = False

        while True:
            try:
                fragment = await stream.__anext__()
            except StopAsyncIteration:
                break
            except Exception as e:
                if not received:
                    return self._abort(user_message.id, e)
                log("STREAM", f"Model stream interrupted: {e}", project_id=self.project_id)
                self.channel.send("error", message=f"Model stream interrupted: {e}")
                break

            if not received:
                received = True
                self.state = TurnState.STREAMING
            await self._handle(parser.feed(fragment))

        self.state = TurnState.DRAINING
        await self._handle(parser.flush())
        return await self._finalize(user_message.id)

    # =========================================================================
    # STATES
    # =========================================================================

    async def _build_context(
        self,
        content: str,
        user_message_id: str,
        attachments: Optional[List[Attachment]],
    ) -> ChatMessages:
        # One extra row: the window must not count the message just stored
        recent = await self.store.list_messages(self.project_id, limit=self.history_window + 1)
        history = [m for m in recent if m.id != user_message_id][-self.history_window:]

        state = await self._probe_sandbox()
        sandbox = self.sandboxes.get(self.project_id)
        annex = render_sandbox_annex(
            state,
            sandbox_id=sandbox.sandbox_id if sandbox else None,
            preview_url=sandbox.preview_url if sandbox else None,
        )
        background = self.sandboxes.drain_background_results(self.project_id)

        log(
            "CONTEXT",
            f"{len(history)} history turns, {len(background)} background results, "
            f"sandbox {'unknown' if state is None else ('active' if state.is_active else 'inactive')}",
            project_id=self.project_id,
        )
        return build_model_input(history, content, annex, background, attachments)

    async def _probe_sandbox(self) -> Optional[SandboxState]:
        """Best-effort: None means unknown, never blocks the turn."""
        try:
            project = await self.store.get_project(self.project_id)
            return await asyncio.wait_for(
                self.sandboxes.status(self.project_id, project.sandbox_id if project else None),
                timeout=settings.sandbox.port_probe_timeout * 2,
            )
        except Exception as e:
            log("STREAM", f"Sandbox status probe failed: {e}", project_id=self.project_id)
            return None

    def _abort(self, user_message_id: str, cause: Exception) -> TurnOutcome:
        error = ModelCallError(f"Model call failed: {cause}", cause)
        self.state = TurnState.ABORTED
        log("STREAM", error.message, project_id=self.project_id)
        self.channel.send("error", message=error.message)
        return TurnOutcome(state=self.state, user_message_id=user_message_id, error=error.message)

    async def _finalize(self, user_message_id: str) -> TurnOutcome:
        for action in self._actions:
            if action.status == "in_progress":
                action.status = "completed"

        text = "".join(self._text).strip()
        message = await self.store.create_message(
            self.project_id,
            "assistant",
            text,
            tool_calls=self._tool_calls,
            actions=self._actions,
        )
        self.state = TurnState.FINALIZED

        if self._actions:
            self.channel.send("actions_completed", actions=[a.model_dump() for a in self._actions])
        self.channel.send("done", messageId=message.id)

        log(
            "STREAM",
            f"Turn finalized: {len(self._tool_calls)} tool calls, {len(self._actions)} actions"
            + (f", {self.channel.dropped} events dropped after disconnect" if self.channel.dropped else ""),
            project_id=self.project_id,
        )
        return TurnOutcome(
            state=self.state,
            user_message_id=user_message_id,
            assistant_message_id=message.id,
            text=text,
            actions=list(self._actions),
            tool_calls=list(self._tool_calls),
        )

    # =========================================================================
    # EVENTS
    # =========================================================================

    async def _handle(self, events: List[ParseEvent]) -> None:
        for event in events:
            if isinstance(event, TextEvent):
                self._text.append(event.text)
                self.channel.send("chunk", content=event.text)
            elif isinstance(event, ActionEvent):
                action = ActionRecord(description=event.description)
                self._actions.append(action)
                self.channel.send("action", action=action.model_dump())
            elif isinstance(event, ToolCallEvent):
                await self._dispatch(event.call)
            elif isinstance(event, ParseErrorEvent):
                self.channel.send(
                    "error",
                    message=f"Failed to parse {event.tool} arguments ({event.reason})",
                    tool=event.tool,
                    excerpt=event.excerpt,
                )

    async def _dispatch(self, call: ToolCall) -> None:
        tool = call.name.value
        try:
            result = await self.dispatcher.execute(call)
        except DispatchError as e:
            self._tool_calls.append(error_record(call, e.reason))
            self.channel.send("error", message=e.message, tool=tool)
            return
        except Exception as e:
            log("STREAM", f"Unexpected {tool} failure: {e!r}", project_id=self.project_id)
            self._tool_calls.append(error_record(call, str(e)))
            self.channel.send("error", message=f"{tool} failed: {e}", tool=tool)
            return

        record = result.to_record(call)
        self._tool_calls.append(record)
        self.channel.send(
            "tool",
            name=tool,
            summary=record.summary,
            status=record.status,
            result=record.result,
        )

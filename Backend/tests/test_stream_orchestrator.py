# tests/test_stream_orchestrator.py
"""
Tests for one chat turn end to end: context, streaming, tool dispatch,
persistence and the events the client sees.
"""
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.exceptions import LLMError
from app.orchestration import KEEPALIVE_FRAME, ClientChannel, StreamOrchestrator, TurnState
from app.tools import ToolDispatcher, ToolResult


def parse_frames(frames):
    return [json.loads(f[len("data: "):]) for f in frames if f != KEEPALIVE_FRAME]


def scripted(*fragments, fail_after=None):
    """A model stream that yields fixed fragments and records its input."""
    seen = {}

    async def stream(messages, system_prompt):
        seen["messages"] = messages
        seen["system_prompt"] = system_prompt
        for i, fragment in enumerate(fragments):
            if fail_after is not None and i == fail_after:
                raise LLMError("gemini", "connection reset")
            yield fragment
        if fail_after is not None and fail_after >= len(fragments):
            raise LLMError("gemini", "connection reset")

    stream.seen = seen
    return stream


def failing_stream():
    async def stream(messages, system_prompt):
        raise LLMError("gemini", "503 Service Unavailable")
        yield ""  # pragma: no cover

    return stream


async def run_turn(project, store, sandboxes, dispatcher, model_stream, content="Build a todo app", channel=None):
    channel = channel or ClientChannel(heartbeat_interval=60, project_id=project.id)
    orchestrator = StreamOrchestrator(
        project_id=project.id,
        store=store,
        sandboxes=sandboxes,
        dispatcher=dispatcher,
        channel=channel,
        model_stream=model_stream,
        system_prompt="You build apps.",
    )
    outcome = await orchestrator.run(content)
    frames = [frame async for frame in channel.frames()] if not channel.closed else []
    return outcome, parse_frames(frames), channel


class TestTurnLifecycle:
    """Happy path and persistence."""

    @pytest.mark.asyncio
    async def test_full_turn(self, project, store, sandboxes, dispatcher, live_sandbox):
        """
        GIVEN a model that announces an action, writes a file and talks
        WHEN the turn runs
        THEN the client sees chunks, the action, the tool badge and done
        AND both messages are persisted
        """
        model = scripted(
            "On it. [action:Creating page]",
            '[tool:write_file]{"path":"index.html",',
            '"content":"<h1>Hi</h1>"} All set.',
        )

        outcome, events, _ = await run_turn(project, store, sandboxes, dispatcher, model)

        assert outcome.state is TurnState.FINALIZED
        types = [e["type"] for e in events]
        assert types == ["chunk", "action", "tool", "chunk", "actions_completed", "done"]
        assert events[1]["action"] == {"description": "Creating page", "status": "in_progress"}
        assert events[2]["name"] == "write_file"
        assert events[2]["summary"] == "Created index.html"
        assert events[4]["actions"] == [{"description": "Creating page", "status": "completed"}]
        assert events[-1]["messageId"] == outcome.assistant_message_id

        user, assistant = store.messages_for(project.id)
        assert user.role == "user" and user.content == "Build a todo app"
        assert assistant.content == "On it.  All set."
        assert [t.name for t in assistant.tool_calls] == ["write_file"]
        assert assistant.actions[0].status == "completed"
        assert live_sandbox.files["index.html"] == "<h1>Hi</h1>"

    @pytest.mark.asyncio
    async def test_turn_persists_after_client_disconnect(self, project, store, sandboxes, dispatcher, live_sandbox):
        """
        GIVEN a client that went away before the turn finished
        WHEN the model keeps streaming and calling tools
        THEN the side effects happen and the assistant turn is still stored
        """
        channel = ClientChannel(heartbeat_interval=60, project_id=project.id)
        channel.close("client disconnected")
        model = scripted("Writing. ", '[tool:write_file]{"path":"a.txt","content":"x"}', " Done.")

        outcome, _, channel = await run_turn(project, store, sandboxes, dispatcher, model, channel=channel)

        assert outcome.state is TurnState.FINALIZED
        assert channel.dropped > 0
        assert live_sandbox.files["a.txt"] == "x"
        assert len(store.messages_for(project.id, "assistant")) == 1

    @pytest.mark.asyncio
    async def test_disconnect_during_streaming(self, project, store, sandboxes, dispatcher, live_sandbox):
        """
        GIVEN a client that reads the first event and then goes away
        WHEN the model carries on with a tool call
        THEN the file is written, the action completes and the turn is stored
        """
        client_gone = asyncio.Event()

        async def model(messages, system_prompt):
            yield "[action:Writing file]"
            await client_gone.wait()
            yield '[tool:write_file]{"path":"a.txt","content":"x"}'
            yield " Done."

        channel = ClientChannel(heartbeat_interval=60, project_id=project.id)
        orchestrator = StreamOrchestrator(
            project_id=project.id,
            store=store,
            sandboxes=sandboxes,
            dispatcher=dispatcher,
            channel=channel,
            model_stream=model,
            system_prompt="You build apps.",
        )
        turn = asyncio.create_task(orchestrator.run("Write a file"))

        frames = channel.frames()
        first = await frames.__anext__()
        await frames.aclose()
        client_gone.set()
        outcome = await asyncio.wait_for(turn, timeout=2)

        assert parse_frames([first])[0]["type"] == "action"
        assert channel.closed
        assert channel.dropped > 0
        assert outcome.state is TurnState.FINALIZED
        assert live_sandbox.files["a.txt"] == "x"
        (assistant,) = store.messages_for(project.id, "assistant")
        assert [a.status for a in assistant.actions] == ["completed"]
        assert [t.name for t in assistant.tool_calls] == ["write_file"]

    @pytest.mark.asyncio
    async def test_empty_model_output_still_finalizes(self, project, store, sandboxes, dispatcher):
        outcome, events, _ = await run_turn(project, store, sandboxes, dispatcher, scripted())

        assert outcome.state is TurnState.FINALIZED
        assert [e["type"] for e in events] == ["done"]
        assert store.messages_for(project.id, "assistant")[0].content == ""


class TestFailures:
    """Model and tool failures."""

    @pytest.mark.asyncio
    async def test_model_fails_before_first_fragment(self, project, store, sandboxes, dispatcher):
        """
        GIVEN a model call that fails immediately
        WHEN the turn runs
        THEN it aborts with an error event, no done, and no assistant message
        AND the user message is kept
        """
        outcome, events, _ = await run_turn(project, store, sandboxes, dispatcher, failing_stream())

        assert outcome.state is TurnState.ABORTED
        assert [e["type"] for e in events] == ["error"]
        assert "503" in events[0]["message"]
        assert len(store.messages_for(project.id, "user")) == 1
        assert store.messages_for(project.id, "assistant") == []

    @pytest.mark.asyncio
    async def test_model_raises_when_called(self, project, store, sandboxes, dispatcher):
        """
        GIVEN a model stream that raises before returning an iterator
        WHEN the turn runs
        THEN it aborts exactly like a stream that fails on its first read
        """
        def model(messages, system_prompt):
            raise LLMError("gemini", "GEMINI_API_KEY not configured")

        outcome, events, _ = await run_turn(project, store, sandboxes, dispatcher, model)

        assert outcome.state is TurnState.ABORTED
        assert [e["type"] for e in events] == ["error"]
        assert "GEMINI_API_KEY" in events[0]["message"]
        assert store.messages_for(project.id, "assistant") == []

    @pytest.mark.asyncio
    async def test_model_fails_mid_stream(self, project, store, sandboxes, dispatcher):
        model = scripted("Partial answer", " more", fail_after=2)

        outcome, events, _ = await run_turn(project, store, sandboxes, dispatcher, model)

        assert outcome.state is TurnState.FINALIZED
        assert [e["type"] for e in events] == ["chunk", "chunk", "error", "done"]
        assert store.messages_for(project.id, "assistant")[0].content == "Partial answer more"

    @pytest.mark.asyncio
    async def test_malformed_tool_call_reaches_finalized(self, project, store, sandboxes, dispatcher):
        """
        GIVEN a write_file marker whose JSON is cut off by end of stream
        WHEN the turn drains
        THEN a parse error is reported, nothing is dispatched, the turn finalizes
        """
        model = scripted('Writing now [tool:write_file]{"path":"a.txt"')

        outcome, events, _ = await run_turn(project, store, sandboxes, dispatcher, model)

        assert outcome.state is TurnState.FINALIZED
        error = next(e for e in events if e["type"] == "error")
        assert error["tool"] == "write_file"
        assert error["excerpt"] == '{"path":"a.txt"'
        assert outcome.tool_calls == []
        assert await store.list_files(project.id) == []

    @pytest.mark.asyncio
    async def test_tool_failure_does_not_stop_the_turn(self, project, store, sandboxes):
        """
        GIVEN a dispatcher whose first call raises
        WHEN two tool calls stream in
        THEN the first is recorded as an error and the second still runs
        """
        dispatcher = MagicMock()
        dispatcher.execute = AsyncMock(
            side_effect=[RuntimeError("sandbox exploded"), ToolResult(success=True, summary="Read a.txt")]
        )
        model = scripted(
            '[tool:run_shell]{"command":"ls"}',
            '[tool:read_file]{"path":"a.txt"}',
        )

        outcome, events, _ = await run_turn(project, store, sandboxes, dispatcher, model)

        assert outcome.state is TurnState.FINALIZED
        assert [e["type"] for e in events] == ["error", "tool", "done"]
        assert events[0]["tool"] == "run_shell"
        assert [t.status for t in outcome.tool_calls] == ["error", "completed"]
        assert outcome.tool_calls[0].result == {"error": "sandbox exploded"}

    @pytest.mark.asyncio
    async def test_dispatch_error_is_recorded(self, project, store, sandboxes, dispatcher):
        model = scripted('[tool:read_file]{"path":"missing.txt"} ok')

        outcome, events, _ = await run_turn(project, store, sandboxes, dispatcher, model)

        assert events[0]["type"] == "error"
        assert events[0]["tool"] == "read_file"
        assert outcome.tool_calls[0].status == "error"
        assert "File not found" in outcome.tool_calls[0].result["error"]


class TestContext:
    """What the model sees."""

    @pytest.mark.asyncio
    async def test_history_excludes_current_message(self, project, store, sandboxes, dispatcher):
        await store.create_message(project.id, "user", "First request")
        await store.create_message(project.id, "assistant", "First answer")
        model = scripted("ok")

        await run_turn(project, store, sandboxes, dispatcher, model, content="Second request")

        messages = model.seen["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[0]["content"] == "First request"
        assert messages[-1]["content"].startswith("Second request")
        assert model.seen["system_prompt"] == "You build apps."

    @pytest.mark.asyncio
    async def test_sandbox_status_and_background_results(self, project, store, sandboxes, dispatcher, live_sandbox):
        """
        GIVEN a live sandbox with no server and a finished background command
        WHEN the next turn builds its context
        THEN both appear in the current user message, and the inbox is drained
        """
        sandboxes.record_background_result(project.id, {"command": "npm install", "stdout": "added 12 packages"})
        model = scripted("ok")

        await run_turn(project, store, sandboxes, dispatcher, model, content="Is it running?")

        current = model.seen["messages"][-1]["content"]
        assert "[BACKGROUND COMMAND RESULTS]" in current
        assert "npm install" in current and "added 12 packages" in current
        assert "[SANDBOX STATUS]" in current
        assert live_sandbox.sandbox_id in current
        assert "NOTE: No server is running" in current
        assert sandboxes.drain_background_results(project.id) == []

    @pytest.mark.asyncio
    async def test_stored_sandbox_is_reconnected_for_status(
        self, project, store, blobs, search, surviving_sandboxes
    ):
        """
        GIVEN a project whose sandbox outlived a server restart
        WHEN the first turn after the restart builds its context
        THEN the sandbox is reattached and its status is in the annex
        """
        await store.update_project(project.id, sandbox_id="sbx-old", sandbox_url="https://3000-sbx-old.e2b.app")
        dispatcher = ToolDispatcher(project.id, store, blobs, surviving_sandboxes, search)
        model = scripted("ok")

        await run_turn(project, store, surviving_sandboxes, dispatcher, model, content="Hello")

        current = model.seen["messages"][-1]["content"]
        assert "[SANDBOX STATUS]" in current
        assert "sbx-old" in current
        assert surviving_sandboxes.get(project.id).sandbox_id == "sbx-old"

    @pytest.mark.asyncio
    async def test_no_sandbox_means_no_annex(self, project, store, sandboxes, dispatcher):
        model = scripted("ok")

        await run_turn(project, store, sandboxes, dispatcher, model, content="Hello")

        assert model.seen["messages"][-1]["content"] == "Hello"


class TestSerialization:
    @pytest.mark.asyncio
    async def test_turns_for_one_project_do_not_interleave(self, project, store, sandboxes, dispatcher):
        order = []

        def tracking(name):
            async def stream(messages, system_prompt):
                order.append(f"{name}:start")
                await asyncio.sleep(0.01)
                yield name
                order.append(f"{name}:end")

            return stream

        await asyncio.gather(
            run_turn(project, store, sandboxes, dispatcher, tracking("a"), content="one"),
            run_turn(project, store, sandboxes, dispatcher, tracking("b"), content="two"),
        )

        assert order in (
            ["a:start", "a:end", "b:start", "b:end"],
            ["b:start", "b:end", "a:start", "a:end"],
        )
        assert [m.role for m in store.messages_for(project.id)] == ["user", "assistant", "user", "assistant"]

# app/orchestration/__init__.py
"""
Chat turn engine.

Usage:
    channel = ClientChannel(is_disconnected=request.is_disconnected)
    orchestrator = StreamOrchestrator(
        project_id=project_id,
        store=store,
        sandboxes=sandboxes,
        dispatcher=ToolDispatcher(project_id, store, blobs, sandboxes, search),
        channel=channel,
    )
    task = asyncio.create_task(orchestrator.run(content))
    return StreamingResponse(channel.frames(), media_type="text/event-stream")
"""

from .markup_parser import (
    IncrementalMarkupParser,
    TextEvent,
    ActionEvent,
    ToolCallEvent,
    ParseErrorEvent,
    ParseEvent,
)
from .keepalive import ClientChannel, KEEPALIVE_FRAME, format_event
from .stream_orchestrator import StreamOrchestrator, TurnState, TurnOutcome

__all__ = [
    "IncrementalMarkupParser",
    "TextEvent",
    "ActionEvent",
    "ToolCallEvent",
    "ParseErrorEvent",
    "ParseEvent",
    "ClientChannel",
    "KEEPALIVE_FRAME",
    "format_event",
    "StreamOrchestrator",
    "TurnState",
    "TurnOutcome",
]

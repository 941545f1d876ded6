# app/orchestration/keepalive.py
"""
Client channel with heartbeat and disconnect detection.

The orchestrator writes events with `send()`; the HTTP layer drains
`frames()` into a StreamingResponse. Once the client is gone every `send()`
is a no-op, while the orchestrator itself keeps running.
"""
import asyncio
import json
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from app.core.config import settings
from app.core.logging import log


KEEPALIVE_FRAME = ": keepalive\n\n"

DisconnectProbe = Callable[[], Awaitable[bool]]


def format_event(payload: dict) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"


class ClientChannel:
    """
    Server-to-client event channel for one chat turn.

    Closed by whichever comes first: the response generator being torn down
    (client went away), the disconnect probe reporting true, or close().
    """

    def __init__(
        self,
        heartbeat_interval: Optional[float] = None,
        is_disconnected: Optional[DisconnectProbe] = None,
        project_id: Optional[str] = None,
    ):
        self.heartbeat_interval = heartbeat_interval or settings.chat.heartbeat_interval
        self.is_disconnected = is_disconnected
        self.project_id = project_id
        self._queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event_type: str, **payload: Any) -> bool:
        """Queue one event. Returns False when the client is gone."""
        if self._closed:
            self.dropped += 1
            return False
        self._queue.put_nowait(format_event({"type": event_type, **payload}))
        return True

    def finish(self) -> None:
        """End of turn: lets frames() return after the queued events."""
        self._queue.put_nowait(None)

    def close(self, reason: str = "closed") -> None:
        if self._closed:
            return
        self._closed = True
        log("KEEPALIVE", f"Client channel closed: {reason}", project_id=self.project_id)

    async def frames(self) -> AsyncIterator[str]:
        heartbeat = asyncio.create_task(self._heartbeat())
        try:
            while True:
                frame = await self._queue.get()
                if frame is None:
                    break
                yield frame
        finally:
            heartbeat.cancel()
            self.close("response stream ended")

    async def _heartbeat(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.heartbeat_interval)
            if self.is_disconnected is not None and await self.is_disconnected():
                self.close("client disconnected")
                self._queue.put_nowait(None)
                return
            if not self._closed:
                self._queue.put_nowait(KEEPALIVE_FRAME)

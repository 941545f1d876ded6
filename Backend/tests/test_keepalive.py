# tests/test_keepalive.py
"""
Tests for the client channel: event framing, heartbeats, disconnects.
"""
import asyncio
import json

import pytest

from app.orchestration.keepalive import KEEPALIVE_FRAME, ClientChannel, format_event


async def collect(channel):
    return [frame async for frame in channel.frames()]


def test_format_event():
    frame = format_event({"type": "chunk", "content": "hi"})

    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame[len("data: "):]) == {"type": "chunk", "content": "hi"}


@pytest.mark.asyncio
async def test_frames_deliver_queued_events_then_stop():
    channel = ClientChannel(heartbeat_interval=60)
    channel.send("chunk", content="a")
    channel.send("done", messageId="m1")
    channel.finish()

    frames = await collect(channel)

    assert [json.loads(f[6:])["type"] for f in frames] == ["chunk", "done"]
    assert channel.closed


@pytest.mark.asyncio
async def test_heartbeat_while_idle():
    """
    GIVEN a turn that is busy and sends nothing
    WHEN more than one heartbeat interval passes
    THEN keepalive comment frames are written
    """
    channel = ClientChannel(heartbeat_interval=0.01)
    reader = asyncio.create_task(collect(channel))

    await asyncio.sleep(0.05)
    channel.send("done", messageId="m1")
    channel.finish()
    frames = await asyncio.wait_for(reader, timeout=1)

    assert KEEPALIVE_FRAME in frames
    assert frames[-1].startswith("data: ")


@pytest.mark.asyncio
async def test_disconnect_probe_closes_channel():
    """
    GIVEN a client that has gone away
    WHEN the heartbeat checks the connection
    THEN the channel closes, frames() ends and later sends are dropped
    """
    async def gone():
        return True

    channel = ClientChannel(heartbeat_interval=0.01, is_disconnected=gone)

    frames = await asyncio.wait_for(collect(channel), timeout=1)

    assert frames == []
    assert channel.closed
    assert channel.send("chunk", content="late") is False
    assert channel.send("done", messageId="m1") is False
    assert channel.dropped == 2


def test_send_after_close_is_a_no_op():
    channel = ClientChannel(heartbeat_interval=60)
    channel.close("test")

    assert channel.send("chunk", content="x") is False
    assert channel.dropped == 1

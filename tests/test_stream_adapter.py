"""Tests for the fal-to-chat stream adapter."""

import asyncio
import json

import pytest

from falproxy.core.sse import SSE_DONE
from falproxy.fal import FalToChatStreamAdapter, adapt_fal_stream_to_chat
from falproxy.logging import RequestLogRecorder


async def _aiter(events):
    for event in events:
        yield event


def _decode(frame: bytes):
    assert frame.startswith(b"data: ")
    assert frame.endswith(b"\n\n")
    data = frame[len(b"data: "):-2].decode("utf-8")
    if data == "[DONE]":
        return "[DONE]"
    return json.loads(data)


async def _collect(adapter, events, **kwargs):
    return [frame async for frame in adapter.adapt_stream(_aiter(events), **kwargs)]


async def _failing_events(events, exc):
    for event in events:
        yield event
    raise exc


@pytest.mark.asyncio
async def test_emits_incremental_chunks_and_done():
    adapter = FalToChatStreamAdapter("openai/gpt-4o")
    frames = await _collect(adapter, [
        {"output": "Hel", "partial": True},
        {"output": "Hello", "partial": True},
        {"output": "Hello world", "partial": False},
    ])

    assert frames[-1] == SSE_DONE
    chunks = [_decode(frame) for frame in frames[:-1]]
    assert [chunk["choices"][0]["delta"]["content"] for chunk in chunks] == ["Hel", "lo", " world"]
    assert [chunk["choices"][0]["finish_reason"] for chunk in chunks] == [None, None, "stop"]
    assert {chunk["id"] for chunk in chunks} == {adapter.completion_id}
    assert all(chunk["object"] == "chat.completion.chunk" for chunk in chunks)
    assert all(chunk["model"] == "openai/gpt-4o" for chunk in chunks)
    assert adapter.finish_reason == "stop"


@pytest.mark.asyncio
async def test_completion_id_defaults_to_timestamp_id():
    adapter = FalToChatStreamAdapter("m")
    assert adapter.completion_id.startswith("chatcmpl-")

    custom = FalToChatStreamAdapter("m", completion_id="chatcmpl-fixed")
    frames = await _collect(custom, [{"output": "a", "partial": False}])
    assert _decode(frames[0])["id"] == "chatcmpl-fixed"


@pytest.mark.asyncio
async def test_error_event_renders_error_chunk():
    adapter = FalToChatStreamAdapter("m", completion_id="chatcmpl-1")
    frames = await _collect(adapter, [
        {"output": "Par", "partial": True},
        {"output": "Par", "partial": True, "error": {"message": "quota exceeded"}},
    ])

    assert len(frames) == 3
    assert _decode(frames[0])["choices"][0]["delta"]["content"] == "Par"
    error_chunk = _decode(frames[1])
    assert error_chunk["id"] == "chatcmpl-1-error"
    choice = error_chunk["choices"][0]
    assert choice["finish_reason"] == "error"
    assert choice["delta"] == {}
    assert choice["message"]["role"] == "assistant"
    assert choice["message"]["content"] == 'Fal Stream Error: {"message": "quota exceeded"}'
    assert frames[2] == SSE_DONE
    assert adapter.finish_reason == "error"


@pytest.mark.asyncio
async def test_stops_consuming_after_terminal_event():
    adapter = FalToChatStreamAdapter("m")
    frames = await _collect(adapter, [
        {"output": "done", "partial": False},
        {"output": "done and more", "partial": True},
    ])

    assert frames[-1] == SSE_DONE
    assert frames.count(SSE_DONE) == 1
    assert adapter.events_consumed == 1


@pytest.mark.asyncio
async def test_source_ending_without_terminal_still_terminates():
    adapter = FalToChatStreamAdapter("m")
    frames = await _collect(adapter, [{"output": "abc", "partial": True}])

    assert len(frames) == 2
    assert _decode(frames[0])["choices"][0]["finish_reason"] is None
    assert frames[1] == SSE_DONE
    assert adapter.finish_reason is None


@pytest.mark.asyncio
async def test_source_exception_renders_proxy_error_then_done():
    adapter = FalToChatStreamAdapter("m")
    events = _failing_events([{"output": "a", "partial": True}], RuntimeError("connection reset"))
    frames = [frame async for frame in adapter.adapt_stream(events)]

    assert len(frames) == 3
    assert _decode(frames[1]) == {
        "error": {
            "message": "Stream processing error",
            "type": "proxy_error",
            "details": "connection reset",
        }
    }
    assert frames[2] == SSE_DONE
    assert adapter.reconstructor.finished


@pytest.mark.asyncio
async def test_disconnect_stops_before_next_event():
    checks = []

    async def disconnected() -> bool:
        checks.append(True)
        return len(checks) > 1

    adapter = FalToChatStreamAdapter("m")
    frames = []
    with pytest.raises(asyncio.CancelledError):
        async for frame in adapter.adapt_stream(
            _aiter([{"output": "a", "partial": True}, {"output": "ab", "partial": True}]),
            disconnect_checker=disconnected,
        ):
            frames.append(frame)

    assert len(frames) == 1
    assert adapter.events_consumed == 1


@pytest.mark.asyncio
async def test_records_events_and_errors_in_request_log():
    request_log = RequestLogRecorder("m", True, "/v1/chat/completions")
    adapter = FalToChatStreamAdapter("m", request_log=request_log)
    await _collect(adapter, [
        {"output": "a", "partial": True},
        {"output": "a", "error": "bad things"},
    ])

    assert "-- STREAM EVENT 1 --" in request_log.text
    assert "-- STREAM EVENT 2 --" in request_log.text
    assert "ERROR: fal stream error: bad things" in request_log.text


@pytest.mark.asyncio
async def test_convenience_function():
    frames = [
        frame
        async for frame in adapt_fal_stream_to_chat(
            "m", _aiter([{"output": "hi", "partial": False}])
        )
    ]

    assert _decode(frames[0])["choices"][0]["delta"]["content"] == "hi"
    assert frames[-1] == SSE_DONE

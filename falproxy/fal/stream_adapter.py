"""Stream adapter for converting fal cumulative events to OpenAI Chat Completions SSE.

fal stream events (cumulative):
    {"output": "Hel", "partial": true}
    {"output": "Hello", "partial": true}
    {"output": "Hello world", "partial": false}

OpenAI Chat Completion events (incremental):
    data: {"object":"chat.completion.chunk","choices":[{"delta":{"content":"Hel"},"finish_reason":null,"index":0}]}
    data: {"object":"chat.completion.chunk","choices":[{"delta":{"content":"lo"},"finish_reason":null,"index":0}]}
    data: {"object":"chat.completion.chunk","choices":[{"delta":{"content":" world"},"finish_reason":"stop","index":0}]}
    data: [DONE]
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterable, AsyncIterator, Awaitable, Callable, Mapping, Optional

from ..core.sse import SSE_DONE, format_sse_data
from .delta import SIGNAL_DELTA, SIGNAL_ERROR, DeltaReconstructor, StreamSignal
from .translator import build_chat_completion_chunk, build_error_chunk, new_completion_id

logger = logging.getLogger("falproxy")


class FalToChatStreamAdapter:
    """Converts one fal event stream into OpenAI chat completion SSE frames.

    Events are consumed strictly one at a time; nothing is read ahead of
    what has already been forwarded.
    """

    def __init__(
        self,
        model: str,
        completion_id: Optional[str] = None,
        request_log: Optional[Any] = None,
    ) -> None:
        """Initialize the stream adapter.

        Args:
            model: Model name echoed in every chunk.
            completion_id: Id shared by all chunks (defaults to a timestamp id).
            request_log: Optional RequestLogRecorder receiving events and errors.
        """
        self.model = model
        self.completion_id = completion_id or new_completion_id()
        self.request_log = request_log
        self.reconstructor = DeltaReconstructor()
        self.events_consumed = 0
        self.chunks_emitted = 0
        self.finish_reason: Optional[str] = None

    async def adapt_stream(
        self,
        fal_events: AsyncIterable[Mapping[str, Any]],
        disconnect_checker: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> AsyncIterator[bytes]:
        """Transform fal stream events into OpenAI SSE frames.

        Args:
            fal_events: The backend's cumulative events, in arrival order.
            disconnect_checker: Optional coroutine returning True once the
                client has gone away.

        Yields:
            SSE frames as bytes, ending with ``data: [DONE]``.
        """
        iterator = fal_events.__aiter__()
        try:
            while not self.reconstructor.finished:
                if disconnect_checker and await disconnect_checker():
                    raise asyncio.CancelledError("client disconnected")
                try:
                    event = await iterator.__anext__()
                except StopAsyncIteration:
                    break
                self.events_consumed += 1
                if self.request_log:
                    self.request_log.record_stream_event(event)
                for signal in self.reconstructor.feed(event):
                    yield self._render(signal)
        except asyncio.CancelledError:
            logger.info("Fal stream cancelled by client")
            if self.request_log:
                self.request_log.record_error("stream cancelled by client", error_type="client_disconnect")
            raise
        except Exception as exc:
            logger.error(f"Error during fal stream processing loop: {exc}")
            if self.request_log:
                self.request_log.record_error(f"streaming error: {exc}", error_type="stream_error")
            yield format_sse_data(
                {
                    "error": {
                        "message": "Stream processing error",
                        "type": "proxy_error",
                        "details": str(exc),
                    }
                }
            )
            for signal in self.reconstructor.abort():
                yield self._render(signal)
            return

        for signal in self.reconstructor.close():
            yield self._render(signal)

    def _render(self, signal: StreamSignal) -> bytes:
        self.chunks_emitted += 1
        if signal.kind == SIGNAL_DELTA:
            if signal.finish_reason:
                self.finish_reason = signal.finish_reason
            chunk = build_chat_completion_chunk(
                self.completion_id, self.model, signal.text, signal.finish_reason
            )
            return format_sse_data(chunk)
        if signal.kind == SIGNAL_ERROR:
            self.finish_reason = "error"
            if self.request_log:
                self.request_log.record_error(
                    f"fal stream error: {signal.error}", error_type="backend_error"
                )
            return format_sse_data(build_error_chunk(self.completion_id, self.model, signal.error))
        return SSE_DONE


async def adapt_fal_stream_to_chat(
    model: str,
    fal_events: AsyncIterable[Mapping[str, Any]],
) -> AsyncIterator[bytes]:
    """Convenience function to adapt a fal event stream to OpenAI chat SSE.

    Args:
        model: Model name
        fal_events: Input fal cumulative events

    Yields:
        OpenAI chat completion SSE frames
    """
    adapter = FalToChatStreamAdapter(model)
    async for frame in adapter.adapt_stream(fal_events):
        yield frame

"""Tests for the fal backend client."""

import json

import httpx
import pytest

from falproxy.core.backend import (
    REQUEST_ID_HEADER,
    FalBackend,
    FalClient,
    build_outbound_headers,
    format_httpx_error,
)
from falproxy.core.exceptions import BackendError
from falproxy.core.upstream_transport import (
    get_upstream_transport,
    register_upstream_transport,
    register_upstream_transport_for_url,
)

BACKEND = FalBackend(base_url="http://fal.mock", api_key="configured-key", timeout=5)


def _register(handler) -> list[httpx.Request]:
    seen: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    register_upstream_transport("fal.mock", httpx.MockTransport(_record))
    return seen


def _sse(*events) -> bytes:
    return b"".join(f"data: {json.dumps(event)}\n\n".encode("utf-8") for event in events)


class TestOutboundHeaders:
    def test_uses_key_scheme(self):
        headers = build_outbound_headers("abc")

        assert headers["Authorization"] == "Key abc"
        assert headers["Accept"] == "application/json"

    def test_stream_accepts_event_stream(self):
        headers = build_outbound_headers(None, stream=True)

        assert headers["Accept"] == "text/event-stream"
        assert "Authorization" not in headers


@pytest.mark.usefixtures("clear_transport_registry")
class TestFalClientRun:
    """Tests for synchronous runs."""

    @pytest.mark.asyncio
    async def test_returns_result_with_request_id(self):
        seen = _register(
            lambda request: httpx.Response(
                200,
                json={"output": "Hello", "reasoning": None},
                headers={REQUEST_ID_HEADER: "req-1"},
            )
        )

        result = await FalClient(BACKEND).run({"model": "m", "prompt": "Hi"}, "client-key")

        assert result["output"] == "Hello"
        assert result["request_id"] == "req-1"
        assert seen[0].url.path == "/fal-ai/any-llm"
        assert seen[0].headers["authorization"] == "Key client-key"
        assert json.loads(seen[0].content) == {"model": "m", "prompt": "Hi"}

    @pytest.mark.asyncio
    async def test_falls_back_to_configured_key(self):
        seen = _register(lambda request: httpx.Response(200, json={"output": ""}))

        await FalClient(BACKEND).run({"model": "m", "prompt": "Hi"})

        assert seen[0].headers["authorization"] == "Key configured-key"

    @pytest.mark.asyncio
    async def test_unauthenticated_when_no_key_anywhere(self, caplog):
        seen = _register(lambda request: httpx.Response(200, json={"output": ""}))
        backend = FalBackend(base_url="http://fal.mock")

        with caplog.at_level("WARNING", logger="falproxy"):
            await FalClient(backend).run({"model": "m", "prompt": "Hi"})

        assert "authorization" not in seen[0].headers
        assert "unauthenticated" in caplog.text

    @pytest.mark.asyncio
    async def test_error_status_raises_backend_error(self):
        _register(lambda request: httpx.Response(401, json={"detail": "Invalid key"}))

        with pytest.raises(BackendError) as excinfo:
            await FalClient(BACKEND).run({"model": "m", "prompt": "Hi"})

        assert excinfo.value.status_code == 401
        assert "Invalid key" in excinfo.value.message

    @pytest.mark.asyncio
    async def test_transport_error_raises_backend_error(self):
        def _fail(request):
            raise httpx.ConnectError("connection refused", request=request)

        _register(_fail)

        with pytest.raises(BackendError, match="ConnectError"):
            await FalClient(BACKEND).run({"model": "m", "prompt": "Hi"})

    @pytest.mark.asyncio
    async def test_invalid_json_raises_backend_error(self):
        _register(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(BackendError, match="invalid JSON"):
            await FalClient(BACKEND).run({"model": "m", "prompt": "Hi"})


@pytest.mark.usefixtures("clear_transport_registry")
class TestFalClientStream:
    """Tests for streaming runs."""

    @pytest.mark.asyncio
    async def test_iterates_decoded_events(self):
        seen = _register(
            lambda request: httpx.Response(
                200,
                content=_sse({"output": "a", "partial": True}, {"output": "ab", "partial": False})
                + b"data: [DONE]\n\n",
                headers={"content-type": "text/event-stream", REQUEST_ID_HEADER: "req-9"},
            )
        )

        stream = await FalClient(BACKEND).open_stream({"model": "m", "prompt": "Hi"})
        async with stream:
            events = [event async for event in stream]

        assert events == [{"output": "a", "partial": True}, {"output": "ab", "partial": False}]
        assert stream.request_id == "req-9"
        assert stream.closed
        assert seen[0].url.path == "/fal-ai/any-llm/stream"
        assert seen[0].headers["accept"] == "text/event-stream"

    @pytest.mark.asyncio
    async def test_error_status_raises_before_streaming(self):
        _register(lambda request: httpx.Response(500, text="upstream exploded"))

        with pytest.raises(BackendError) as excinfo:
            await FalClient(BACKEND).open_stream({"model": "m", "prompt": "Hi"})

        assert excinfo.value.status_code == 500
        assert "upstream exploded" in excinfo.value.message

    @pytest.mark.asyncio
    async def test_aclose_is_idempotent(self):
        _register(lambda request: httpx.Response(200, content=_sse({"output": "a"})))

        stream = await FalClient(BACKEND).open_stream({"model": "m", "prompt": "Hi"})
        await stream.aclose()
        await stream.aclose()

        assert stream.closed


class TestFormatHttpxError:
    def test_includes_request_and_timeout(self):
        request = httpx.Request("POST", "http://fal.mock/fal-ai/any-llm")
        exc = httpx.ReadTimeout("timed out", request=request)

        message = format_httpx_error(exc, BACKEND)

        assert message.startswith("ReadTimeout; timed out")
        assert "request=POST http://fal.mock/fal-ai/any-llm" in message
        assert "timeout=5s" in message

    def test_falls_back_to_url_without_request(self):
        message = format_httpx_error(httpx.ConnectError("refused"), BACKEND, "http://fal.mock/x")

        assert "url=http://fal.mock/x" in message


@pytest.mark.usefixtures("clear_transport_registry")
class TestTransportRegistry:
    def test_register_for_url(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(204))
        register_upstream_transport_for_url("http://Fal.Example:8080/path", transport)

        assert get_upstream_transport("http://fal.example:8080/other") is transport
        assert get_upstream_transport("http://elsewhere/") is None
        assert get_upstream_transport("") is None

    def test_host_is_required(self):
        with pytest.raises(ValueError):
            register_upstream_transport("", httpx.MockTransport(lambda request: httpx.Response(204)))

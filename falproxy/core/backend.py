"""fal backend configuration and HTTP client."""

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping, Optional

import httpx

from ..types import FalResult, FalStreamEvent
from .exceptions import BackendError
from .sse import SSEDecoder, parse_sse_json
from .upstream_transport import get_upstream_transport

logger = logging.getLogger("falproxy")

DEFAULT_BASE_URL = "https://fal.run"
DEFAULT_APP_ID = "fal-ai/any-llm"
DEFAULT_TIMEOUT = 60
REQUEST_ID_HEADER = "x-fal-request-id"
MAX_ERROR_DETAIL_CHARS = 500


@dataclass(frozen=True)
class FalBackend:
    """Represents the fal completion app the proxy forwards to."""

    base_url: str = DEFAULT_BASE_URL
    app_id: str = DEFAULT_APP_ID
    api_key: Optional[str] = None
    timeout: Optional[float] = DEFAULT_TIMEOUT
    passthrough_params: tuple[str, ...] = ()

    def build_url(self, stream: bool = False) -> str:
        """Build the full URL for a backend request."""
        base = self.base_url.rstrip("/")
        app_path = self.app_id.strip("/")
        url = f"{base}/{app_path}"
        if stream:
            url = f"{url}/stream"
        return url


def format_httpx_error(exc: Any, backend: FalBackend, url: Optional[str] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    try:
        request = exc.request
    except (AttributeError, RuntimeError):
        # httpx raises RuntimeError when no request is attached
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException):
        timeout = backend.timeout or DEFAULT_TIMEOUT
        parts.append(f"timeout={timeout}s")

    return "; ".join(parts)


def build_outbound_headers(credential: Optional[str], stream: bool = False) -> dict[str, str]:
    """Build headers for outbound requests to fal."""
    headers: dict[str, str] = {
        "Content-Type": "application/json",
        "Accept": "text/event-stream" if stream else "application/json",
        # Explicitly request uncompressed responses
        "Accept-Encoding": "identity",
    }
    if credential:
        headers["Authorization"] = f"Key {credential}"
    return headers


def _error_detail(body: bytes) -> str:
    text = body.decode("utf-8", errors="replace").strip()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return text[:MAX_ERROR_DETAIL_CHARS]
    if isinstance(parsed, Mapping):
        detail = parsed.get("detail") or parsed.get("error") or parsed
        if not isinstance(detail, str):
            detail = json.dumps(detail, ensure_ascii=False)
        return detail[:MAX_ERROR_DETAIL_CHARS]
    return text[:MAX_ERROR_DETAIL_CHARS]


class FalEventStream:
    """Async iterator over the JSON events of one fal streaming response.

    Owns the underlying HTTP client and response; ``aclose`` releases both and
    is safe to call more than once.
    """

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response) -> None:
        self._client = client
        self._response = response
        self._decoder = SSEDecoder()
        self._closed = False

    @property
    def request_id(self) -> Optional[str]:
        return self._response.headers.get(REQUEST_ID_HEADER)

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[FalStreamEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[FalStreamEvent]:
        try:
            async for chunk in self._response.aiter_bytes():
                for event in self._decoder.feed(chunk):
                    payload = parse_sse_json(event)
                    if payload is not None:
                        yield payload  # type: ignore[misc]
            for event in self._decoder.flush():
                payload = parse_sse_json(event)
                if payload is not None:
                    yield payload  # type: ignore[misc]
        except httpx.HTTPError as exc:
            raise BackendError(
                f"fal stream interrupted: {exc.__class__.__name__}: {exc}"
            ) from exc

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug("Closing fal stream")
        await self._response.aclose()
        await self._client.aclose()

    async def __aenter__(self) -> "FalEventStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class FalClient:
    """Sends completion requests to the configured fal app."""

    def __init__(self, backend: FalBackend) -> None:
        self.backend = backend

    def _resolve_credential(self, credential: Optional[str]) -> Optional[str]:
        if credential:
            return credential
        if self.backend.api_key:
            logger.debug("No client credential supplied, using configured fal key")
            return self.backend.api_key
        logger.warning("No fal credential available; forwarding unauthenticated")
        return None

    async def run(
        self, fal_input: Mapping[str, Any], credential: Optional[str] = None
    ) -> FalResult:
        """Run a single, non-streaming completion."""
        url = self.backend.build_url()
        headers = build_outbound_headers(self._resolve_credential(credential))
        timeout = self.backend.timeout or DEFAULT_TIMEOUT
        transport = get_upstream_transport(url)

        logger.debug(f"Sending non-stream request to {url}")
        async with httpx.AsyncClient(
            timeout=timeout, transport=transport, follow_redirects=True
        ) as client:
            try:
                resp = await client.post(url, headers=headers, json=dict(fal_input))
            except httpx.HTTPError as exc:
                logger.error(f"Request to {url} failed: {exc} (type: {exc.__class__.__name__})")
                raise BackendError(format_httpx_error(exc, self.backend, url)) from exc

        if resp.status_code >= 400:
            detail = _error_detail(resp.content)
            logger.warning(f"fal returned error status {resp.status_code}: {detail}")
            raise BackendError(
                f"fal backend returned status {resp.status_code}: {detail}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except json.JSONDecodeError as exc:
            raise BackendError("fal backend returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise BackendError("fal backend returned a non-object JSON payload")

        return FalResult(
            output=data.get("output"),
            request_id=resp.headers.get(REQUEST_ID_HEADER) or data.get("request_id"),
            error=data.get("error"),
            reasoning=data.get("reasoning"),
        )

    async def open_stream(
        self, fal_input: Mapping[str, Any], credential: Optional[str] = None
    ) -> FalEventStream:
        """Open a streaming completion.

        The HTTP status is checked here, before the caller commits any bytes
        to its own client, so connection and status failures can still be
        reported as a regular error response.
        """
        url = self.backend.build_url(stream=True)
        headers = build_outbound_headers(self._resolve_credential(credential), stream=True)
        timeout = self.backend.timeout or DEFAULT_TIMEOUT
        stream_timeout = httpx.Timeout(
            connect=timeout, read=None, write=timeout, pool=timeout
        )
        transport = get_upstream_transport(url)
        client = httpx.AsyncClient(
            timeout=stream_timeout, transport=transport, follow_redirects=True
        )
        try:
            request = client.build_request("POST", url, headers=headers, json=dict(fal_input))
            logger.debug(f"Sending streaming request to {url}")
            resp = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            logger.error(f"Failed to open stream to {url}: {exc} (type: {exc.__class__.__name__})")
            await client.aclose()
            raise BackendError(format_httpx_error(exc, self.backend, url)) from exc

        if resp.status_code >= 400:
            data = await resp.aread()
            await resp.aclose()
            await client.aclose()
            detail = _error_detail(data)
            logger.warning(f"fal stream returned error status {resp.status_code}: {detail}")
            raise BackendError(
                f"fal backend returned status {resp.status_code}: {detail}",
                status_code=resp.status_code,
            )

        logger.info(f"Streaming request to {url} accepted, status {resp.status_code}")
        return FalEventStream(client, resp)

"""Core module initialization."""

from .backend import (
    FalBackend,
    FalClient,
    FalEventStream,
    build_outbound_headers,
    format_httpx_error,
)
from .exceptions import BackendError, ConfigurationError, InvalidRequestError, ProxyError
from .registry import get_client, get_settings, set_client, set_settings
from .sse import SSE_DONE, SSEDecoder, SSEEvent, format_sse_data, parse_sse_json

__all__ = [
    "BackendError",
    "ConfigurationError",
    "FalBackend",
    "FalClient",
    "FalEventStream",
    "InvalidRequestError",
    "ProxyError",
    "SSE_DONE",
    "SSEDecoder",
    "SSEEvent",
    "build_outbound_headers",
    "format_httpx_error",
    "format_sse_data",
    "get_client",
    "get_settings",
    "parse_sse_json",
    "set_client",
    "set_settings",
]

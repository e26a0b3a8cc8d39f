"""Type definitions for the proxy."""

from .chat import (
    ChatCompletionChunk,
    ChatCompletionResponse,
    ChatMessage,
    Choice,
    ContentPart,
    Delta,
    ModelCard,
    Usage,
)
from .fal import FalInput, FalResult, FalStreamEvent

__all__ = [
    "ChatCompletionChunk",
    "ChatCompletionResponse",
    "ChatMessage",
    "Choice",
    "ContentPart",
    "Delta",
    "FalInput",
    "FalResult",
    "FalStreamEvent",
    "ModelCard",
    "Usage",
]

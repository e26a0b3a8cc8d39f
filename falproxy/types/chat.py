"""Types for the OpenAI-compatible chat surface the proxy exposes.

These follow the OpenAI Chat Completions format closely enough for
OpenAI-compatible clients; only the fields the proxy reads or produces are
declared.
"""

from typing import Any
from typing_extensions import TypedDict


class ContentPart(TypedDict, total=False):
    """A content part of a multi-part message (OpenAI format).

    Only ``text`` parts contribute to the prompt; other part types are
    ignored.
    """
    type: str
    text: str | None


class ChatMessage(TypedDict, total=False):
    """A message in a chat conversation (OpenAI format).

    Attributes:
        role: Role of the message sender ("system", "user", "assistant").
            Any other role is skipped by the prompt budgeter.
        content: Text content of the message. A string, a list of
            ContentPart, or None.
        name: Optional name for the speaker.
    """
    role: str
    content: str | list[ContentPart] | None
    name: str | None


class Delta(TypedDict, total=False):
    """A streamed delta of a choice in a chat completion (OpenAI format).

    Attributes:
        role: Role indicator, typically "assistant".
        content: Incremental text content, never overlapping with the
            content of previous chunks.
    """
    role: str | None
    content: str | None


class Choice(TypedDict, total=False):
    """A choice in a chat completion response or chunk (OpenAI format).

    Attributes:
        index: Zero-based index of this choice in the choices array.
        delta: The incremental content for streaming responses.
        message: The complete message for non-streaming responses, or the
            error description on an errored stream chunk.
        finish_reason: "stop" on the last content chunk, "error" on an
            errored stream chunk, otherwise None.
    """
    index: int
    delta: Delta | None
    message: ChatMessage | None
    finish_reason: str | None


class Usage(TypedDict, total=False):
    """Token usage information. fal does not report tokens, so every field is None."""
    prompt_tokens: int | None
    completion_tokens: int | None
    total_tokens: int | None


class ChatCompletionChunk(TypedDict, total=False):
    """A streamed chunk of a chat completion response (OpenAI format)."""
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]


class ChatCompletionResponse(TypedDict, total=False):
    """A complete (non-streaming) chat completion response (OpenAI format).

    Attributes:
        id: "chatcmpl-" followed by the fal request id when known.
        object: Always "chat.completion".
        created: Unix timestamp of when the response was created.
        model: Model name requested by the client.
        choices: A single completion choice.
        usage: Token usage information (all None).
        system_fingerprint: Always None.
        fal_reasoning: Reasoning text returned by fal, when requested.
    """
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage | None
    system_fingerprint: str | None
    fal_reasoning: Any


class ModelCard(TypedDict):
    """An entry of the /v1/models listing."""
    id: str
    object: str
    created: int
    owned_by: str

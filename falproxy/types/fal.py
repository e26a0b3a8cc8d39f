"""Types for the fal any-llm app payloads."""

from typing import Any
from typing_extensions import TypedDict


class FalInput(TypedDict, total=False):
    """Input sent to the fal app.

    Attributes:
        model: Model identifier, e.g. "anthropic/claude-3.5-sonnet".
        prompt: The budgeted human turn (plus recent history).
        system_prompt: The budgeted system slot; omitted when empty.
        reasoning: Whether the backend should return reasoning text.
    """
    model: str
    prompt: str
    system_prompt: str
    reasoning: bool


class FalStreamEvent(TypedDict, total=False):
    """One event of a fal stream.

    Attributes:
        output: The entire output produced so far (cumulative snapshot).
        partial: False on the final event of the stream.
        error: Error payload; the stream is over when present.
        reasoning: Cumulative reasoning text, when requested.
    """
    output: str
    partial: bool
    error: Any
    reasoning: Any


class FalResult(TypedDict, total=False):
    """Result of a non-streaming fal call."""
    output: str | None
    request_id: str | None
    error: Any
    reasoning: Any

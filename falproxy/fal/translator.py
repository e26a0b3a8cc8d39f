"""OpenAI Chat Completions <-> fal any-llm translation.

Key mappings:
- OpenAI messages -> fal ``system_prompt`` / ``prompt`` (via a budgeting strategy)
- OpenAI ``reasoning`` flag -> fal ``reasoning``
- fal ``output`` -> ``choices[0].message.content``
- fal ``reasoning`` -> ``fal_reasoning`` (non-standard extension field)
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Mapping, Optional

from ..core.backend import FalBackend
from ..prompting import PromptBudget
from ..types import ChatCompletionChunk, ChatCompletionResponse, FalInput, FalResult

logger = logging.getLogger("falproxy")


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_completion_id(request_id: Optional[str] = None) -> str:
    """Build a ``chatcmpl-`` id from the fal request id, or the current time."""
    return f"chatcmpl-{request_id or _now_ms()}"


def format_error_payload(error: Any) -> str:
    """Serialize a backend error payload the way it is shown to clients."""
    try:
        return json.dumps(error, ensure_ascii=False)
    except (TypeError, ValueError):
        return json.dumps(str(error), ensure_ascii=False)


def build_fal_input(
    payload: Mapping[str, Any],
    budget: PromptBudget,
    backend: FalBackend,
) -> FalInput:
    """Build the fal app input for a validated chat completion request."""
    fal_input: dict[str, Any] = {
        "model": payload.get("model"),
        "prompt": budget.prompt,
    }
    if budget.system_prompt:
        fal_input["system_prompt"] = budget.system_prompt
    fal_input["reasoning"] = bool(payload.get("reasoning", False))

    for key in backend.passthrough_params:
        if key in fal_input:
            logger.debug("Ignoring passthrough of reserved fal field '%s'", key)
            continue
        if key in payload and payload[key] is not None:
            fal_input[key] = payload[key]

    return fal_input  # type: ignore[return-value]


def fal_result_to_chat_completion(result: FalResult, model: str) -> ChatCompletionResponse:
    """Convert a successful fal result to an OpenAI chat completion."""
    response: dict[str, Any] = {
        "id": new_completion_id(result.get("request_id")),
        "object": "chat.completion",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": result.get("output") or ""},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": None, "completion_tokens": None, "total_tokens": None},
        "system_fingerprint": None,
    }
    if result.get("reasoning"):
        response["fal_reasoning"] = result["reasoning"]
    return response  # type: ignore[return-value]


def build_backend_error_body(error: Any) -> dict[str, Any]:
    """Body of the 500 response for an error reported by fal itself."""
    return {
        "object": "error",
        "message": f"Fal-ai error: {format_error_payload(error)}",
        "type": "fal_ai_error",
        "param": None,
        "code": None,
    }


def build_chat_completion_chunk(
    completion_id: str,
    model: str,
    content: str,
    finish_reason: Optional[str] = None,
) -> ChatCompletionChunk:
    """Build one OpenAI ``chat.completion.chunk`` carrying a text delta."""
    return {
        "id": completion_id,
        "object": "chat.completion.chunk",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "delta": {"content": content},
                "finish_reason": finish_reason,
            }
        ],
    }


def build_error_chunk(completion_id: str, model: str, error: Any) -> ChatCompletionChunk:
    """Build the terminal chunk for an error reported inside a fal stream."""
    return {
        "id": f"{completion_id}-error",
        "object": "chat.completion.chunk",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "delta": {},
                "finish_reason": "error",
                "message": {
                    "role": "assistant",
                    "content": f"Fal Stream Error: {format_error_payload(error)}",
                },
            }
        ],
    }

"""fal any-llm translation helpers.

Provides translation between the OpenAI Chat Completions format and the fal
any-llm app, including reconstruction of incremental deltas from fal's
cumulative stream snapshots.
"""

from .delta import DeltaReconstructor, ReconstructorState, StreamSignal, has_error_payload
from .stream_adapter import FalToChatStreamAdapter, adapt_fal_stream_to_chat
from .translator import (
    build_backend_error_body,
    build_chat_completion_chunk,
    build_error_chunk,
    build_fal_input,
    fal_result_to_chat_completion,
    new_completion_id,
)

__all__ = [
    "DeltaReconstructor",
    "FalToChatStreamAdapter",
    "ReconstructorState",
    "StreamSignal",
    "adapt_fal_stream_to_chat",
    "build_backend_error_body",
    "build_chat_completion_chunk",
    "build_error_chunk",
    "build_fal_input",
    "fal_result_to_chat_completion",
    "has_error_payload",
    "new_completion_id",
]

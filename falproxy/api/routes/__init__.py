"""API routes for the proxy."""

from .chat import chat_completions, handle_chat_completion
from .models import list_models
from .status import root
from .usage import router as usage_router

__all__ = [
    "chat_completions",
    "handle_chat_completion",
    "list_models",
    "root",
    "usage_router",
]

"""API module for the proxy."""

from .routes import chat_completions, handle_chat_completion, list_models, root, usage_router

__all__ = [
    "chat_completions",
    "handle_chat_completion",
    "list_models",
    "root",
    "usage_router",
]

"""fal OpenAI proxy

An OpenAI-compatible chat completions gateway in front of the fal.ai
``fal-ai/any-llm`` app.

This module provides:
- Prompt budgeting: pack a chat history into fal's two bounded text fields
- Delta reconstruction: turn fal's cumulative stream snapshots into
  OpenAI incremental chunks
- OpenAI-compatible API endpoints

Example:
    >>> from falproxy.main import create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(), host="127.0.0.1", port=3000)
"""

from .config_loader import load_config
from .core import BackendError, ConfigurationError, FalBackend, FalClient, ProxyError
from .fal import DeltaReconstructor, FalToChatStreamAdapter
from .logging import RequestLogRecorder, logger, setup_logging
from .prompting import BudgetLimits, PromptBudget, build_budgeting_strategy
from .settings import ProxySettings, build_settings

__all__ = [
    "BackendError",
    "BudgetLimits",
    "ConfigurationError",
    "DeltaReconstructor",
    "FalBackend",
    "FalClient",
    "FalToChatStreamAdapter",
    "PromptBudget",
    "ProxyError",
    "ProxySettings",
    "RequestLogRecorder",
    "build_budgeting_strategy",
    "build_settings",
    "load_config",
    "logger",
    "setup_logging",
]

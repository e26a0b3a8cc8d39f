"""Startup settings built from the loaded configuration."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .core.backend import DEFAULT_APP_ID, DEFAULT_BASE_URL, DEFAULT_TIMEOUT, FalBackend
from .core.exceptions import ConfigurationError
from .prompting import (
    DEFAULT_PROMPT_LIMIT,
    DEFAULT_STRATEGY,
    DEFAULT_SYSTEM_PROMPT_LIMIT,
    STRATEGIES,
    BudgetLimits,
)

logger = logging.getLogger("falproxy")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000

HOST_ENV = "FALPROXY_HOST"
PORT_ENV = "FALPROXY_PORT"

DEFAULT_MODELS: tuple[str, ...] = (
    "anthropic/claude-3.7-sonnet",
    "anthropic/claude-3.5-sonnet",
    "anthropic/claude-3-5-haiku",
    "anthropic/claude-3-haiku",
    "google/gemini-pro-1.5",
    "google/gemini-flash-1.5",
    "google/gemini-flash-1.5-8b",
    "google/gemini-2.0-flash-001",
    "meta-llama/llama-3.2-1b-instruct",
    "meta-llama/llama-3.2-3b-instruct",
    "meta-llama/llama-3.1-8b-instruct",
    "meta-llama/llama-3.1-70b-instruct",
    "openai/gpt-4o-mini",
    "openai/gpt-4o",
    "deepseek/deepseek-r1",
    "meta-llama/llama-4-maverick",
    "meta-llama/llama-4-scout",
)

_UNRESOLVED_PLACEHOLDER = re.compile(r"^\$\{?[A-Za-z_][A-Za-z0-9_]*\}?$")


@dataclass(frozen=True)
class ProxySettings:
    """Immutable runtime settings shared by all requests."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    limits: BudgetLimits = field(default_factory=BudgetLimits)
    strategy: str = DEFAULT_STRATEGY
    backend: FalBackend = field(default_factory=FalBackend)
    models: tuple[str, ...] = DEFAULT_MODELS
    log_to_disk: bool = False

    def is_supported_model(self, model: str) -> bool:
        return model in self.models


def _section(config: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = config.get(key) or {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Config section '{key}' must be a mapping")
    return value


def _get_int(section: Mapping[str, Any], key: str, default: int, name: str) -> int:
    raw = section.get(key, default)
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    return value


def _get_positive_int(section: Mapping[str, Any], key: str, default: int, name: str) -> int:
    value = _get_int(section, key, default, name)
    if value <= 0:
        raise ConfigurationError(f"{name} must be a positive integer, got {value}")
    return value


def _resolve_api_key(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    key = str(raw).strip()
    if not key:
        return None
    if _UNRESOLVED_PLACEHOLDER.match(key):
        logger.warning("backend.api_key placeholder %s is unresolved; no default fal key", key)
        return None
    return key


def _build_backend(section: Mapping[str, Any]) -> FalBackend:
    timeout_raw = section.get("timeout", DEFAULT_TIMEOUT)
    try:
        timeout = float(timeout_raw) if timeout_raw is not None else None
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"backend.timeout must be a number, got {timeout_raw!r}") from exc

    passthrough = section.get("passthrough_params") or []
    if not isinstance(passthrough, list):
        raise ConfigurationError("backend.passthrough_params must be a list")

    return FalBackend(
        base_url=str(section.get("base_url") or DEFAULT_BASE_URL),
        app_id=str(section.get("app_id") or DEFAULT_APP_ID),
        api_key=_resolve_api_key(section.get("api_key")),
        timeout=timeout,
        passthrough_params=tuple(str(param) for param in passthrough),
    )


def _build_models(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return DEFAULT_MODELS
    if not isinstance(raw, list):
        raise ConfigurationError("models must be a list of model ids")
    models = tuple(str(model).strip() for model in raw if str(model).strip())
    if not models:
        raise ConfigurationError("models must list at least one model id")
    return models


def build_settings(config: Optional[Mapping[str, Any]] = None) -> ProxySettings:
    """Build ``ProxySettings`` from a parsed config mapping.

    Environment variables FALPROXY_HOST and FALPROXY_PORT take priority over
    ``proxy_settings.server``.

    Raises:
        ConfigurationError: If a value is malformed or a limit is not positive.
    """
    config = config or {}
    proxy_settings = _section(config, "proxy_settings")
    server_cfg = _section(proxy_settings, "server")
    logging_cfg = _section(proxy_settings, "logging")
    budget_cfg = _section(config, "prompt_budget")

    host = os.getenv(HOST_ENV) or str(server_cfg.get("host") or DEFAULT_HOST)

    port_env = os.getenv(PORT_ENV)
    if port_env is not None:
        port = _get_int({"port": port_env}, "port", DEFAULT_PORT, PORT_ENV)
    else:
        port = _get_int(server_cfg, "port", DEFAULT_PORT, "proxy_settings.server.port")

    limits = BudgetLimits(
        prompt_limit=_get_positive_int(
            budget_cfg, "prompt_limit", DEFAULT_PROMPT_LIMIT, "prompt_budget.prompt_limit"
        ),
        system_prompt_limit=_get_positive_int(
            budget_cfg,
            "system_prompt_limit",
            DEFAULT_SYSTEM_PROMPT_LIMIT,
            "prompt_budget.system_prompt_limit",
        ),
    )

    strategy = str(budget_cfg.get("strategy") or DEFAULT_STRATEGY).strip().lower()
    if strategy not in STRATEGIES:
        available = ", ".join(sorted(STRATEGIES))
        raise ConfigurationError(
            f"prompt_budget.strategy must be one of: {available}, got {strategy!r}"
        )

    return ProxySettings(
        host=host,
        port=port,
        limits=limits,
        strategy=strategy,
        backend=_build_backend(_section(config, "backend")),
        models=_build_models(config.get("models")),
        log_to_disk=bool(logging_cfg.get("log_to_disk", False)),
    )

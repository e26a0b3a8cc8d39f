"""Prompt budgeting: compress a chat conversation into fal's two text fields."""

from __future__ import annotations

from typing import Optional

from ..core.exceptions import ConfigurationError
from .base import (
    DEFAULT_PROMPT_LIMIT,
    DEFAULT_SYSTEM_PROMPT_LIMIT,
    BudgetLimits,
    PromptBudget,
    PromptBudgetingStrategy,
    normalize_content,
)
from .legacy import LastTurnsBudgetingStrategy, LatestUserBudgetingStrategy
from .recency import EARLIER_CONVERSATION_SEPARATOR, RecencyBudgetingStrategy

DEFAULT_STRATEGY = RecencyBudgetingStrategy.name

STRATEGIES: dict[str, type[PromptBudgetingStrategy]] = {
    strategy.name: strategy
    for strategy in (
        RecencyBudgetingStrategy,
        LastTurnsBudgetingStrategy,
        LatestUserBudgetingStrategy,
    )
}


def build_budgeting_strategy(
    name: Optional[str] = None, limits: Optional[BudgetLimits] = None
) -> PromptBudgetingStrategy:
    """Instantiate the strategy registered under ``name`` (default: recency).

    Raises:
        ConfigurationError: If no strategy has that name.
    """
    key = (name or DEFAULT_STRATEGY).strip().lower()
    strategy_cls = STRATEGIES.get(key)
    if strategy_cls is None:
        available = ", ".join(sorted(STRATEGIES))
        raise ConfigurationError(
            f"Unknown prompt budgeting strategy '{name}'. Available: {available}"
        )
    return strategy_cls(limits)


__all__ = [
    "BudgetLimits",
    "DEFAULT_PROMPT_LIMIT",
    "DEFAULT_STRATEGY",
    "DEFAULT_SYSTEM_PROMPT_LIMIT",
    "EARLIER_CONVERSATION_SEPARATOR",
    "LastTurnsBudgetingStrategy",
    "LatestUserBudgetingStrategy",
    "PromptBudget",
    "PromptBudgetingStrategy",
    "RecencyBudgetingStrategy",
    "STRATEGIES",
    "build_budgeting_strategy",
    "normalize_content",
]

"""Shared types for prompt budgeting strategies.

A budgeting strategy turns an OpenAI-style message list into the two text
fields the fal any-llm app accepts (``system_prompt`` and ``prompt``), each
bounded by a character budget.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

logger = logging.getLogger("falproxy")

DEFAULT_PROMPT_LIMIT = 4800
DEFAULT_SYSTEM_PROMPT_LIMIT = 4800

SYSTEM_ROLE = "system"
USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
CONVERSATION_ROLES = (USER_ROLE, ASSISTANT_ROLE)


@dataclass(frozen=True)
class BudgetLimits:
    """Character budgets for the two fal text fields."""

    prompt_limit: int = DEFAULT_PROMPT_LIMIT
    system_prompt_limit: int = DEFAULT_SYSTEM_PROMPT_LIMIT

    def __post_init__(self) -> None:
        if self.prompt_limit <= 0 or self.system_prompt_limit <= 0:
            raise ValueError("prompt limits must be positive integers")


@dataclass(frozen=True)
class PromptBudget:
    """Result of budgeting one conversation.

    Attributes:
        system_prompt: Text for the fal ``system_prompt`` field.
        prompt: Text for the fal ``prompt`` field.
        strategy: Name of the strategy that produced the result.
        history_blocks_total: Conversation messages eligible for packing.
        history_blocks_dropped: How many of them did not fit anywhere.
    """

    system_prompt: str
    prompt: str
    strategy: str
    history_blocks_total: int = 0
    history_blocks_dropped: int = 0


@dataclass(frozen=True)
class NormalizedMessage:
    role: str
    content: str


def normalize_content(content: Any) -> str:
    """Flatten a message content value to plain text.

    ``None`` becomes an empty string and a list of content parts keeps only
    the text of its ``text`` parts.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, Mapping) and isinstance(part.get("text"), str):
                parts.append(part["text"])
            elif isinstance(part, str):
                parts.append(part)
        return "".join(parts)
    return str(content)


def normalize_messages(messages: Sequence[Any]) -> list[NormalizedMessage]:
    """Drop empty messages and return (role, stripped content) pairs in order.

    Entries that are not mappings are ignored. Roles are kept as given; each
    strategy decides what to do with unknown roles.
    """
    normalized: list[NormalizedMessage] = []
    for message in messages or []:
        if not isinstance(message, Mapping):
            logger.warning("Skipping message that is not an object: %r", type(message).__name__)
            continue
        content = normalize_content(message.get("content")).strip()
        if not content:
            continue
        role = message.get("role")
        normalized.append(NormalizedMessage(role=str(role) if role is not None else "", content=content))
    return normalized


class PromptBudgetingStrategy(ABC):
    """Interface for turning messages into a bounded (system_prompt, prompt) pair.

    Implementations never raise on malformed messages; content that does not
    fit the budgets is dropped, oldest first.
    """

    name: str = ""

    def __init__(self, limits: BudgetLimits | None = None) -> None:
        self.limits = limits or BudgetLimits()

    @abstractmethod
    def budget(self, messages: Sequence[Mapping[str, Any]]) -> PromptBudget:
        """Budget a conversation into the two fal text fields."""

    def _clip_system(self, text: str) -> str:
        limit = self.limits.system_prompt_limit
        if len(text) > limit:
            logger.debug("System prompt of %d chars truncated to %d", len(text), limit)
            text = text[:limit]
        return text.strip()

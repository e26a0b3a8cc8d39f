"""Fixed-window budgeting strategies kept for compatibility with older deployments."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from .base import (
    CONVERSATION_ROLES,
    SYSTEM_ROLE,
    USER_ROLE,
    NormalizedMessage,
    PromptBudget,
    PromptBudgetingStrategy,
    normalize_messages,
)

logger = logging.getLogger("falproxy")


def _split(messages: Sequence[Mapping[str, Any]]) -> tuple[str, list[NormalizedMessage]]:
    """Return the last system message and the user/assistant messages in order."""
    system_content = ""
    conversation: list[NormalizedMessage] = []
    for message in normalize_messages(messages):
        if message.role == SYSTEM_ROLE:
            system_content = message.content
        elif message.role in CONVERSATION_ROLES:
            conversation.append(message)
        else:
            logger.warning("Skipping message with unsupported role '%s'", message.role)
    return system_content, conversation


def _history_line(message: NormalizedMessage) -> str:
    if message.role == USER_ROLE:
        return f"Human: {message.content}"
    return f"Assistant: {message.content}"


class LastTurnsBudgetingStrategy(PromptBudgetingStrategy):
    """Put the last few turns in ``prompt`` and older turns in ``system_prompt``.

    Only the last system message is used. If the system slot overflows, older
    turns are re-packed newest-first into the room left after the system
    message.
    """

    name = "last_turns"
    turns_in_prompt = 3

    def budget(self, messages: Sequence[Mapping[str, Any]]) -> PromptBudget:
        system_content, conversation = _split(messages)
        system_content = self._clip_system(system_content)
        if not conversation:
            return PromptBudget(system_prompt=system_content, prompt="", strategy=self.name)

        recent = conversation[-self.turns_in_prompt:]
        older = conversation[: -self.turns_in_prompt]

        prompt = "\n".join(
            message.content if message.role == USER_ROLE else f"Assistant: {message.content}"
            for message in recent
        )

        lines = [system_content] if system_content else []
        lines.extend(_history_line(message) for message in older)
        system_prompt = "\n".join(lines)
        kept_count = len(older)

        limit = self.limits.system_prompt_limit
        if len(system_prompt) > limit:
            space = limit - len(system_content) - 1  # newline after the system message
            kept: list[str] = []
            if space > 0:
                for message in reversed(older):
                    line = _history_line(message)
                    if len(line) + 1 > space:
                        break
                    kept.insert(0, line)
                    space -= len(line) + 1
            kept_count = len(kept)
            parts = [system_content] if system_content else []
            parts.extend(kept)
            system_prompt = "\n".join(parts)

        return PromptBudget(
            system_prompt=system_prompt,
            prompt=prompt,
            strategy=self.name,
            history_blocks_total=len(older),
            history_blocks_dropped=len(older) - kept_count,
        )


class LatestUserBudgetingStrategy(PromptBudgetingStrategy):
    """Send only the last system message and the last user message."""

    name = "latest_user"

    def budget(self, messages: Sequence[Mapping[str, Any]]) -> PromptBudget:
        system_content, conversation = _split(messages)
        user_messages = [message for message in conversation if message.role == USER_ROLE]
        prompt = user_messages[-1].content if user_messages else ""
        history_total = len(conversation) - (1 if prompt else 0)
        return PromptBudget(
            system_prompt=self._clip_system(system_content),
            prompt=prompt,
            strategy=self.name,
            history_blocks_total=history_total,
            history_blocks_dropped=history_total,
        )

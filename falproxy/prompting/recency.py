"""Recency-budgeted prompt packing.

The conversation is split into a fixed system block (all system messages)
and conversation blocks. The newest user message is the pending turn and
always lands in ``prompt`` in full. Every other conversation block, including
replies that follow the pending turn, is history: it is packed newest-first
into two greedy bins, the ``prompt`` bin first, then whatever room is left in
the system slot. Once both bins have rejected a block, everything older is
dropped. Each field is assembled in chronological order.

Example::

    strategy = RecencyBudgetingStrategy(BudgetLimits(4800, 4800))
    result = strategy.budget([
        {"role": "system", "content": "You are helpful."},
        {"role": "user", "content": "What is AI?"},
        {"role": "assistant", "content": "Artificial intelligence."},
        {"role": "user", "content": "Tell me more."},
    ])
    # result.system_prompt == "System: You are helpful."
    # result.prompt == "Human: What is AI?\\n\\nAssistant: Artificial intelligence.\\n\\nTell me more."
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Mapping, Optional, Sequence

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

EARLIER_CONVERSATION_SEPARATOR = "\n\n--- Earlier conversation ---\n\n"
# Reserved after the fixed system block, applied even when the block is empty.
SYSTEM_BLOCK_RESERVE = 4

ROLE_LABELS = {
    SYSTEM_ROLE: "System",
    USER_ROLE: "Human",
    "assistant": "Assistant",
}


def render_block(message: NormalizedMessage) -> str:
    """Render one message as a labelled conversation block."""
    return f"{ROLE_LABELS[message.role]}: {message.content}\n\n"


class _GreedyBin:
    """A capacity-bounded bin that accepts blocks newest-first.

    The first block that does not fit closes the bin for good, so a bin
    always holds one contiguous run of the history. Blocks keep their
    conversation position so the bin can be split around the pending turn.
    """

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        self.used = 0
        self.full = False
        self._blocks: deque[tuple[int, str]] = deque()

    def offer(self, position: int, block: str) -> bool:
        if self.full:
            return False
        if self.used + len(block) <= self.capacity:
            self._blocks.appendleft((position, block))
            self.used += len(block)
            return True
        self.full = True
        return False

    def text(self, start: int = 0, stop: Optional[int] = None) -> str:
        """Blocks whose position lies in ``[start, stop)``, oldest first."""
        return "".join(
            block
            for position, block in self._blocks
            if position >= start and (stop is None or position < stop)
        )


def _pending_turn_index(conversation: Sequence[NormalizedMessage]) -> Optional[int]:
    for index in range(len(conversation) - 1, -1, -1):
        if conversation[index].role == USER_ROLE:
            return index
    return None


class RecencyBudgetingStrategy(PromptBudgetingStrategy):
    """Pack the newest history into ``prompt`` and overflow into ``system_prompt``."""

    name = "recency"

    def budget(self, messages: Sequence[Mapping[str, Any]]) -> PromptBudget:
        fixed_blocks: list[str] = []
        conversation: list[NormalizedMessage] = []
        for message in normalize_messages(messages):
            if message.role == SYSTEM_ROLE:
                fixed_blocks.append(render_block(message))
            elif message.role in CONVERSATION_ROLES:
                conversation.append(message)
            else:
                logger.warning("Skipping message with unsupported role '%s'", message.role)

        fixed_system = self._clip_system("".join(fixed_blocks))

        remaining = max(
            0,
            self.limits.system_prompt_limit - (len(fixed_system) + SYSTEM_BLOCK_RESERVE),
        )
        if fixed_system:
            remaining = max(0, remaining - len(EARLIER_CONVERSATION_SEPARATOR))

        pending_index = _pending_turn_index(conversation)
        history = [
            (position, message)
            for position, message in enumerate(conversation)
            if position != pending_index
        ]

        prompt_bin = _GreedyBin(self.limits.prompt_limit)
        history_bin = _GreedyBin(remaining)
        dropped = 0
        for offset in range(len(history) - 1, -1, -1):
            position, message = history[offset]
            block = render_block(message)
            if prompt_bin.offer(position, block) or history_bin.offer(position, block):
                continue
            if prompt_bin.full and history_bin.full:
                dropped = offset + 1
                break

        if dropped:
            logger.debug(
                "Dropped %d of %d history messages that did not fit the prompt budgets",
                dropped,
                len(history),
            )

        if pending_index is None:
            prompt = prompt_bin.text()
        else:
            # The backend treats ``prompt`` as the human turn, so the newest
            # user message goes in unlabelled.
            prompt = (
                prompt_bin.text(stop=pending_index)
                + f"{conversation[pending_index].content}\n\n"
                + prompt_bin.text(start=pending_index + 1)
            )
        system_prompt = self._combine_system(fixed_system, history_bin.text().strip())

        return PromptBudget(
            system_prompt=system_prompt,
            prompt=prompt.strip(),
            strategy=self.name,
            history_blocks_total=len(history),
            history_blocks_dropped=dropped,
        )

    @staticmethod
    def _combine_system(fixed_system: str, history: str) -> str:
        if fixed_system and history:
            return f"{fixed_system}{EARLIER_CONVERSATION_SEPARATOR}{history}"
        return fixed_system or history

"""
Context-window management for run conversations.

Before each model call the run loop asks a ``ContextWindowManager`` which
messages of the (append-only) conversation to send. Strategies:

- ``token_sliding_window``: keep preserved messages, then pack older
  messages newest-first until the token budget is used.
- ``message_count``: same rules with a message-count budget.
- ``summarization``: sliding window at ``max_tokens * summarization_threshold``;
  dropped messages are replaced by a summary when a summarizer is configured.

Preservation (system messages, the most recent ``preserve_recent``) is hard;
the budget is soft. Tool results are kept together with the assistant
message that requested them.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from ..utils.tokens import DefaultTokenCounter, TokenCounter
from .exceptions import AgentConfigurationError
from .memory import Conversation, Message

logger = logging.getLogger(__name__)

STRATEGIES = ("token_sliding_window", "message_count", "summarization")

TRUNCATION_NOTICE = "[Note: {count} earlier messages were truncated to fit the context window]"
SUMMARY_PREFIX = "Summary of earlier conversation: "


def default_max_tokens(model: Optional[str]) -> int:
    """Token budget for a model, leaving headroom below its context size."""
    model = (model or "").lower()
    if model.startswith("gpt-4o") or model.startswith("gpt-4-turbo"):
        return 120_000
    if model.startswith("gpt-3.5-turbo-16k"):
        return 15_000
    if model.startswith("gpt-3.5-turbo"):
        return 3_500
    return 7_500


@dataclass
class ContextWindowPolicy:
    """
    Configuration for context-window trimming.

    Attributes:
        strategy: One of ``STRATEGIES``
        max_tokens: Token budget (defaults from ``model``)
        max_messages: Message budget for ``message_count``
        preserve_system: Always keep system messages
        preserve_recent: Always keep this many most recent messages
        summarization_threshold: Fraction of ``max_tokens`` used by ``summarization``
        truncation_notice: Insert a system note saying how many messages were dropped
        model: Model identifier for budget and token-ratio defaults
        summarizer: ``summarizer(dropped_messages) -> str`` for ``summarization``
    """

    strategy: str = "token_sliding_window"
    max_tokens: Optional[int] = None
    max_messages: Optional[int] = None
    preserve_system: bool = True
    preserve_recent: int = 5
    summarization_threshold: float = 0.8
    truncation_notice: bool = False
    model: Optional[str] = None
    summarizer: Optional[Callable[[List[Message]], str]] = field(default=None, repr=False)

    def __post_init__(self):
        if self.strategy not in STRATEGIES:
            raise AgentConfigurationError(
                f"Unknown context window strategy '{self.strategy}'. "
                f"Expected one of: {', '.join(STRATEGIES)}",
                config_field="strategy",
                config_value=self.strategy,
            )
        if self.preserve_recent < 0:
            raise AgentConfigurationError(
                "preserve_recent must be >= 0",
                config_field="preserve_recent",
                config_value=self.preserve_recent,
            )
        if not 0 < self.summarization_threshold <= 1:
            raise AgentConfigurationError(
                "summarization_threshold must be in (0, 1]",
                config_field="summarization_threshold",
                config_value=self.summarization_threshold,
            )
        if self.strategy == "message_count":
            if self.max_messages is None or self.max_messages < 1:
                raise AgentConfigurationError(
                    "message_count strategy requires max_messages >= 1",
                    config_field="max_messages",
                    config_value=self.max_messages,
                )
        else:
            if self.max_tokens is None:
                self.max_tokens = default_max_tokens(self.model)
            if self.max_tokens < 1:
                raise AgentConfigurationError(
                    "max_tokens must be >= 1",
                    config_field="max_tokens",
                    config_value=self.max_tokens,
                )


@dataclass
class WindowState:
    """Messages under consideration plus the indices that must survive."""

    messages: List[Message]
    preserved: Set[int]
    metadata: Dict[str, Any] = field(default_factory=dict)


# === Strategy Interface ===


class WindowStrategy(ABC):
    """
    Decides which message indices survive a trim.

    Implementations return the kept indices; the manager restores
    chronological order and post-processes tool bundles.
    """

    @abstractmethod
    def select(
        self, state: WindowState, policy: ContextWindowPolicy, token_counter: TokenCounter
    ) -> Set[int]:
        pass

    @staticmethod
    def pack_backward(
        state: WindowState, costs: List[int], budget: int, base_cost: int
    ) -> Set[int]:
        """
        Keep preserved indices, then add older messages newest-first.

        Packing stops at the first message that no longer fits, so the kept
        history stays contiguous.
        """
        kept = set(state.preserved)
        used = base_cost + sum(costs[i] for i in kept)
        for i in range(len(state.messages) - 1, -1, -1):
            if i in kept:
                continue
            if used + costs[i] > budget:
                break
            kept.add(i)
            used += costs[i]
        state.metadata["used"] = used
        state.metadata["budget"] = budget
        if used > budget:
            logger.warning(f"Preserved messages exceed the window budget: {used} > {budget}")
        return kept


class TokenSlidingWindow(WindowStrategy):
    """Token budget packing from newest to oldest."""

    def select(self, state, policy, token_counter):
        return self.pack_backward(
            state,
            [token_counter.count_message(m.to_llm_dict()) for m in state.messages],
            policy.max_tokens,
            token_counter.count_messages([])[0],
        )


class MessageCountWindow(WindowStrategy):
    """Message-count budget packing from newest to oldest."""

    def select(self, state, policy, token_counter):
        return self.pack_backward(state, [1] * len(state.messages), policy.max_messages, 0)


class SummarizationWindow(WindowStrategy):
    """
    Sliding window at a lowered limit.

    The manager replaces dropped messages with a summary message when the
    policy carries a summarizer.
    """

    def select(self, state, policy, token_counter):
        limit = max(1, int(policy.max_tokens * policy.summarization_threshold))
        return self.pack_backward(
            state,
            [token_counter.count_message(m.to_llm_dict()) for m in state.messages],
            limit,
            token_counter.count_messages([])[0],
        )


_STRATEGY_CLASSES = {
    "token_sliding_window": TokenSlidingWindow,
    "message_count": MessageCountWindow,
    "summarization": SummarizationWindow,
}


class ContextWindowManager:
    """Applies a ``ContextWindowPolicy`` to a conversation."""

    def __init__(
        self,
        policy: Optional[ContextWindowPolicy] = None,
        token_counter: Optional[TokenCounter] = None,
    ) -> None:
        self.policy = policy or ContextWindowPolicy()
        self.token_counter = token_counter or DefaultTokenCounter(model=self.policy.model)
        self.strategy: WindowStrategy = _STRATEGY_CLASSES[self.policy.strategy]()

    # ---- measurement ----

    def count_total_tokens(self, messages: Iterable[Message]) -> int:
        total, _ = self.token_counter.count_messages([m.to_llm_dict() for m in messages])
        return total

    def within_limit(self, messages: Iterable[Message]) -> bool:
        messages = list(messages)
        if self.policy.strategy == "message_count":
            return len(messages) <= self.policy.max_messages
        limit = self.policy.max_tokens
        if self.policy.strategy == "summarization":
            limit = max(1, int(limit * self.policy.summarization_threshold))
        return self.count_total_tokens(messages) <= limit

    # ---- trimming ----

    def trim(self, conversation) -> List[Message]:
        """
        Return the messages to send for the next model call.

        Args:
            conversation: A Conversation or a list of Messages (never mutated)

        Returns:
            A new list of Messages in chronological order
        """
        messages = (
            conversation.messages if isinstance(conversation, Conversation) else list(conversation)
        )
        if self.within_limit(messages):
            return list(messages)

        state = WindowState(messages=messages, preserved=self._preserved_indices(messages))
        kept = self.strategy.select(state, self.policy, self.token_counter)
        kept = self._fix_tool_bundles(messages, kept, state.preserved)

        result = [messages[i] for i in sorted(kept)]
        dropped = [m for i, m in enumerate(messages) if i not in kept]

        if dropped:
            note = self._replacement_note(dropped)
            if note is not None:
                insert_at = 0
                while insert_at < len(result) and result[insert_at].role == "system":
                    insert_at += 1
                result.insert(insert_at, note)

        logger.debug(
            f"Context window ({self.policy.strategy}) kept {len(kept)}/{len(messages)} messages"
        )
        return result

    def _preserved_indices(self, messages: List[Message]) -> Set[int]:
        preserved: Set[int] = set()
        if self.policy.preserve_system:
            preserved.update(i for i, m in enumerate(messages) if m.role == "system")
        if self.policy.preserve_recent:
            start = max(0, len(messages) - self.policy.preserve_recent)
            preserved.update(range(start, len(messages)))
        return preserved

    @staticmethod
    def _fix_tool_bundles(messages: List[Message], kept: Set[int], preserved: Set[int]) -> Set[int]:
        """
        Keep tool results attached to the assistant message that requested them.

        A preserved tool result pulls its assistant message in; any other tool
        result whose assistant message was dropped is dropped too.
        """
        kept = set(kept)
        owner: Dict[str, int] = {}
        for i, m in enumerate(messages):
            if m.role == "assistant" and m.tool_calls:
                # id-less calls can never be answered by a tool message
                for tc in m.tool_calls:
                    if tc.id:
                        owner[tc.id] = i
        for i in sorted(kept, reverse=True):
            m = messages[i]
            if m.role != "tool":
                continue
            origin = owner.get(m.tool_call_id)
            if origin is None or origin in kept:
                continue
            if i in preserved:
                kept.add(origin)
            else:
                kept.discard(i)
        # a kept assistant message needs every one of its tool results
        for i, m in enumerate(messages):
            if m.role == "tool" and owner.get(m.tool_call_id) in kept:
                kept.add(i)
        return kept

    def _replacement_note(self, dropped: List[Message]) -> Optional[Message]:
        if self.policy.strategy == "summarization" and self.policy.summarizer is not None:
            summary = self.policy.summarizer(dropped)
            return Message.system(f"{SUMMARY_PREFIX}{summary}")
        if self.policy.truncation_notice:
            return Message.system(TRUNCATION_NOTICE.format(count=len(dropped)))
        return None

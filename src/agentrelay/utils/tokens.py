"""
Token counting utilities for context-window management.

This module provides token counting strategies for estimating the number of tokens
in messages sent to a chat-completions backend (text content and tool calls).
"""

import json
import logging
import math
from typing import Any, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

# Approximate tokens per 1000 characters by model family.
TOKEN_RATIOS: Dict[str, int] = {
    "gpt-4": 250,
    "gpt-4-turbo": 250,
    "gpt-4o": 250,
    "gpt-4o-mini": 250,
    "gpt-3.5-turbo": 270,
    "o1-preview": 250,
    "o1-mini": 250,
    "default": 280,
}

# Formatting tokens added per message (role markers, separators).
MESSAGE_OVERHEAD = 4

# Structure overhead per tool call, before its name and arguments.
TOOL_CALL_OVERHEAD = 10

# Priming tokens added once per request.
CONVERSATION_OVERHEAD = 3


def model_family(model: Optional[str]) -> str:
    """
    Map a full model identifier onto a key of ``TOKEN_RATIOS``.

    ``"gpt-4o-2024-08-06"`` -> ``"gpt-4o"``; unknown models -> ``"default"``.
    """
    if not model:
        return "default"
    model = model.split("/")[-1]
    matches = [k for k in TOKEN_RATIOS if k != "default" and (model == k or model.startswith(k + "-"))]
    return max(matches, key=len) if matches else "default"


class TokenCounter(Protocol):
    """Protocol for token counting strategies."""

    def count_message(self, msg_dict: Dict[str, Any]) -> int:
        """
        Count tokens in a single message dict.

        Args:
            msg_dict: Message dictionary in LLM format

        Returns:
            Estimated token count
        """
        ...

    def count_messages(self, messages: List[Dict[str, Any]]) -> Tuple[int, List[int]]:
        """
        Count tokens across multiple messages.

        Args:
            messages: List of message dictionaries in LLM format

        Returns:
            Tuple of (total_tokens, per_message_tokens); the total includes
            the per-request overhead
        """
        ...


class DefaultTokenCounter:
    """
    Default token counter using character-based heuristics.

    Token estimation approach:
    - Text content: characters / 1000 * ratio, ratio chosen by model family
    - Each message: fixed formatting overhead
    - Tool calls: fixed structure overhead plus name and argument text
    - Whole request: fixed priming overhead

    Note: This is a heuristic estimator. For precise counting, plug in a
    provider-specific tokenizer implementing ``TokenCounter``.
    """

    def __init__(self, model: Optional[str] = None, tokens_per_1000_chars: Optional[int] = None):
        """
        Initialize the token counter.

        Args:
            model: Model identifier used to select the character ratio
            tokens_per_1000_chars: Explicit ratio overriding the model table
        """
        self.model = model
        self.ratio = tokens_per_1000_chars or TOKEN_RATIOS[model_family(model)]

    def count_text(self, text: Optional[str]) -> int:
        if not text:
            return 0
        return max(1, math.ceil(len(text) * self.ratio / 1000))

    def count_message(self, msg_dict: Dict[str, Any]) -> int:
        """
        Count tokens in a message dict.

        Args:
            msg_dict: Message dictionary with 'role', 'content', optional 'tool_calls', etc.

        Returns:
            Estimated token count for the message
        """
        total = MESSAGE_OVERHEAD

        content = msg_dict.get("content")
        if isinstance(content, str):
            total += self.count_text(content)
        elif content is not None:
            total += self.count_text(json.dumps(content, separators=(",", ":")))

        tool_calls = msg_dict.get("tool_calls")
        if tool_calls:
            total += self.count_tool_calls(tool_calls)

        if msg_dict.get("name"):
            total += self.count_text(str(msg_dict["name"]))

        return total

    def count_tool_calls(self, tool_calls: List[Dict[str, Any]]) -> int:
        """
        Count tokens in tool calls.

        Args:
            tool_calls: List of tool call dicts

        Returns:
            Estimated token count
        """
        total = 0
        for tc in tool_calls:
            total += TOOL_CALL_OVERHEAD
            function = tc.get("function") or {}
            if isinstance(function, dict):
                total += self.count_text(function.get("name") or "")
                args = function.get("arguments") or ""
                if not isinstance(args, str):
                    args = json.dumps(args, separators=(",", ":"))
                total += self.count_text(args)
        return total

    def count_messages(self, messages: List[Dict[str, Any]]) -> Tuple[int, List[int]]:
        """
        Count tokens across all messages.

        Args:
            messages: List of message dictionaries

        Returns:
            Tuple of (total_tokens, per_message_tokens)
        """
        per_message = [self.count_message(msg) for msg in messages]
        return sum(per_message) + CONVERSATION_OVERHEAD, per_message


# Convenience function for quick token counting
def estimate_tokens(messages: List[Dict[str, Any]], model: Optional[str] = None) -> int:
    """
    Quick token estimation for a list of messages.

    Args:
        messages: List of message dictionaries
        model: Model identifier used to select the character ratio

    Returns:
        Total estimated tokens
    """
    total, _ = DefaultTokenCounter(model=model).count_messages(messages)
    return total

"""
Tests for the agentrelay.agents.context_window module.

This module tests:
- Policy validation and model-derived budgets
- Sliding-window, message-count and summarization strategies
- Preservation rules and tool-result bundling
"""

import logging

import pytest

from agentrelay.agents.context_window import (
    SUMMARY_PREFIX,
    ContextWindowManager,
    ContextWindowPolicy,
    default_max_tokens,
)
from agentrelay.agents.exceptions import AgentConfigurationError
from agentrelay.agents.memory import Conversation, Message, ToolCallRequest


# =============================================================================
# Fixtures
# =============================================================================

SYSTEM_PROMPT = "You are helpful."


def padded(i: int) -> str:
    """A 100-character message body tagged with its position."""
    return f"{i:03d}" + "x" * 97


@pytest.fixture
def long_conversation():
    """One system message followed by 20 user messages of 100 characters."""
    return Conversation([Message.system(SYSTEM_PROMPT)] + [Message.user(padded(i)) for i in range(20)])


def assistant_with_calls(*call_ids):
    return Message.assistant(
        tool_calls=[ToolCallRequest(id=cid, name="lookup", arguments="{}") for cid in call_ids]
    )


# =============================================================================
# Policy Tests
# =============================================================================

class TestContextWindowPolicy:
    """Tests for ContextWindowPolicy validation."""

    @pytest.mark.parametrize("model,expected", [
        ("gpt-4o", 120_000),
        ("gpt-4o-mini", 120_000),
        ("gpt-4-turbo", 120_000),
        ("gpt-3.5-turbo-16k", 15_000),
        ("gpt-3.5-turbo", 3_500),
        ("llama-3-70b", 7_500),
        (None, 7_500),
    ])
    def test_default_max_tokens(self, model, expected):
        """Test budgets derived from the model name."""
        assert default_max_tokens(model) == expected
        assert ContextWindowPolicy(model=model).max_tokens == expected

    def test_explicit_max_tokens_wins(self):
        """Test an explicit budget is kept."""
        assert ContextWindowPolicy(model="gpt-4o", max_tokens=500).max_tokens == 500

    def test_unknown_strategy(self):
        """Test unknown strategies are rejected."""
        with pytest.raises(AgentConfigurationError) as exc_info:
            ContextWindowPolicy(strategy="fifo")

        assert exc_info.value.config_field == "strategy"

    def test_message_count_requires_max_messages(self):
        """Test message_count needs a message budget."""
        with pytest.raises(AgentConfigurationError):
            ContextWindowPolicy(strategy="message_count")

    @pytest.mark.parametrize("threshold", [0, -0.5, 1.5])
    def test_invalid_threshold(self, threshold):
        """Test the summarization threshold must be a fraction."""
        with pytest.raises(AgentConfigurationError):
            ContextWindowPolicy(strategy="summarization", summarization_threshold=threshold)

    def test_defaults(self):
        """Test documented defaults."""
        policy = ContextWindowPolicy()

        assert policy.strategy == "token_sliding_window"
        assert policy.preserve_system is True
        assert policy.preserve_recent == 5
        assert policy.summarization_threshold == 0.8
        assert policy.truncation_notice is False


# =============================================================================
# Measurement Tests
# =============================================================================

class TestMeasurement:
    """Tests for count_total_tokens and within_limit."""

    def test_count_total_tokens(self):
        """Test the heuristic count includes message and request overhead."""
        manager = ContextWindowManager(ContextWindowPolicy(max_tokens=100))

        # 4 chars at 280 tokens/1000 chars -> 2, plus 4 per message, plus 3 per request
        assert manager.count_total_tokens([Message.user("abcd")]) == 9

    def test_within_limit(self):
        """Test the limit check against the budget."""
        manager = ContextWindowManager(ContextWindowPolicy(max_tokens=9))

        assert manager.within_limit([Message.user("abcd")])
        assert not manager.within_limit([Message.user("abcd"), Message.user("abcd")])

    def test_within_limit_message_count(self):
        """Test message_count compares message counts."""
        manager = ContextWindowManager(
            ContextWindowPolicy(strategy="message_count", max_messages=2)
        )

        assert manager.within_limit([Message.user("a"), Message.user("b")])
        assert not manager.within_limit([Message.user("a")] * 3)


# =============================================================================
# Trimming Tests
# =============================================================================

class TestTrim:
    """Tests for ContextWindowManager.trim."""

    def test_within_budget_returns_new_equal_list(self):
        """Test a conversation under budget is returned unchanged."""
        messages = [Message.system("s"), Message.user("hi")]
        manager = ContextWindowManager(ContextWindowPolicy(max_tokens=1000))

        result = manager.trim(messages)

        assert result == messages
        assert result is not messages

    def test_does_not_mutate_conversation(self, long_conversation):
        """Test trimming leaves the conversation intact."""
        manager = ContextWindowManager(ContextWindowPolicy(max_tokens=120, preserve_recent=3))

        manager.trim(long_conversation)

        assert len(long_conversation) == 21

    def test_sliding_window_keeps_system_and_recent(self, long_conversation):
        """Test only the system message and the last 3 messages survive a tight budget."""
        # system = 9 tokens, each user message = 32 tokens, request overhead = 3
        manager = ContextWindowManager(ContextWindowPolicy(max_tokens=120, preserve_recent=3))

        result = manager.trim(long_conversation)

        assert result[0] is long_conversation[0]
        assert result[1:] == long_conversation.messages[-3:]
        assert [m.content[:3] for m in result[1:]] == ["017", "018", "019"]

    def test_sliding_window_fills_remaining_budget_newest_first(self, long_conversation):
        """Test spare budget is spent on the newest older messages."""
        # preserved cost 108; two more 32-token messages fit in 175
        manager = ContextWindowManager(ContextWindowPolicy(max_tokens=175, preserve_recent=3))

        result = manager.trim(long_conversation)

        assert [m.content[:3] for m in result[1:]] == ["015", "016", "017", "018", "019"]

    def test_message_count_window(self, long_conversation):
        """Test message_count keeps system plus the most recent messages."""
        manager = ContextWindowManager(ContextWindowPolicy(
            strategy="message_count", max_messages=4, preserve_recent=3
        ))

        result = manager.trim(long_conversation)

        assert len(result) == 4
        assert result[0].role == "system"
        assert result[1:] == long_conversation.messages[-3:]

    def test_preserved_messages_exceed_budget(self, long_conversation, caplog):
        """Test preservation is hard and the budget soft."""
        manager = ContextWindowManager(ContextWindowPolicy(max_tokens=10, preserve_recent=3))

        with caplog.at_level(logging.WARNING):
            result = manager.trim(long_conversation)

        assert len(result) == 4
        assert any("exceed" in r.getMessage() for r in caplog.records)

    def test_preserve_system_disabled(self, long_conversation):
        """Test system messages can be dropped."""
        manager = ContextWindowManager(ContextWindowPolicy(
            strategy="message_count", max_messages=3, preserve_recent=3, preserve_system=False
        ))

        result = manager.trim(long_conversation)

        assert all(m.role == "user" for m in result)
        assert len(result) == 3

    def test_truncation_notice(self, long_conversation):
        """Test the optional note about dropped messages."""
        manager = ContextWindowManager(ContextWindowPolicy(
            strategy="message_count", max_messages=4, preserve_recent=3, truncation_notice=True
        ))

        result = manager.trim(long_conversation)

        assert result[0].content == SYSTEM_PROMPT
        assert result[1].role == "system"
        assert result[1].content == (
            "[Note: 17 earlier messages were truncated to fit the context window]"
        )
        assert result[2:] == long_conversation.messages[-3:]


# =============================================================================
# Summarization Tests
# =============================================================================

class TestSummarization:
    """Tests for the summarization strategy."""

    def test_lower_limit_without_summarizer(self, long_conversation):
        """Test summarization degrades to a sliding window at the lowered limit."""
        # 175 * 0.8 = 140: room for one message beyond the preserved 108
        manager = ContextWindowManager(ContextWindowPolicy(
            strategy="summarization", max_tokens=175, preserve_recent=3
        ))

        result = manager.trim(long_conversation)

        assert [m.content[:3] for m in result[1:]] == ["016", "017", "018", "019"]

    def test_summarizer_replaces_dropped_messages(self, long_conversation):
        """Test dropped messages are summarized into one system message."""
        seen = []

        def summarizer(dropped):
            seen.extend(dropped)
            return f"{len(dropped)} messages about x"

        manager = ContextWindowManager(ContextWindowPolicy(
            strategy="summarization", max_tokens=140, preserve_recent=3, summarizer=summarizer
        ))

        result = manager.trim(long_conversation)

        assert len(seen) == 17
        assert result[0].content == SYSTEM_PROMPT
        assert result[1].content == f"{SUMMARY_PREFIX}17 messages about x"
        assert result[2:] == long_conversation.messages[-3:]


# =============================================================================
# Tool Bundle Tests
# =============================================================================

class TestToolBundles:
    """Tests for keeping tool results with their assistant message."""

    def test_orphan_tool_result_dropped(self):
        """Test a tool result whose assistant message was dropped is dropped too."""
        messages = [
            Message.user("question"),
            assistant_with_calls("c1"),
            Message.tool_result("c1", "result"),
            Message.user("next"),
            Message.assistant("answer"),
        ]
        manager = ContextWindowManager(ContextWindowPolicy(
            strategy="message_count", max_messages=3, preserve_recent=2
        ))

        result = manager.trim(messages)

        assert result == messages[3:]

    def test_preserved_tool_result_pulls_in_assistant(self):
        """Test a preserved tool result keeps its assistant message and siblings."""
        messages = [
            Message.user("q0"),
            Message.user("q1"),
            assistant_with_calls("c1", "c2"),
            Message.tool_result("c1", "r1"),
            Message.tool_result("c2", "r2"),
        ]
        manager = ContextWindowManager(ContextWindowPolicy(
            strategy="message_count", max_messages=1, preserve_recent=1
        ))

        result = manager.trim(messages)

        assert result == messages[2:]

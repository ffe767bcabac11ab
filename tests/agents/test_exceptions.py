"""
Tests for the agentrelay.agents.exceptions module.

This module tests:
- AgentFrameworkError base class
- Guardrail error hierarchy and stamping
- Tool, run and model error attributes
"""

import pytest

from agentrelay.agents.exceptions import (
    AgentConfigurationError,
    AgentFrameworkError,
    GuardrailError,
    ModelAPIError,
    RateLimitError,
    SecurityError,
    ToolExecutionError,
    ToolNotFoundError,
    TurnLimitExceeded,
    ValidationError,
)


# =============================================================================
# AgentFrameworkError Tests
# =============================================================================

class TestAgentFrameworkError:
    """Tests for the base AgentFrameworkError class."""

    def test_basic_creation(self):
        """Test creating basic exception."""
        error = AgentFrameworkError("Something went wrong")

        assert "Something went wrong" in str(error)
        assert error.error_code == "AGENT_FRAMEWORK_ERROR"

    def test_string_form_includes_code_and_agent(self):
        """Test the [CODE] Agent:<name> message string form."""
        error = AgentFrameworkError("Boom", error_code="ERR001", agent_name="MyAgent")

        assert str(error) == "[ERR001] Agent:MyAgent Boom"

    def test_with_all_attributes(self):
        """Test exception with all optional attributes."""
        error = AgentFrameworkError(
            "Test error",
            error_code="ERR001",
            agent_name="MyAgent",
            task_id="task_123",
            context={"key": "value"},
            user_message="User-friendly message",
            suggestion="Try this fix"
        )

        assert error.error_code == "ERR001"
        assert error.agent_name == "MyAgent"
        assert error.task_id == "task_123"
        assert error.context == {"key": "value"}
        assert error.user_message == "User-friendly message"
        assert error.suggestion == "Try this fix"

    def test_to_dict(self):
        """Test converting exception to dictionary."""
        error = AgentFrameworkError(
            "Test error",
            error_code="TEST001",
            agent_name="TestAgent"
        )

        result = error.to_dict()

        assert result["error_type"] == "AgentFrameworkError"
        assert result["error_code"] == "TEST001"
        assert result["agent_name"] == "TestAgent"
        assert result["message"] == "Test error"

    def test_user_message_defaults_to_message(self):
        """Test user_message falls back to the developer message."""
        error = AgentFrameworkError("Developer message")

        assert error.user_message == "Developer message"
        assert error.developer_message == "Developer message"


# =============================================================================
# Guardrail Error Tests
# =============================================================================

class TestGuardrailErrors:
    """Tests for ValidationError, SecurityError and RateLimitError."""

    def test_hierarchy(self):
        """Test guardrail errors share the GuardrailError base."""
        assert issubclass(ValidationError, GuardrailError)
        assert issubclass(SecurityError, GuardrailError)
        assert issubclass(RateLimitError, SecurityError)
        assert issubclass(GuardrailError, AgentFrameworkError)

    def test_validation_error_path(self):
        """Test ValidationError carries the failing path."""
        error = ValidationError("bad value", path="items -> 0")

        assert error.path == "items -> 0"
        assert error.context["path"] == "items -> 0"
        assert error.error_code == "VALIDATION_ERROR"

    def test_security_error_violation_kind(self):
        """Test SecurityError carries the violation kind."""
        error = SecurityError("flagged", violation_kind="pii")

        assert error.violation_kind == "pii"
        assert error.error_code == "SECURITY_ERROR"

    def test_rate_limit_error(self):
        """Test RateLimitError attributes."""
        error = RateLimitError("slow down", limit=5, window_seconds=60.0, retry_after=12.5)

        assert error.retry_after == 12.5
        assert error.limit == 5
        assert error.violation_kind == "rate_limit"
        assert error.error_code == "RATE_LIMIT_ERROR"
        assert "12.5" in error.suggestion

    def test_stamp_sets_missing_fields(self):
        """Test stamp fills direction and guardrail name."""
        error = ValidationError("bad")

        returned = error.stamp("output", "length")

        assert returned is error
        assert error.direction == "output"
        assert error.guardrail == "length"
        assert error.rejected_output
        assert not error.rejected_input

    def test_stamp_keeps_existing_direction(self):
        """Test stamp does not overwrite a direction set by the raiser."""
        error = ValidationError("bad json", direction="input")

        error.stamp("output", "schema")

        assert error.direction == "input"
        assert error.guardrail == "schema"


# =============================================================================
# Tool Error Tests
# =============================================================================

class TestToolErrors:
    """Tests for ToolExecutionError and ToolNotFoundError."""

    def test_tool_execution_error_wraps_cause(self):
        """Test the original exception is kept."""
        cause = ZeroDivisionError("division by zero")
        error = ToolExecutionError("failed", tool_name="divide", tool_args={"a": 1}, cause=cause)

        assert error.cause is cause
        assert error.tool_name == "divide"
        assert error.context["execution_error"] == "ZeroDivisionError: division by zero"

    def test_tool_not_found_suggests_similar(self):
        """Test ToolNotFoundError message includes the closest match."""
        error = ToolNotFoundError("serch", available_tools=["search", "fetch"], similar=["search"])

        assert str(error).endswith("Tool 'serch' not found. Did you mean: search?")
        assert error.error_code == "TOOL_NOT_FOUND"
        assert isinstance(error, ToolExecutionError)
        assert "search" in error.suggestion

    def test_tool_not_found_without_suggestions(self):
        """Test the message without close matches."""
        error = ToolNotFoundError("unknown")

        assert error.developer_message == "Tool 'unknown' not found."
        assert error.suggestion == "Available tools: none"


# =============================================================================
# Run / Configuration / Model Error Tests
# =============================================================================

class TestRunErrors:
    """Tests for TurnLimitExceeded, AgentConfigurationError and ModelAPIError."""

    def test_turn_limit_exceeded(self):
        """Test turn counters are exposed."""
        error = TurnLimitExceeded("too many turns", max_turns=3, turns_taken=3, agent_name="A")

        assert error.max_turns == 3
        assert error.turns_taken == 3
        assert error.error_code == "TURN_LIMIT_EXCEEDED"
        assert error.agent_name == "A"

    def test_configuration_error(self):
        """Test configuration field and value."""
        error = AgentConfigurationError("bad", config_field="max_turns", config_value=0)

        assert error.config_field == "max_turns"
        assert error.config_value == 0

    @pytest.mark.parametrize("status,fragment", [
        (401, "API key"),
        (429, "rate limiting"),
        (503, "server error"),
        (None, "network"),
    ])
    def test_model_api_error_suggestion(self, status, fragment):
        """Test suggestions depend on the HTTP status."""
        error = ModelAPIError("failed", provider="openai", status_code=status)

        assert fragment in error.suggestion
        assert error.status_code == status

    def test_model_api_error_response_excerpt(self):
        """Test the raw body is truncated into the context."""
        error = ModelAPIError("failed", status_code=500, raw_response="x" * 500)

        assert len(error.context["response_excerpt"]) == 200
        assert error.raw_response == "x" * 500

"""
agentrelay Exception Hierarchy

This module defines the exception hierarchy for the orchestration runtime,
providing specific error types for each failure category with rich context
and standardized error handling.

The hierarchy is designed to:
1. Distinguish rejected tool input, rejected tool output and rate limiting
2. Include rich context information (agent names, tool names, timestamps)
3. Enable programmatic error recovery (feed-back vs. abort policies)
4. Maintain consistent error message formats
"""

import time
from typing import Any, Dict, Optional


class AgentFrameworkError(Exception):
    """
    Base exception class for all agentrelay errors.

    Provides common error context and standardized error information
    that all framework-specific exceptions inherit.

    Attributes:
        error_code: Unique error code for programmatic handling
        agent_name: Name of the agent where error occurred (if applicable)
        task_id: Task/run ID where error occurred (if applicable)
        timestamp: When the error occurred
        context: Additional context information
        user_message: User-friendly error message
        developer_message: Detailed technical error message
        suggestion: Suggested fix or next steps (if applicable)
    """

    def __init__(
        self,
        message: str,
        error_code: str = "AGENT_FRAMEWORK_ERROR",
        agent_name: Optional[str] = None,
        task_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        suggestion: Optional[str] = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.agent_name = agent_name
        self.task_id = task_id
        self.timestamp = time.time()
        self.context = context or {}
        self.user_message = user_message or message
        self.developer_message = message
        self.suggestion = suggestion

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.developer_message,
            "user_message": self.user_message,
            "agent_name": self.agent_name,
            "task_id": self.task_id,
            "timestamp": self.timestamp,
            "context": self.context,
            "suggestion": self.suggestion,
        }

    def __str__(self) -> str:
        """String representation with context."""
        parts = [f"[{self.error_code}]"]
        if self.agent_name:
            parts.append(f"Agent:{self.agent_name}")
        if self.task_id:
            parts.append(f"Task:{self.task_id[:8]}...")
        parts.append(self.developer_message)
        return " ".join(parts)


# =============================================================================
# GUARDRAIL ERRORS
# =============================================================================

class GuardrailError(AgentFrameworkError):
    """
    Base class for errors raised by guardrails.

    ``direction`` tells whether tool input ("input") or tool output ("output")
    was rejected; ``guardrail`` names the validator that rejected it. The
    chain stamps both fields when the error passes through it.
    """

    def __init__(
        self,
        message: str,
        direction: Optional[str] = None,
        guardrail: Optional[str] = None,
        **kwargs
    ):
        self.direction = direction
        self.guardrail = guardrail
        error_code = kwargs.pop("error_code", "GUARDRAIL_ERROR")
        super().__init__(message, error_code=error_code, **kwargs)
        if direction:
            self.context["direction"] = direction
        if guardrail:
            self.context["guardrail"] = guardrail

    def stamp(self, direction: str, guardrail: str) -> "GuardrailError":
        """Record where the error was raised, keeping values set by the validator."""
        if self.direction is None:
            self.direction = direction
            self.context["direction"] = direction
        if self.guardrail is None:
            self.guardrail = guardrail
            self.context["guardrail"] = guardrail
        return self

    @property
    def rejected_input(self) -> bool:
        return self.direction == "input"

    @property
    def rejected_output(self) -> bool:
        return self.direction == "output"


class ValidationError(GuardrailError):
    """
    Raised when tool input or output violates a shape constraint.

    Examples:
    - Arguments that do not match the declared JSON schema
    - Output longer than the configured limit
    - Tool-call arguments that are not valid JSON
    """

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        self.path = path
        context = kwargs.pop("context", None) or {}
        if path:
            context["path"] = path
        super().__init__(
            message,
            error_code="VALIDATION_ERROR",
            context=context,
            user_message=kwargs.pop("user_message", "The data was rejected by a validation rule."),
            suggestion=kwargs.pop(
                "suggestion", "Check the expected format and adjust the data accordingly."
            ),
            **kwargs
        )


class SecurityError(GuardrailError):
    """
    Raised when content-safety or privacy checks reject data.

    Examples:
    - Content matching a harmful-content pattern
    - Personally identifiable information in tool input
    """

    def __init__(self, message: str, violation_kind: Optional[str] = None, **kwargs):
        self.violation_kind = violation_kind
        context = kwargs.pop("context", None) or {}
        if violation_kind:
            context["violation_kind"] = violation_kind
        super().__init__(
            message,
            error_code=kwargs.pop("error_code", "SECURITY_ERROR"),
            context=context,
            user_message=kwargs.pop("user_message", "The content was rejected by a security check."),
            suggestion=kwargs.pop("suggestion", "Remove the flagged content and try again."),
            **kwargs
        )


class RateLimitError(SecurityError):
    """Raised when the rolling request window is exhausted."""

    def __init__(
        self,
        message: str,
        limit: Optional[int] = None,
        window_seconds: Optional[float] = None,
        retry_after: Optional[float] = None,
        **kwargs
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_after = retry_after
        context = kwargs.pop("context", None) or {}
        context.update(
            {"limit": limit, "window_seconds": window_seconds, "retry_after": retry_after}
        )
        super().__init__(
            message,
            violation_kind="rate_limit",
            error_code="RATE_LIMIT_ERROR",
            context=context,
            user_message="You are being rate limited.",
            suggestion=(
                f"Retry after {retry_after:.1f}s." if retry_after is not None
                else "Reduce the request rate."
            ),
            **kwargs
        )


# =============================================================================
# TOOL ERRORS
# =============================================================================

class ToolExecutionError(AgentFrameworkError):
    """
    Raised when a tool body fails.

    Wraps the original exception as ``cause`` (also chained via ``__cause__``
    by the executor) and carries the tool name.
    """

    def __init__(
        self,
        message: str,
        tool_name: Optional[str] = None,
        tool_args: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        **kwargs
    ):
        self.tool_name = tool_name
        self.tool_args = tool_args
        self.cause = cause

        context = kwargs.pop("context", None) or {}
        if tool_name:
            context["tool_name"] = tool_name
        if tool_args:
            context["tool_args"] = str(tool_args)
        if cause is not None:
            context["execution_error"] = f"{type(cause).__name__}: {cause}"

        super().__init__(
            message,
            error_code=kwargs.pop("error_code", "TOOL_EXECUTION_ERROR"),
            context=context,
            user_message=kwargs.pop("user_message", "Tool execution failed."),
            suggestion=kwargs.pop(
                "suggestion", "Check tool arguments and ensure the tool is functional."
            ),
            **kwargs
        )


class ToolNotFoundError(ToolExecutionError):
    """Raised when the model requests a tool the current agent does not offer."""

    def __init__(self, tool_name: str, available_tools=None, similar=None, **kwargs):
        self.available_tools = list(available_tools or [])
        self.similar = list(similar or [])
        message = f"Tool '{tool_name}' not found."
        if self.similar:
            message += f" Did you mean: {self.similar[0]}?"
        context = kwargs.pop("context", None) or {}
        context["available_tools"] = self.available_tools
        super().__init__(
            message,
            tool_name=tool_name,
            error_code="TOOL_NOT_FOUND",
            context=context,
            user_message="The requested tool is not available.",
            suggestion=f"Available tools: {', '.join(self.available_tools[:10]) or 'none'}",
            **kwargs
        )


# =============================================================================
# RUN / AGENT ERRORS
# =============================================================================

class TurnLimitExceeded(AgentFrameworkError):
    """Raised when an agent exhausts its turn budget before completing."""

    def __init__(
        self,
        message: str,
        max_turns: Optional[int] = None,
        turns_taken: Optional[int] = None,
        **kwargs
    ):
        self.max_turns = max_turns
        self.turns_taken = turns_taken
        context = kwargs.pop("context", None) or {}
        context.update({"max_turns": max_turns, "turns_taken": turns_taken})
        super().__init__(
            message,
            error_code="TURN_LIMIT_EXCEEDED",
            context=context,
            user_message="The conversation did not finish within the allowed number of turns.",
            suggestion="Increase max_turns or give the agent a clearer stopping condition.",
            **kwargs
        )


class AgentConfigurationError(AgentFrameworkError):
    """
    Raised when agent, tool or policy configuration is invalid.

    Examples:
    - Duplicate tool names on one agent
    - Non-positive max_turns
    - Unknown context-window strategy
    """

    def __init__(
        self,
        message: str,
        config_field: Optional[str] = None,
        config_value: Optional[Any] = None,
        **kwargs
    ):
        self.config_field = config_field
        self.config_value = config_value

        context = kwargs.pop("context", None) or {}
        if config_field:
            context["config_field"] = config_field
        if config_value is not None:
            context["config_value"] = str(config_value)

        super().__init__(
            message,
            error_code="AGENT_CONFIGURATION_ERROR",
            context=context,
            user_message="The agent configuration is invalid.",
            suggestion="Check the configuration values and try again.",
            **kwargs
        )


class ModelAPIError(AgentFrameworkError):
    """
    Raised when the model backend cannot be reached or answers with an error.

    Transport failures are not retried internally; callers decide on retries.
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        api_endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        raw_response: Optional[str] = None,
        **kwargs
    ):
        self.provider = provider
        self.api_endpoint = api_endpoint
        self.status_code = status_code
        self.raw_response = raw_response

        context = kwargs.pop("context", None) or {}
        context.update(
            {"provider": provider, "api_endpoint": api_endpoint, "status_code": status_code}
        )
        if raw_response:
            context["response_excerpt"] = raw_response[:200]

        super().__init__(
            message,
            error_code="MODEL_API_ERROR",
            context=context,
            user_message="The model service request failed.",
            suggestion=self._suggest(status_code),
            **kwargs
        )

    @staticmethod
    def _suggest(status_code: Optional[int]) -> str:
        if status_code in (401, 403):
            return "Check the API key and its permissions."
        if status_code == 429:
            return "The provider is rate limiting requests; retry later."
        if status_code is not None and status_code >= 500:
            return "The provider had a server error; retry later."
        return "Check network connectivity and the request parameters."

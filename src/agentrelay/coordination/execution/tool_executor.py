"""
Tool executor: the pipeline every model-requested tool call goes through.

resolve -> parse arguments -> input guardrails -> per-tool lock -> execute
-> output guardrails -> record. Failures at any step are captured on the
returned ``ToolCallOutcome`` and recorded in the ToolContext's execution
history; the run loop decides whether they are fed back or raised.
"""

import asyncio
import functools
import inspect
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from difflib import get_close_matches
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from ...agents.agents import Agent, FunctionTool
from ...agents.exceptions import (
    AgentFrameworkError,
    GuardrailError,
    ToolExecutionError,
    ToolNotFoundError,
)
from ...agents.memory import Message, ToolCallRequest
from ...agents.tool_context import ExecutionRecord, ToolContext
from ...guardrails.chain import GuardrailChain
from ..status.events import ToolCallEvent

if TYPE_CHECKING:
    from ..event_bus import EventBus

logger = logging.getLogger(__name__)


def find_similar_tool_names(tool_name: str, available_tools: List[str], cutoff: float = 0.6) -> List[str]:
    """Find similar tool names using fuzzy matching."""
    # Strip common prefixes for matching
    clean_name = tool_name.replace("functions.", "").replace("tools.", "")
    return get_close_matches(clean_name, available_tools, n=3, cutoff=cutoff)


def error_text(error: BaseException) -> str:
    """Message for a failure; framework errors carry their own, others get the type name."""
    if isinstance(error, AgentFrameworkError):
        return error.developer_message
    return f"{type(error).__name__}: {error}"


def serialize_tool_result(result: Any) -> str:
    """Strings as-is, dicts and lists as compact JSON, everything else via str()."""
    if isinstance(result, str):
        return result
    if isinstance(result, (dict, list)):
        return json.dumps(result, ensure_ascii=False, separators=(",", ":"), default=str)
    return str(result)


@dataclass
class ToolCallOutcome:
    """Result of running one tool call through the pipeline."""

    call: ToolCallRequest
    output: Any = None
    error: Optional[Exception] = None
    record: Optional[ExecutionRecord] = None
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def content(self) -> str:
        """Text placed in the tool-result message."""
        if self.error is not None:
            return f"Error: {error_text(self.error)}"
        return serialize_tool_result(self.output)

    def to_message(self) -> Message:
        return Message.tool_result(self.call.id, self.content, name=self.call.name)


class ToolExecutor:
    """
    Runs tool calls for an agent against a ToolContext.

    Args:
        guardrails: Chain applied to tool arguments and results
        event_bus: Optional bus receiving ToolCallEvents
    """

    def __init__(
        self,
        guardrails: Optional[GuardrailChain] = None,
        event_bus: Optional["EventBus"] = None,
    ):
        self.guardrails = guardrails if guardrails is not None else GuardrailChain()
        self.event_bus = event_bus

    async def execute_all(
        self,
        calls: List[ToolCallRequest],
        agent: Agent,
        context: ToolContext,
        parallel: bool = True,
        session_id: str = "default",
        run_id: Optional[str] = None,
    ) -> List[ToolCallOutcome]:
        """
        Execute a turn's tool calls; outcomes are returned in request order.

        With ``parallel``, calls are grouped by tool name: groups run
        concurrently, calls inside a group run one after another.
        """
        if not calls:
            return []
        logger.info(
            f"Executing {len(calls)} tool call(s)", extra={"agent_name": agent.name}
        )

        if not parallel:
            return [
                await self.execute(call, agent, context, session_id=session_id, run_id=run_id)
                for call in calls
            ]

        groups: "OrderedDict[str, List[Tuple[int, ToolCallRequest]]]" = OrderedDict()
        for position, call in enumerate(calls):
            groups.setdefault(call.name, []).append((position, call))

        outcomes: List[Optional[ToolCallOutcome]] = [None] * len(calls)

        async def run_group(items: List[Tuple[int, ToolCallRequest]]) -> None:
            for position, call in items:
                outcomes[position] = await self.execute(
                    call, agent, context, session_id=session_id, run_id=run_id
                )

        await asyncio.gather(*(run_group(items) for items in groups.values()))
        return outcomes

    async def execute(
        self,
        call: ToolCallRequest,
        agent: Agent,
        context: ToolContext,
        session_id: str = "default",
        run_id: Optional[str] = None,
    ) -> ToolCallOutcome:
        """Run one tool call through the full pipeline."""
        start = time.perf_counter()
        tool_input: Any = call.arguments

        try:
            tool = self._resolve(call.name, agent, context)
            arguments = call.parsed_arguments()
            tool_input = arguments
            self.guardrails.validate_input(arguments)
        except Exception as e:
            # custom guardrails may raise any exception type; it is kept as-is
            return await self._failed(call, agent, context, tool_input, e, start, session_id, run_id)

        await self._emit(ToolCallEvent(
            session_id=session_id,
            run_id=run_id,
            agent_name=agent.name,
            tool_name=tool.name,
            status="started",
            arguments=arguments,
        ))

        try:
            if tool.exclusive:
                async with context.alock(f"tool:{tool.name}"):
                    output = await self._invoke(tool, arguments, context, agent)
            else:
                output = await self._invoke(tool, arguments, context, agent)
            self.guardrails.validate_output(output)
        except Exception as e:
            return await self._failed(call, agent, context, arguments, e, start, session_id, run_id)

        duration = time.perf_counter() - start
        record = context.track_execution(tool.name, arguments, output, duration)
        logger.info(
            f"Tool {tool.name} executed successfully in {duration:.3f}s",
            extra={"agent_name": agent.name},
        )
        await self._emit(ToolCallEvent(
            session_id=session_id,
            run_id=run_id,
            agent_name=agent.name,
            tool_name=tool.name,
            status="completed",
            duration=duration,
        ))
        return ToolCallOutcome(call=call, output=output, record=record, duration=duration)

    def _resolve(self, name: str, agent: Agent, context: ToolContext) -> FunctionTool:
        tool = agent.get_tool(name)
        if tool is not None and tool.is_enabled(context):
            return tool
        available = [t.name for t in agent.enabled_tools(context)]
        raise ToolNotFoundError(
            name,
            available_tools=available,
            similar=find_similar_tool_names(name, available),
            agent_name=agent.name,
        )

    async def _invoke(
        self, tool: FunctionTool, arguments: Dict[str, Any], context: ToolContext, agent: Agent
    ) -> Any:
        kwargs = dict(arguments)
        if tool.wants_context:
            kwargs["context"] = context
        try:
            if inspect.iscoroutinefunction(tool.function):
                return await tool.function(**kwargs)
            # Run sync function in executor to avoid blocking
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, functools.partial(tool.function, **kwargs))
        except Exception as e:
            raise ToolExecutionError(
                f"Tool '{tool.name}' failed: {type(e).__name__}: {e}",
                tool_name=tool.name,
                tool_args=arguments,
                cause=e,
                agent_name=agent.name,
            ) from e

    async def _failed(
        self,
        call: ToolCallRequest,
        agent: Agent,
        context: ToolContext,
        tool_input: Any,
        error: Exception,
        start: float,
        session_id: str,
        run_id: Optional[str],
    ) -> ToolCallOutcome:
        duration = time.perf_counter() - start
        record = context.track_execution(call.name, tool_input, None, duration, error=error)
        if isinstance(error, GuardrailError):
            logger.warning(
                f"Tool call {call.name} rejected by guardrail: {error_text(error)}",
                extra={"agent_name": agent.name},
            )
        else:
            logger.error(
                f"Tool call {call.name} failed: {error_text(error)}",
                extra={"agent_name": agent.name},
            )
        await self._emit(ToolCallEvent(
            session_id=session_id,
            run_id=run_id,
            agent_name=agent.name,
            tool_name=call.name,
            status="failed",
            duration=duration,
            error=error_text(error),
        ))
        return ToolCallOutcome(call=call, error=error, record=record, duration=duration)

    async def _emit(self, event: ToolCallEvent) -> None:
        if self.event_bus is not None:
            await self.event_bus.emit(event)

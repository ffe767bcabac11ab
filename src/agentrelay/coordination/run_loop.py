"""
RunLoop: the turn-driving control loop.

Each turn trims the conversation to the context window, streams one
completion from the model backend, then either dispatches the requested tool
calls, follows a ``HANDOFF: <name>`` marker to another agent, or completes.

The handoff marker is a literal string in assistant text. It is only scanned
when the turn carried no tool calls, and it is fragile: a model quoting the
marker will trigger it.
"""

import asyncio
import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, NamedTuple, Optional, Tuple, Union

from ..agents.agents import Agent
from ..agents.context_window import ContextWindowManager, ContextWindowPolicy
from ..agents.exceptions import AgentFrameworkError, ModelAPIError, TurnLimitExceeded
from ..agents.memory import Conversation, Message, normalize_input
from ..agents.tool_context import DEFAULT_SESSION, ContextManager, ToolContext
from ..guardrails.chain import GuardrailChain
from ..models.streaming import DecodedResponse, StreamDecoder, StreamEvent
from ..utils.tokens import TokenCounter
from .config import RunConfig
from .event_bus import EventBus
from .execution.tool_executor import ToolExecutor
from .status.events import HandoffEvent, RunCompleteEvent, RunStartEvent, TurnStartEvent

logger = logging.getLogger(__name__)

HANDOFF_PATTERN = re.compile(r"HANDOFF:\s*\[?([A-Za-z0-9_\-.]+)\]?[ \t]*([^\r\n]*)")


class RunState(Enum):
    """States of the turn state machine."""
    RUNNING = "running"
    HANDOFF_PENDING = "handoff_pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Handoff(NamedTuple):
    from_agent: str
    to_agent: str
    reason: Optional[str]


@dataclass
class RunResult:
    """Outcome of a completed run."""
    messages: List[Message]
    agent: Agent
    turns: int
    total_turns: int
    state: RunState = RunState.COMPLETED
    handoffs: List[Handoff] = field(default_factory=list)
    duration: float = 0.0
    run_id: Optional[str] = None

    @property
    def final_output(self) -> Optional[str]:
        """Content of the last assistant message."""
        for message in reversed(self.messages):
            if message.role == "assistant" and message.content:
                return message.content
        return None


def parse_handoff(content: Optional[str]) -> Optional[Tuple[str, Optional[str]]]:
    """
    Find a ``HANDOFF: <name> [reason]`` marker in assistant text.

    Returns:
        ``(name, reason)`` or None when no marker is present
    """
    if not content:
        return None
    match = HANDOFF_PATTERN.search(content)
    if match is None:
        return None
    reason = match.group(2).strip()
    if reason.startswith("[") and reason.endswith("]"):
        reason = reason[1:-1].strip()
    return match.group(1), reason or None


class RunLoop:
    """
    Drives an agent (and any agents it hands off to) to completion.

    Args:
        adapter: Model backend exposing ``astream(messages, tools=, model=, max_tokens=)``
            as an async iterator of SSE lines
        config: Run behaviour (tool error policy, window, timeouts)
        guardrails: Chain applied to every tool call
        context_manager: Owner of the ToolContexts used by tools
        event_bus: Optional bus receiving status events
        token_counter: Token counter for context-window trimming
    """

    def __init__(
        self,
        adapter: Any,
        config: Optional[RunConfig] = None,
        guardrails: Optional[GuardrailChain] = None,
        context_manager: Optional[ContextManager] = None,
        event_bus: Optional[EventBus] = None,
        token_counter: Optional[TokenCounter] = None,
    ):
        self.adapter = adapter
        self.config = config or RunConfig()
        self.guardrails = guardrails if guardrails is not None else GuardrailChain()
        self.context_manager = context_manager or ContextManager()
        self.event_bus = event_bus
        self.token_counter = token_counter
        self.tool_executor = ToolExecutor(guardrails=self.guardrails, event_bus=event_bus)

    async def run(
        self,
        agent: Agent,
        input: Union[str, Message, List[Any]],
        on_event: Optional[Callable[[StreamEvent], Any]] = None,
        session_id: Optional[str] = None,
    ) -> RunResult:
        """
        Run ``agent`` on ``input`` until it completes.

        Args:
            agent: Entry agent
            input: A string (one user message), a Message or a list of messages
            on_event: Observer for decoded stream events (sync or async)
            session_id: ToolContext session; overrides ``RunConfig.session_id``

        Returns:
            RunResult for the terminal agent

        Raises:
            TurnLimitExceeded: An agent used up its turns, or too many handoffs
            ModelAPIError: The model backend failed or timed out
            AgentFrameworkError: A tool failed under the ``raise`` policy
        """
        run_id = str(uuid.uuid4())
        session = session_id or self.config.session_id or DEFAULT_SESSION
        context = self.context_manager.get_context(session)
        start_time = time.time()

        conversation = Conversation(normalize_input(input))
        instructions_message: Optional[Message] = None
        if agent.instructions and not conversation.has_system_message():
            instructions_message = Message.system(agent.instructions)
            conversation = Conversation([instructions_message, *conversation.messages])

        current = agent
        turns = 0
        total_turns = 0
        handoffs: List[Handoff] = []
        state = RunState.RUNNING

        logger.info(f"Starting run {run_id}", extra={"agent_name": current.name})
        last_user = conversation.last("user")
        await self._emit(RunStartEvent(
            session_id=session,
            run_id=run_id,
            agent_name=current.name,
            input_summary=(last_user.content or "")[:200] if last_user else None,
        ))

        try:
            while True:
                if turns >= current.max_turns:
                    state = RunState.FAILED
                    raise TurnLimitExceeded(
                        f"Agent '{current.name}' reached its limit of {current.max_turns} turns",
                        max_turns=current.max_turns,
                        turns_taken=turns,
                        agent_name=current.name,
                    )

                turns += 1
                total_turns += 1
                state = RunState.RUNNING
                logger.info(
                    f"Turn {turns}/{current.max_turns}", extra={"agent_name": current.name}
                )
                await self._emit(TurnStartEvent(
                    session_id=session,
                    run_id=run_id,
                    agent_name=current.name,
                    turn=turns,
                    max_turns=current.max_turns,
                    message_count=len(conversation),
                ))

                request_messages = self._request_messages(conversation, current, instructions_message)
                response = await self._call_model(current, request_messages, context, on_event)
                conversation.append(response.to_message())

                if response.has_tool_calls:
                    outcomes = await self.tool_executor.execute_all(
                        response.tool_calls,
                        current,
                        context,
                        parallel=self.config.parallel_tool_calls,
                        session_id=session,
                        run_id=run_id,
                    )
                    if self.config.tool_error_policy == "raise":
                        for outcome in outcomes:
                            if outcome.error is not None:
                                state = RunState.FAILED
                                raise outcome.error
                    conversation.extend(outcome.to_message() for outcome in outcomes)
                    continue

                marker = parse_handoff(response.content)
                if marker is not None:
                    target_name, reason = marker
                    target = current.resolve_handoff(target_name)
                    if target is None:
                        logger.warning(
                            f"Ignoring handoff to unknown agent '{target_name}'",
                            extra={"agent_name": current.name},
                        )
                    else:
                        if len(handoffs) >= self.config.max_handoffs:
                            state = RunState.FAILED
                            raise TurnLimitExceeded(
                                f"Run exceeded {self.config.max_handoffs} handoffs",
                                max_turns=self.config.max_handoffs,
                                turns_taken=total_turns,
                                agent_name=current.name,
                            )
                        state = RunState.HANDOFF_PENDING
                        logger.info(
                            f"Handing off to {target.name}"
                            + (f": {reason}" if reason else ""),
                            extra={"agent_name": current.name},
                        )
                        await self._emit(HandoffEvent(
                            session_id=session,
                            run_id=run_id,
                            from_agent=current.name,
                            to_agent=target.name,
                            reason=reason,
                        ))
                        handoffs.append(Handoff(current.name, target.name, reason))
                        current = target
                        turns = 0
                        continue

                state = RunState.COMPLETED
                break

        except Exception as e:
            state = RunState.FAILED
            duration = time.time() - start_time
            logger.error(f"Run {run_id} failed: {e}", extra={"agent_name": current.name})
            await self._emit(RunCompleteEvent(
                session_id=session,
                run_id=run_id,
                agent_name=current.name,
                success=False,
                duration=duration,
                total_turns=total_turns,
                error=str(e),
                error_code=e.error_code if isinstance(e, AgentFrameworkError) else None,
            ))
            raise

        duration = time.time() - start_time
        logger.info(
            f"Run {run_id} completed in {duration:.2f}s after {total_turns} turn(s)",
            extra={"agent_name": current.name},
        )
        await self._emit(RunCompleteEvent(
            session_id=session,
            run_id=run_id,
            agent_name=current.name,
            success=True,
            duration=duration,
            total_turns=total_turns,
        ))
        return RunResult(
            messages=conversation.messages,
            agent=current,
            turns=turns,
            total_turns=total_turns,
            state=state,
            handoffs=handoffs,
            duration=duration,
            run_id=run_id,
        )

    def run_sync(
        self,
        agent: Agent,
        input: Union[str, Message, List[Any]],
        on_event: Optional[Callable[[StreamEvent], Any]] = None,
        session_id: Optional[str] = None,
    ) -> RunResult:
        """Blocking wrapper around ``run`` for callers without an event loop."""
        return asyncio.run(self.run(agent, input, on_event=on_event, session_id=session_id))

    def _request_messages(
        self,
        conversation: Conversation,
        agent: Agent,
        instructions_message: Optional[Message],
    ) -> List[Message]:
        """Conversation trimmed for ``agent``, with the run's instructions swapped to its own."""
        messages = conversation.messages
        if instructions_message is not None:
            replacement = Message.system(agent.instructions) if agent.instructions else None
            messages = [
                replacement if m is instructions_message else m
                for m in messages
                if not (m is instructions_message and replacement is None)
            ]
        policy = self.config.context_window or ContextWindowPolicy(model=agent.model)
        return ContextWindowManager(policy, token_counter=self.token_counter).trim(messages)

    async def _call_model(
        self,
        agent: Agent,
        messages: List[Message],
        context: ToolContext,
        on_event: Optional[Callable[[StreamEvent], Any]],
    ) -> DecodedResponse:
        tools = agent.tool_descriptors(context) or None
        lines = self.adapter.astream(
            [m.to_llm_dict() for m in messages],
            tools=tools,
            model=agent.model,
            max_tokens=self.config.max_tokens,
        )
        decoding = StreamDecoder().adecode(lines, on_event)
        if self.config.stream_timeout is None:
            return await decoding
        try:
            return await asyncio.wait_for(decoding, timeout=self.config.stream_timeout)
        except asyncio.TimeoutError as e:
            raise ModelAPIError(
                f"Model stream timed out after {self.config.stream_timeout}s",
                provider=getattr(self.adapter, "provider", None),
                agent_name=agent.name,
            ) from e

    async def _emit(self, event: Any) -> None:
        if self.event_bus is not None:
            await self.event_bus.emit(event)

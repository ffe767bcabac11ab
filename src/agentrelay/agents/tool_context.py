"""
Per-session state for tool executions.

A ``ToolContext`` gives tools a key/value store, a shared-memory area, named
locks for read-modify-write sequences, and a capped log of every tool
invocation with aggregate statistics. A ``ContextManager`` maps session ids
to contexts and always holds a context under the reserved key ``"default"``.

Single get/set/delete calls are atomic. Sequences spanning several calls
must hold ``with_lock(key)`` (sync) or ``alock(key)`` (async); both forms use
the same ``threading.Lock`` so sync tools running in worker threads and
coroutine tools exclude each other.
"""

import asyncio
import contextlib
import logging
import threading
import time
import uuid
from collections import Counter, deque
from dataclasses import asdict, dataclass
from typing import Any, Deque, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

MAX_EXECUTION_HISTORY = 1000
DEFAULT_SESSION = "default"

_MISSING = object()


@dataclass(frozen=True)
class ExecutionRecord:
    """Immutable log entry of one tool invocation."""

    id: str
    tool_name: str
    input: Any
    output: Any
    duration: Optional[float]
    timestamp: float
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionRecord":
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            tool_name=data["tool_name"],
            input=data.get("input"),
            output=data.get("output"),
            duration=data.get("duration"),
            timestamp=data.get("timestamp", time.time()),
            success=bool(data.get("success", True)),
            error=data.get("error"),
        )


class _ExecutionTracker:
    """Handle yielded by ``ToolContext.track``; set ``output`` before leaving."""

    def __init__(self) -> None:
        self.output: Any = None
        self.record: Optional[ExecutionRecord] = None


class ToolContext:
    """
    Mutable state shared by the tools of one session.

    Args:
        initial_data: Initial key/value data (keys coerced to ``str``)
        metadata: Free-form metadata describing the context
        track_executions: Record invocations in the execution history
        parent: Context consulted when a key is missing here
    """

    def __init__(
        self,
        initial_data: Optional[Dict[Any, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        track_executions: bool = True,
        parent: Optional["ToolContext"] = None,
    ) -> None:
        self.id = str(uuid.uuid4())
        self.created_at = time.time()
        self.metadata: Dict[str, Any] = dict(metadata or {})
        self.track_executions = track_executions
        self.parent = parent
        self.children: List["ToolContext"] = []

        self._data: Dict[str, Any] = {str(k): v for k, v in (initial_data or {}).items()}
        self._shared_memory: Dict[str, Any] = {}
        self._history: Deque[ExecutionRecord] = deque(maxlen=MAX_EXECUTION_HISTORY)
        self._state_lock = threading.RLock()
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        if parent is not None:
            parent.children.append(self)

    # ---- value store ----

    def get(self, key: Any, default: Any = None) -> Any:
        with self._state_lock:
            value = self._data.get(str(key), _MISSING)
        if value is not _MISSING:
            return value
        if self.parent is not None:
            return self.parent.get(key, default)
        return default

    def set(self, key: Any, value: Any) -> Any:
        with self._state_lock:
            self._data[str(key)] = value
        return value

    def delete(self, key: Any) -> Any:
        with self._state_lock:
            return self._data.pop(str(key), None)

    def has(self, key: Any) -> bool:
        """Whether ``key`` is set on this context (parents are not consulted)."""
        with self._state_lock:
            return str(key) in self._data

    def to_dict(self) -> Dict[str, Any]:
        with self._state_lock:
            return dict(self._data)

    def merge(self, data: Dict[Any, Any]) -> None:
        with self._state_lock:
            self._data.update({str(k): v for k, v in data.items()})

    def clear(self) -> None:
        """Clear values, shared memory and execution history."""
        with self._state_lock:
            self._data.clear()
            self._shared_memory.clear()
            self._history.clear()

    # ---- shared memory ----

    def shared_get(self, key: Any, default: Any = None) -> Any:
        with self._state_lock:
            return self._shared_memory.get(str(key), default)

    def shared_set(self, key: Any, value: Any) -> Any:
        with self._state_lock:
            self._shared_memory[str(key)] = value
        return value

    def shared_delete(self, key: Any) -> Any:
        with self._state_lock:
            return self._shared_memory.pop(str(key), None)

    # ---- locks ----

    def get_lock(self, key: Any) -> threading.Lock:
        """The lock for ``key``, created on first use."""
        key = str(key)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextlib.contextmanager
    def with_lock(self, key: Any) -> Iterator[None]:
        lock = self.get_lock(key)
        with lock:
            yield

    @contextlib.asynccontextmanager
    async def alock(self, key: Any):
        """Async form of ``with_lock``; waits without blocking the event loop."""
        lock = self.get_lock(key)
        while not lock.acquire(blocking=False):
            await asyncio.sleep(0.005)
        try:
            yield
        finally:
            lock.release()

    # ---- execution tracking ----

    def track_execution(
        self,
        tool_name: str,
        input: Any,
        output: Any = None,
        duration: Optional[float] = None,
        error: Optional[BaseException] = None,
    ) -> Optional[ExecutionRecord]:
        """
        Append an ExecutionRecord for a finished invocation.

        Returns:
            The record, or None when tracking is disabled
        """
        if not self.track_executions:
            return None
        record = ExecutionRecord(
            id=str(uuid.uuid4()),
            tool_name=tool_name,
            input=input,
            output=output,
            duration=duration,
            timestamp=time.time(),
            success=error is None,
            error=str(error) if error is not None else None,
        )
        with self._state_lock:
            self._history.append(record)
        return record

    @contextlib.contextmanager
    def track(self, tool_name: str, input: Any) -> Iterator[_ExecutionTracker]:
        """
        Time a block and record it.

        Exceptions raised in the block are recorded as failures and re-raised::

            with context.track("search", args) as tracker:
                tracker.output = search(**args)
        """
        tracker = _ExecutionTracker()
        start = time.perf_counter()
        try:
            yield tracker
        except Exception as e:
            tracker.record = self.track_execution(
                tool_name, input, None, time.perf_counter() - start, error=e
            )
            raise
        tracker.record = self.track_execution(
            tool_name, input, tracker.output, time.perf_counter() - start
        )

    def execution_history(
        self, tool_name: Optional[str] = None, limit: Optional[int] = None
    ) -> List[ExecutionRecord]:
        with self._state_lock:
            history = list(self._history)
        if tool_name is not None:
            history = [r for r in history if r.tool_name == tool_name]
        if limit is not None:
            history = history[-limit:] if limit > 0 else []
        return history

    def execution_stats(self, tool_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Aggregate statistics over the execution history.

        Returns an empty dict when there is nothing recorded. Without
        ``tool_name`` the result also has a per-tool breakdown under ``tools``.
        """
        executions = self.execution_history(tool_name=tool_name)
        if not executions:
            return {}

        total = len(executions)
        successful = sum(1 for r in executions if r.success)
        stats: Dict[str, Any] = {
            "total_executions": total,
            "successful": successful,
            "failed": total - successful,
            "success_rate": round(successful / total * 100, 2),
        }

        durations = [r.duration for r in executions if r.success and r.duration is not None]
        if durations:
            stats["avg_duration"] = round(sum(durations) / len(durations), 3)
            stats["min_duration"] = round(min(durations), 3)
            stats["max_duration"] = round(max(durations), 3)

        if tool_name is None:
            names = list(dict.fromkeys(r.tool_name for r in executions))
            stats["tools"] = {name: self.execution_stats(tool_name=name) for name in names}
        return stats

    def most_used_tools(self, limit: Optional[int] = None) -> List[str]:
        counts = Counter(r.tool_name for r in self.execution_history())
        return [name for name, _ in counts.most_common(limit)]

    def average_execution_time(self) -> Dict[str, float]:
        """Mean duration of successful executions per tool name."""
        buckets: Dict[str, List[float]] = {}
        for r in self.execution_history():
            if r.success and r.duration is not None:
                buckets.setdefault(r.tool_name, []).append(r.duration)
        return {name: sum(values) / len(values) for name, values in buckets.items()}

    # ---- hierarchy & persistence ----

    def create_child(self, additional_data: Optional[Dict[Any, Any]] = None) -> "ToolContext":
        """Child context whose value lookups fall back to this one."""
        return ToolContext(
            initial_data=additional_data,
            metadata={**self.metadata, "parent_id": self.id},
            track_executions=self.track_executions,
            parent=self,
        )

    def export(self) -> Dict[str, Any]:
        """Serializable snapshot: values, shared memory, metadata and history."""
        with self._state_lock:
            return {
                "id": self.id,
                "created_at": self.created_at,
                "metadata": dict(self.metadata),
                "data": dict(self._data),
                "shared_memory": dict(self._shared_memory),
                "execution_history": [r.to_dict() for r in self._history],
            }

    @classmethod
    def import_(cls, exported: Dict[str, Any]) -> "ToolContext":
        """Rebuild a context from ``export()`` output."""
        context = cls(
            initial_data=exported.get("data") or {},
            metadata=exported.get("metadata") or {},
        )
        context.id = exported.get("id") or context.id
        context.created_at = exported.get("created_at", context.created_at)
        context._shared_memory.update(exported.get("shared_memory") or {})
        for entry in exported.get("execution_history") or []:
            context._history.append(ExecutionRecord.from_dict(entry))
        return context

    def __repr__(self) -> str:
        return f"ToolContext(id={self.id!r}, keys={len(self._data)}, executions={len(self._history)})"


class ContextManager:
    """
    Session id -> ToolContext registry.

    Contexts are created on first use. The context under ``"default"`` is
    created eagerly and lives as long as the manager.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._contexts: Dict[str, ToolContext] = {
            DEFAULT_SESSION: ToolContext(metadata={"session_id": DEFAULT_SESSION})
        }

    @property
    def default(self) -> ToolContext:
        return self.get_context()

    def get_context(self, session_id: Optional[str] = None) -> ToolContext:
        """Return the context for ``session_id``, creating it if needed."""
        session_id = session_id or DEFAULT_SESSION
        with self._lock:
            context = self._contexts.get(session_id)
            if context is None:
                context = self._contexts[session_id] = ToolContext(
                    metadata={"session_id": session_id}
                )
                logger.debug(f"Created tool context for session {session_id}")
            return context

    def create_context(
        self,
        session_id: str,
        initial_data: Optional[Dict[Any, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ToolContext:
        """Create (or replace) the context for ``session_id``."""
        context = ToolContext(
            initial_data=initial_data,
            metadata={**(metadata or {}), "session_id": session_id},
        )
        with self._lock:
            self._contexts[session_id] = context
        return context

    def delete_context(self, session_id: str) -> Optional[ToolContext]:
        """
        Remove a session's context.

        Deleting ``"default"`` resets it to a fresh context instead.
        """
        with self._lock:
            removed = self._contexts.pop(session_id, None)
            if session_id == DEFAULT_SESSION:
                self._contexts[DEFAULT_SESSION] = ToolContext(
                    metadata={"session_id": DEFAULT_SESSION}
                )
        return removed

    def list_contexts(self) -> List[str]:
        """Session ids other than the default one."""
        with self._lock:
            return [sid for sid in self._contexts if sid != DEFAULT_SESSION]

    def aggregate_stats(self) -> List[Dict[str, Any]]:
        with self._lock:
            items = list(self._contexts.items())
        return [{"session_id": sid, "stats": ctx.execution_stats()} for sid, ctx in items]

    def export_all(self) -> Dict[str, Any]:
        with self._lock:
            items = list(self._contexts.items())
        return {
            "contexts": {sid: ctx.export() for sid, ctx in items if sid != DEFAULT_SESSION},
            "default_context": self._contexts[DEFAULT_SESSION].export(),
        }

    def import_all(self, data: Dict[str, Any]) -> None:
        imported = {
            sid: ToolContext.import_(exported)
            for sid, exported in (data.get("contexts") or {}).items()
        }
        if data.get("default_context"):
            imported[DEFAULT_SESSION] = ToolContext.import_(data["default_context"])
        with self._lock:
            self._contexts.update(imported)

    def __len__(self) -> int:
        with self._lock:
            return len(self._contexts)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._contexts

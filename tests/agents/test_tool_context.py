"""
Tests for the agentrelay.agents.tool_context module.

This module tests:
- ToolContext value store, shared memory and parent lookup
- Named locks (sync and async)
- Execution tracking and statistics
- ContextManager session handling and export/import
"""

import asyncio
import threading

import pytest

from agentrelay.agents.tool_context import (
    DEFAULT_SESSION,
    MAX_EXECUTION_HISTORY,
    ContextManager,
    ExecutionRecord,
    ToolContext,
)


# =============================================================================
# Value Store Tests
# =============================================================================

class TestToolContextValues:
    """Tests for get/set/delete and friends."""

    def test_set_and_get(self):
        """Test basic storage."""
        context = ToolContext()

        assert context.set("user", "alice") == "alice"
        assert context.get("user") == "alice"
        assert context.get("missing", "fallback") == "fallback"

    def test_keys_are_strings(self):
        """Test non-string keys are coerced to strings."""
        context = ToolContext(initial_data={1: "one"})

        assert context.get("1") == "one"
        assert context.get(1) == "one"
        assert context.to_dict() == {"1": "one"}

    def test_delete_and_has(self):
        """Test delete returns the old value."""
        context = ToolContext(initial_data={"k": "v"})

        assert context.has("k")
        assert context.delete("k") == "v"
        assert not context.has("k")
        assert context.delete("k") is None

    def test_merge_and_clear(self):
        """Test bulk update and reset."""
        context = ToolContext(initial_data={"a": 1})
        context.merge({"b": 2})
        context.shared_set("s", 3)

        assert context.to_dict() == {"a": 1, "b": 2}

        context.clear()

        assert context.to_dict() == {}
        assert context.shared_get("s") is None

    def test_shared_memory_is_separate(self):
        """Test shared memory does not mix with values."""
        context = ToolContext()
        context.shared_set("cache", [1, 2])

        assert context.shared_get("cache") == [1, 2]
        assert context.get("cache") is None
        assert context.shared_delete("cache") == [1, 2]
        assert context.shared_get("cache", "gone") == "gone"

    def test_child_falls_back_to_parent(self):
        """Test child lookups consult the parent."""
        parent = ToolContext(initial_data={"tenant": "acme", "mode": "prod"})
        child = parent.create_child({"mode": "test"})

        assert child.get("tenant") == "acme"
        assert child.get("mode") == "test"
        assert not child.has("tenant")
        assert child in parent.children
        assert child.metadata["parent_id"] == parent.id


# =============================================================================
# Lock Tests
# =============================================================================

class TestToolContextLocks:
    """Tests for named locks."""

    def test_same_key_same_lock(self):
        """Test locks are created once per key."""
        context = ToolContext()

        assert context.get_lock("counter") is context.get_lock("counter")
        assert context.get_lock("counter") is not context.get_lock("other")

    def test_with_lock_serializes_threads(self):
        """Test read-modify-write under with_lock loses no updates."""
        context = ToolContext(initial_data={"count": 0})

        def increment():
            for _ in range(200):
                with context.with_lock("count"):
                    context.set("count", context.get("count") + 1)

        threads = [threading.Thread(target=increment) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert context.get("count") == 800

    @pytest.mark.asyncio
    async def test_alock_serializes_coroutines(self):
        """Test async read-modify-write under alock loses no updates."""
        context = ToolContext(initial_data={"count": 0})

        async def increment():
            for _ in range(20):
                async with context.alock("count"):
                    value = context.get("count")
                    await asyncio.sleep(0)
                    context.set("count", value + 1)

        await asyncio.gather(*(increment() for _ in range(5)))

        assert context.get("count") == 100

    @pytest.mark.asyncio
    async def test_alock_releases_on_error(self):
        """Test the lock is released when the block raises."""
        context = ToolContext()

        with pytest.raises(RuntimeError):
            async with context.alock("k"):
                raise RuntimeError("boom")

        assert not context.get_lock("k").locked()


# =============================================================================
# Execution Tracking Tests
# =============================================================================

class TestExecutionTracking:
    """Tests for execution history and stats."""

    def test_track_execution(self):
        """Test records are appended with success flags."""
        context = ToolContext()

        ok = context.track_execution("search", {"q": "x"}, "result", 0.5)
        failed = context.track_execution("search", {"q": "y"}, duration=0.1, error=ValueError("bad"))

        assert ok.success is True
        assert failed.success is False
        assert failed.error == "bad"
        assert context.execution_history() == [ok, failed]

    def test_records_are_immutable(self):
        """Test ExecutionRecord is frozen."""
        record = ToolContext().track_execution("t", {}, "out", 0.1)

        with pytest.raises(Exception):
            record.output = "changed"

    def test_tracking_disabled(self):
        """Test nothing is recorded when tracking is off."""
        context = ToolContext(track_executions=False)

        assert context.track_execution("t", {}, "out", 0.1) is None
        assert context.execution_history() == []

    def test_history_is_capped(self):
        """Test the history keeps only the most recent records."""
        context = ToolContext()
        for i in range(MAX_EXECUTION_HISTORY + 10):
            context.track_execution("t", {"i": i}, i, 0.0)

        history = context.execution_history()

        assert len(history) == MAX_EXECUTION_HISTORY
        assert history[0].input == {"i": 10}

    def test_history_filters(self):
        """Test filtering by tool name and limit."""
        context = ToolContext()
        for name in ["a", "b", "a", "a"]:
            context.track_execution(name, {}, None, 0.1)

        assert len(context.execution_history(tool_name="a")) == 3
        assert len(context.execution_history(limit=2)) == 2
        assert context.execution_history(limit=0) == []

    def test_track_context_manager(self):
        """Test track() times the block and records the output."""
        context = ToolContext()

        with context.track("calc", {"x": 2}) as tracker:
            tracker.output = 4

        assert tracker.record.output == 4
        assert tracker.record.success is True
        assert tracker.record.duration >= 0

    def test_track_context_manager_records_failure(self):
        """Test track() records and re-raises exceptions."""
        context = ToolContext()

        with pytest.raises(KeyError):
            with context.track("calc", {}):
                raise KeyError("missing")

        record = context.execution_history()[-1]
        assert record.success is False
        assert "missing" in record.error

    def test_execution_stats(self):
        """Test aggregate statistics."""
        context = ToolContext()
        context.track_execution("a", {}, None, 1.0)
        context.track_execution("a", {}, None, 3.0)
        context.track_execution("b", {}, None, 0.5, error=RuntimeError("x"))

        stats = context.execution_stats()

        assert stats["total_executions"] == 3
        assert stats["successful"] == 2
        assert stats["failed"] == 1
        assert stats["success_rate"] == 66.67
        assert stats["avg_duration"] == 2.0
        assert stats["min_duration"] == 1.0
        assert stats["max_duration"] == 3.0
        assert stats["tools"]["a"]["total_executions"] == 2
        assert stats["tools"]["b"]["failed"] == 1

    def test_execution_stats_empty(self):
        """Test stats of an empty history."""
        assert ToolContext().execution_stats() == {}

    def test_most_used_and_average_time(self):
        """Test usage ranking and mean durations."""
        context = ToolContext()
        for name, duration in [("a", 1.0), ("b", 2.0), ("b", 4.0)]:
            context.track_execution(name, {}, None, duration)

        assert context.most_used_tools() == ["b", "a"]
        assert context.most_used_tools(limit=1) == ["b"]
        assert context.average_execution_time() == {"a": 1.0, "b": 3.0}


# =============================================================================
# Persistence Tests
# =============================================================================

class TestToolContextPersistence:
    """Tests for export and import."""

    def test_export_import(self):
        """Test a context survives an export/import cycle."""
        context = ToolContext(initial_data={"k": "v"}, metadata={"owner": "me"})
        context.shared_set("s", 1)
        context.track_execution("t", {"a": 1}, "out", 0.2)

        restored = ToolContext.import_(context.export())

        assert restored.id == context.id
        assert restored.get("k") == "v"
        assert restored.shared_get("s") == 1
        assert restored.metadata == {"owner": "me"}
        assert restored.execution_history()[0].tool_name == "t"
        assert isinstance(restored.execution_history()[0], ExecutionRecord)


# =============================================================================
# ContextManager Tests
# =============================================================================

class TestContextManager:
    """Tests for ContextManager."""

    def test_default_context_exists(self):
        """Test the default context is created eagerly."""
        manager = ContextManager()

        assert DEFAULT_SESSION in manager
        assert manager.default is manager.get_context()
        assert manager.get_context(None) is manager.get_context(DEFAULT_SESSION)
        assert len(manager) == 1

    def test_create_on_first_use(self):
        """Test unknown sessions are created on lookup."""
        manager = ContextManager()

        context = manager.get_context("session-1")

        assert manager.get_context("session-1") is context
        assert context.metadata["session_id"] == "session-1"
        assert manager.list_contexts() == ["session-1"]

    def test_create_context_replaces(self):
        """Test create_context installs a fresh context."""
        manager = ContextManager()
        first = manager.get_context("s")

        second = manager.create_context("s", initial_data={"x": 1})

        assert second is not first
        assert manager.get_context("s").get("x") == 1

    def test_delete_context(self):
        """Test deleting a session."""
        manager = ContextManager()
        context = manager.get_context("s")

        assert manager.delete_context("s") is context
        assert "s" not in manager
        assert manager.delete_context("s") is None

    def test_delete_default_resets_it(self):
        """Test the default context cannot disappear."""
        manager = ContextManager()
        manager.default.set("k", "v")

        manager.delete_context(DEFAULT_SESSION)

        assert DEFAULT_SESSION in manager
        assert manager.default.get("k") is None

    def test_aggregate_stats(self):
        """Test per-session stats."""
        manager = ContextManager()
        manager.get_context("s").track_execution("t", {}, None, 0.1)

        stats = {entry["session_id"]: entry["stats"] for entry in manager.aggregate_stats()}

        assert stats["s"]["total_executions"] == 1
        assert stats[DEFAULT_SESSION] == {}

    def test_export_import_all(self):
        """Test all contexts survive export/import."""
        manager = ContextManager()
        manager.get_context("s").set("k", "v")
        manager.default.set("d", 1)

        exported = manager.export_all()
        restored = ContextManager()
        restored.import_all(exported)

        assert set(exported) == {"contexts", "default_context"}
        assert restored.get_context("s").get("k") == "v"
        assert restored.default.get("d") == 1

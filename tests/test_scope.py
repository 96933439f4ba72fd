"""
Tests for CancelScope.
"""
import asyncio

import pytest

from ganttsync.exceptions import InvalidOperationError
from ganttsync.scope import CancelScope


class TestCancelScope:
    """Test task ownership and cancellation."""

    async def test_cancel_stops_spawned_tasks(self):
        scope = CancelScope("test")
        task = scope.spawn(asyncio.sleep(10))

        scope.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert scope.cancelled

    async def test_spawn_after_cancel_raises(self):
        scope = CancelScope("test")
        scope.cancel()
        with pytest.raises(InvalidOperationError):
            scope.spawn(asyncio.sleep(0))

    async def test_children_cancel_with_parent(self):
        parent = CancelScope("parent")
        child = parent.child()
        task = child.spawn(asyncio.sleep(10))

        parent.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert child.cancelled
        assert task.cancelled()

    def test_child_of_cancelled_scope_is_cancelled(self):
        parent = CancelScope("parent")
        parent.close()
        assert parent.child("late").cancelled

    async def test_finished_tasks_are_forgotten(self):
        scope = CancelScope("test")
        task = scope.spawn(asyncio.sleep(0))
        await task
        await asyncio.sleep(0)
        assert task not in scope._tasks
